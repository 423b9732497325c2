import pytest
from fastapi.testclient import TestClient

from dispatch_app.config import settings
from dispatch_app.db import supabase as supabase_module
from dispatch_app.main import create_app
from dispatch_app.services.distance.routes_client import RouteMatrixClient

from conftest import FakeSupabase


class StubRouteClient:
    def __init__(self, healthy: bool) -> None:
        self.healthy = healthy

    async def check_health(self) -> bool:
        return self.healthy


@pytest.fixture
def api_client() -> TestClient:
    return TestClient(create_app())


def _use_route_client(monkeypatch, client):
    monkeypatch.setattr(RouteMatrixClient, "from_settings", classmethod(lambda cls, config: client))


def _use_supabase(monkeypatch, client):
    monkeypatch.setattr(supabase_module, "get_supabase_client", lambda: client)


def test_routes_health_without_api_key(api_client, monkeypatch):
    _use_route_client(monkeypatch, None)
    body = api_client.get("/api/health/routes").json()

    assert body == {"service": "routes", "configured": False, "healthy": False, "fallback": "haversine"}


@pytest.mark.parametrize("healthy,fallback", [(True, None), (False, "haversine")])
def test_routes_health_reports_reachability(api_client, monkeypatch, healthy, fallback):
    _use_route_client(monkeypatch, StubRouteClient(healthy))
    response = api_client.get("/api/health/routes")

    assert response.status_code == 200
    assert response.json()["configured"] is True
    assert response.json()["healthy"] is healthy
    assert response.json()["fallback"] == fallback


def test_database_health_not_configured(api_client, monkeypatch):
    _use_supabase(monkeypatch, None)
    body = api_client.get("/api/health/database").json()

    assert body["configured"] is False
    assert "DISPATCH_SUPABASE_URL" in body["message"]


def test_database_health_connected(api_client, monkeypatch, dispatch_tables):
    _use_supabase(monkeypatch, FakeSupabase(dispatch_tables))
    body = api_client.get("/api/health/database").json()

    assert body["connected"] is True
    assert body["ledger_table_exists"] is True


def test_database_health_missing_ledger_table(api_client, monkeypatch, dispatch_tables):
    fake = FakeSupabase(dispatch_tables)
    fake.failing_tables.add(settings.optimization_log_table)
    _use_supabase(monkeypatch, fake)
    body = api_client.get("/api/health/database").json()

    assert body["connected"] is True
    assert body["ledger_table_exists"] is False


def test_database_health_connection_error(api_client, monkeypatch, dispatch_tables):
    fake = FakeSupabase(dispatch_tables)
    fake.failing_tables.add("warehouses")
    _use_supabase(monkeypatch, fake)
    body = api_client.get("/api/health/database").json()

    assert body["configured"] is True
    assert body["connected"] is False
    assert "warehouses" in body["error"]


def test_supabase_client_is_none_without_credentials(monkeypatch):
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_key", None)
    supabase_module.get_supabase_client.cache_clear()
    try:
        assert supabase_module.get_supabase_client() is None
    finally:
        supabase_module.get_supabase_client.cache_clear()
