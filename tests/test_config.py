from dispatch_app.config import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    monkeypatch.delenv("DISPATCH_ROUTES_API_KEY", raising=False)
    config = Settings(_env_file=None)

    assert config.api_prefix == "/api"
    assert config.solver_command == ()
    assert config.default_max_stops == 10
    assert config.routes_api_key is None
    assert config.routes_max_locations_per_request == 25


def test_tuple_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DISPATCH_FRONTEND_ALLOWED_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("DISPATCH_SOLVER_COMMAND", "node dist/solver.js")
    config = Settings(_env_file=None)

    assert config.frontend_allowed_origins == ("https://a.example", "https://b.example")
    assert config.solver_command == ("node", "dist/solver.js")


def test_solver_command_as_json_array(monkeypatch):
    monkeypatch.setenv("DISPATCH_SOLVER_COMMAND", '["/opt/solver bin/run", "--fast"]')
    assert Settings(_env_file=None).solver_command == ("/opt/solver bin/run", "--fast")


def test_routes_key_falls_back_to_google_maps_variable(monkeypatch):
    monkeypatch.delenv("DISPATCH_ROUTES_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "maps-key")
    assert Settings(_env_file=None).routes_api_key == "maps-key"
