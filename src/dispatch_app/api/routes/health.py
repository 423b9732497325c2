"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/routes", status_code=status.HTTP_200_OK)
async def health_routes() -> dict:
    """Check the route matrix service; distances fall back to haversine when it is down."""
    from ...services.distance.routes_client import RouteMatrixClient

    client = RouteMatrixClient.from_settings(settings)
    if client is None:
        return {
            "service": "routes",
            "configured": False,
            "healthy": False,
            "fallback": "haversine",
        }
    healthy = await client.check_health()
    return {
        "service": "routes",
        "configured": True,
        "healthy": healthy,
        "fallback": None if healthy else "haversine",
    }


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and the optimization log table."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY environment variables.",
        }

    try:
        supabase.table("warehouses").select("id").limit(1).execute()
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }

    try:
        supabase.table(settings.optimization_log_table).select("log_id").limit(1).execute()
        ledger_table_exists = True
    except Exception:
        ledger_table_exists = False

    return {
        "configured": True,
        "connected": True,
        "ledger_table_exists": ledger_table_exists,
        "message": "Database connected." if ledger_table_exists else "Database connected but the optimization log table may not exist.",
    }
