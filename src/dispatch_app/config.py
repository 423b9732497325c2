"""Application configuration and settings management."""

from typing import Annotated, Any, Literal, Optional

import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    app_name: str = "Dispatch Load Optimizer API"
    api_prefix: str = "/api"
    frontend_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    optimization_log_table: str = Field(default="optimization_logs")

    # Route matrix service
    routes_api_url: str = Field(
        default="https://routes.googleapis.com/distanceMatrix/v2:computeRouteMatrix",
        description="Endpoint of the travel distance matrix service.",
    )
    routes_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DISPATCH_ROUTES_API_KEY", "GOOGLE_MAPS_API_KEY"),
        description="API key for the route matrix service. Without it distances use the haversine fallback.",
    )
    routes_travel_mode: Literal["DRIVE", "TWO_WHEELER"] = Field(default="DRIVE")
    routes_routing_preference: Literal["TRAFFIC_UNAWARE", "TRAFFIC_AWARE", "TRAFFIC_AWARE_OPTIMAL"] = Field(
        default="TRAFFIC_AWARE"
    )
    routes_timeout_seconds: float = Field(default=15.0, gt=0.0)
    routes_max_retries: int = Field(default=2, ge=0)
    routes_backoff_seconds: float = Field(default=0.5, ge=0.0)
    routes_max_locations_per_request: int = Field(
        default=25,
        ge=1,
        description="Origins and destinations per matrix request; 25 keeps each block within the 625-element limit.",
    )
    routes_max_parallel_requests: int = Field(default=4, ge=1)
    fallback_average_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Average speed used to estimate durations from straight-line distances.",
    )

    # Solver process
    solver_command: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description="Command that launches the solver. Empty means the bundled OR-Tools solver.",
    )
    solver_timeout_seconds: float = Field(default=120.0, gt=0.0)
    solver_time_limit_seconds: int = Field(default=30, ge=1)
    solver_first_solution_strategy: str = Field(default="PATH_CHEAPEST_ARC")
    solver_local_search_metaheuristic: str = Field(default="GUIDED_LOCAL_SEARCH")
    default_max_stops: int = Field(default=10, ge=1)

    @field_validator("frontend_allowed_origins", "solver_command", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            # A plain command line such as "python -m solver"
            if value.strip():
                return tuple(value.split())
        return tuple()


settings = Settings()
