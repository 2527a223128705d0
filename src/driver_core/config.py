"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DRIVER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Driver Delivery Core API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=("http://localhost:5173", "http://127.0.0.1:5173"),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase key used by the driver client.",
    )

    # Route geometry collaborator
    routing_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for an OSRM-compatible directions service (e.g., http://localhost:5000).",
    )
    routing_profile: str = Field(default="driving")
    routing_max_retries: int = Field(default=3, ge=0)
    routing_backoff_seconds: float = Field(default=1.0, ge=0.0)
    routing_timeout_seconds: float = Field(default=15.0, gt=0.0)

    # Tracking
    off_route_threshold_meters: float = Field(default=30.0, gt=0.0)
    arrival_radius_meters: float = Field(default=30.0, gt=0.0)
    reroute_min_interval_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Minimum time between two reroute triggers while continuously off route.",
    )
    reroute_min_distance_meters: float = Field(
        default=25.0,
        ge=0.0,
        description="Minimum distance moved since the last reroute before another one may fire.",
    )

    # Status transitions
    transition_max_retries: int = Field(default=3, ge=0)
    transition_backoff_seconds: float = Field(default=0.5, ge=0.0)
    transition_max_backoff_seconds: float = Field(default=8.0, ge=0.0)
    transition_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Remittance
    remittance_overdue_hours: int = Field(default=24, ge=1)
    remittance_cycle_hours: int = Field(default=24, ge=1)
    fallback_commission_rate: float = Field(
        default=0.16,
        ge=0.0,
        le=1.0,
        description="Commission rate used only when the live rate lookup is unavailable.",
    )
    commission_cache_seconds: int = Field(default=86400, ge=0)

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
