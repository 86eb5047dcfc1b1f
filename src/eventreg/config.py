"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="EVREG_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Event Registration API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level applied at startup.")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
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
    registrations_table: str = "registrations"
    proofs_bucket: str = "proofs"
    admin_token: Optional[str] = Field(
        default=None,
        description="Shared secret expected in the X-Admin-Token header for admin endpoints.",
    )

    # Duplicate detection policy
    strict_duplicate_radius_m: float = Field(
        default=50.0,
        gt=0.0,
        description="Submissions closer than this to a stored registration are blocked.",
    )
    advisory_duplicate_radius_m: float = Field(
        default=100.0,
        gt=0.0,
        description="Background monitoring warns (without blocking) below this distance.",
    )
    check_interval_seconds: float = Field(default=5.0, ge=0.0)
    monitor_min_move_m: float = Field(default=10.0, ge=0.0)
    watch_min_move_m: float = Field(default=5.0, ge=0.0)

    # Location acquisition
    permission_settle_delay_ms: int = Field(default=500, ge=0)
    permission_timeout_ms: int = Field(default=10_000, ge=1)
    location_timeout_ms: int = Field(default=15_000, ge=1)
    location_max_age_ms: int = Field(default=30_000, ge=0)
    fallback_timeout_ms: int = Field(default=5_000, ge=1)
    fallback_max_age_ms: int = Field(default=60_000, ge=0)

    session_ttl_seconds: int = Field(default=30 * 60, ge=1)
    max_proof_bytes: int = Field(default=5 * 1024 * 1024, ge=1)

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
