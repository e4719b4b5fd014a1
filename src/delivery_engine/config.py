"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DFE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Fee Engine API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Geocoding providers
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Geocoding API key. Google is skipped when unset.",
    )
    google_geocode_url: str = Field(
        default="https://maps.googleapis.com/maps/api/geocode/json",
        description="Google Geocoding REST endpoint.",
    )
    nominatim_base_url: Optional[str] = Field(
        default="https://nominatim.openstreetmap.org",
        description="Base URL for the Nominatim (OpenStreetMap) fallback geocoder.",
    )
    nominatim_user_agent: str = Field(
        default="delivery-fee-engine/0.1",
        description="User-Agent sent to Nominatim, required by its usage policy.",
    )
    geocode_country: Optional[str] = Field(
        default="BR",
        description="ISO 3166-1 alpha-2 country restriction applied to geocode queries.",
    )
    geocode_timeout_seconds: float = Field(default=10.0, gt=0.0)
    geocode_max_retries: int = Field(default=2, ge=0)
    geocode_backoff_seconds: float = Field(default=0.5, ge=0.0)
    geocode_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="How long geocode responses are reused for the same normalized address.",
    )
    geocode_cache_max_entries: int = Field(default=2048, ge=1)

    # Fee session
    debounce_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Input inactivity window before an edited address is geocoded.",
    )
    fallback_min_time_minutes: int = Field(
        default=30,
        ge=0,
        description="Delivery window start used when a zone carries no time estimate.",
    )
    fallback_max_time_minutes: int = Field(
        default=45,
        ge=0,
        description="Delivery window end used when a zone carries no time estimate.",
    )
    delivery_window_minutes: int = Field(
        default=15,
        ge=0,
        description="Window span added to a zone that only declares one end of its estimate.",
    )
    zone_poll_interval_seconds: float = Field(default=15.0, gt=0.0)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("frontend_allowed_origins", mode="before")
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
            # Try comma-separated
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            # Single value
            if value.strip():
                return (value.strip(),)
        # Return empty tuple if value is None or empty
        return tuple()

    @field_validator("geocode_country", mode="before")
    @classmethod
    def _normalize_country(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip().upper()
        return text or None

    @field_validator("fallback_max_time_minutes")
    @classmethod
    def _validate_fallback_window(cls, value: int, info) -> int:
        minimum = info.data.get("fallback_min_time_minutes")
        if minimum is not None and value < minimum:
            raise ValueError("fallback_max_time_minutes must be >= fallback_min_time_minutes")
        return value


settings = Settings()
