"""Application configuration using Pydantic settings."""

import math
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REFRESH_INTERVAL = 300.0


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Every field can be overridden with a ``WEATHER_``-prefixed environment
    variable, e.g. ``WEATHER_API_KEY`` or ``WEATHER_CACHING_ENABLED=false``.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEATHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Weather Dashboard"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # Weather API
    api_key: str = ""
    api_base_url: str = "https://api.weatherapi.com/v1"
    request_timeout: float | None = None  # seconds; resolved from debug
    retry_attempts: int | None = Field(None, ge=1)  # resolved from debug
    forecast_days: int = 5

    # Dashboard
    cities: list[str] = ["London", "Paris", "Tokyo", "New York"]
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL  # seconds
    animation_duration: int = 300  # milliseconds
    theme: str = "auto"

    # Feature flags
    auto_refresh: bool = True
    caching_enabled: bool = True
    animations_enabled: bool = True

    # Cache
    cache_ttl: float = 300.0  # 5 minutes

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("api_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL to avoid double slashes."""
        return v.rstrip("/")

    @field_validator("refresh_interval", mode="before")
    @classmethod
    def fallback_refresh_interval(cls, v: Any) -> Any:
        """Fall back to the default interval for empty, unparsable or infinite input."""
        try:
            interval = float(v)
        except (TypeError, ValueError):
            return DEFAULT_REFRESH_INTERVAL
        return interval if math.isfinite(interval) and interval > 0 else DEFAULT_REFRESH_INTERVAL

    @field_validator("theme", mode="before")
    @classmethod
    def default_theme(cls, v: Any) -> Any:
        return v or "auto"

    @model_validator(mode="after")
    def resolve_api_defaults(self) -> "Settings":
        """Development mode gets a longer timeout and a bigger retry budget."""
        if self.request_timeout is None:
            self.request_timeout = 10.0 if self.debug else 5.0
        if self.retry_attempts is None:
            self.retry_attempts = 5 if self.debug else 3
        return self

    def api_config(self) -> dict[str, Any]:
        """Settings consumed by the fetch client and retry executor."""
        return {
            "key": self.api_key,
            "base_url": self.api_base_url,
            "timeout": self.request_timeout,
            "retry_attempts": self.retry_attempts,
        }

    def ui_config(self) -> dict[str, Any]:
        """Settings consumed by presentation."""
        return {
            "refresh_interval": self.refresh_interval,
            "animation_duration": self.animation_duration,
            "theme": self.theme,
        }

    def feature_flags(self) -> dict[str, bool]:
        return {
            "auto_refresh": self.auto_refresh,
            "caching": self.caching_enabled,
            "animations": self.animations_enabled,
        }


settings = Settings()
