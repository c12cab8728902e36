"""
Configuration Management for Finance DSS

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Model result cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Cache backend: in-process map or Redis"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (required for the redis backend)"
    )
    key_prefix: str = Field(
        default="dss:model:cache:",
        min_length=1,
        description="Namespace prefix for every cache key in Redis"
    )
    default_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="TTL applied to cached model results"
    )
    socket_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Redis socket connect/read timeout"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to try reaching Redis at startup"
    )
    scan_batch_size: int = Field(
        default=500,
        ge=1,
        description="Keys fetched per SCAN call when clearing the namespace"
    )

    @model_validator(mode='after')
    def validate_backend(self) -> 'CacheSettings':
        """Redis backend needs a URL."""
        if self.backend == "redis" and not self.redis_url:
            raise ValueError("CACHE_REDIS_URL is required when CACHE_BACKEND=redis")
        return self


class OrchestratorSettings(BaseSettings):
    """Model orchestration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MBMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    cache_enabled: bool = Field(
        default=True,
        description="Memoize model results in the result cache"
    )
    execution_time_smoothing: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Smoothing factor for the running average execution time"
    )
    snapshot_max_bytes: Optional[int] = Field(
        default=None,
        ge=1,
        description="Truncate input/output snapshots longer than this (None = keep all)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (False = human readable console output)"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept standard logging level names."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return v.upper()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def orchestrator(self) -> OrchestratorSettings:
        return OrchestratorSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for section in ("cache", "orchestrator", "app"):
        try:
            getattr(settings, section)
            results[section] = True
        except Exception as e:
            results[section] = False
            results[f"{section}_error"] = str(e)

    return results
