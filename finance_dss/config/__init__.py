"""Configuration package."""

from finance_dss.config.settings import (
    AppSettings,
    CacheSettings,
    OrchestratorSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "OrchestratorSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
