"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    CacheSettings,
    ExecutionSettings,
    LoggingSettings,
    OutsideSettings,
    RetrySettings,
    StatusSettings,
    ToolgateSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "ExecutionSettings",
    "LoggingSettings",
    "OutsideSettings",
    "RetrySettings",
    "StatusSettings",
    "ToolgateSettings",
    "clear_settings_cache",
    "get_settings",
]
