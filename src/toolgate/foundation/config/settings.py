"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from toolgate.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.cache.ttl
    300.0
    >>> settings.status.failure_threshold
    3

    # Or with environment variables:
    # TOOLGATE_CACHE_TTL=60
    # TOOLGATE_STATUS_FAILURE_THRESHOLD=5
    # TOOLGATE_EXECUTION_DEFAULT_STRATEGY=outside
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, NonNegativeFloat, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Execution cache configuration."""

    model_config = SettingsConfigDict(env_prefix="TOOLGATE_CACHE_", extra="ignore")

    enabled: bool = True
    ttl: PositiveFloat = Field(default=300.0, description="Entry lifetime in seconds")
    max_size: PositiveInt = Field(default=1000, description="Max entries before FIFO eviction")


class RetrySettings(BaseSettings):
    """Default retry configuration for the execution engine."""

    model_config = SettingsConfigDict(env_prefix="TOOLGATE_RETRY_", extra="ignore")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 0
    base_delay: NonNegativeFloat = Field(default=1.0, description="Base delay in seconds")
    multiplier: PositiveFloat = Field(default=2.0, description="Exponential backoff base")
    max_delay: PositiveFloat = Field(default=60.0, description="Maximum delay in seconds")


class ExecutionSettings(BaseSettings):
    """Engine and coordinator execution defaults."""

    model_config = SettingsConfigDict(env_prefix="TOOLGATE_EXECUTION_", extra="ignore")

    timeout: PositiveFloat | None = Field(default=30.0, description="Per-attempt handler timeout in seconds")
    default_strategy: Literal["internal", "outside"] = "internal"
    enforce_availability: bool = Field(
        default=False,
        description="Refuse to execute tools whose dependencies are unmet",
    )

    @field_validator("default_strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v


class StatusSettings(BaseSettings):
    """Failure tracking and rebind configuration."""

    model_config = SettingsConfigDict(env_prefix="TOOLGATE_STATUS_", extra="ignore")

    enabled: bool = True
    failure_threshold: PositiveInt = Field(default=3, description="Consecutive failures before a tool is failed")
    failure_duration: NonNegativeFloat = Field(default=300.0, description="Seconds a tool stays failed before a sweep may recover it")
    auto_rebind: bool = True
    rebind_delay: NonNegativeFloat = Field(default=10.0, description="Seconds before the one-shot recovery sweep")


class OutsideSettings(BaseSettings):
    """Outside (externally executed) strategy configuration."""

    model_config = SettingsConfigDict(env_prefix="TOOLGATE_OUTSIDE_", extra="ignore")

    wait_for_result: bool = False
    timeout: PositiveFloat = Field(default=30.0, description="Seconds to wait for an external result")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="TOOLGATE_LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"


class ToolgateSettings(BaseSettings):
    """Root settings for the coordinator.

    Loads configuration from environment variables with TOOLGATE_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        TOOLGATE_CACHE_MAX_SIZE=500
        TOOLGATE_RETRY_MAX_RETRIES=2
        TOOLGATE_OUTSIDE_WAIT_FOR_RESULT=true
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    status: StatusSettings = Field(default_factory=StatusSettings)
    outside: OutsideSettings = Field(default_factory=OutsideSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> ToolgateSettings:
    """Get the global settings instance (cached)."""
    return ToolgateSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
