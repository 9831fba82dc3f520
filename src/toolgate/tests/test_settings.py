"""Tests for environment-based configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from toolgate.foundation.config import ExecutionSettings, StatusSettings, ToolgateSettings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)  # keep any local .env out of the way
    for var in (
        "TOOLGATE_CACHE_TTL",
        "TOOLGATE_STATUS_FAILURE_THRESHOLD",
        "TOOLGATE_EXECUTION_DEFAULT_STRATEGY",
        "TOOLGATE_OUTSIDE_WAIT_FOR_RESULT",
    ):
        monkeypatch.delenv(var, raising=False)


def test_defaults() -> None:
    settings = ToolgateSettings()

    assert settings.cache.enabled
    assert settings.cache.ttl == 300.0
    assert settings.cache.max_size == 1000
    assert settings.retry.max_retries == 0
    assert settings.execution.timeout == 30.0
    assert settings.execution.default_strategy == "internal"
    assert not settings.execution.enforce_availability
    assert settings.status.failure_threshold == 3
    assert settings.status.failure_duration == 300.0
    assert settings.status.rebind_delay == 10.0
    assert not settings.outside.wait_for_result
    assert settings.logging.format == "console"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOOLGATE_CACHE_TTL", "60")
    monkeypatch.setenv("TOOLGATE_STATUS_FAILURE_THRESHOLD", "5")
    monkeypatch.setenv("TOOLGATE_OUTSIDE_WAIT_FOR_RESULT", "true")

    settings = get_settings()

    assert settings.cache.ttl == 60.0
    assert settings.status.failure_threshold == 5
    assert settings.outside.wait_for_result


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()


def test_strategy_is_case_insensitive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOOLGATE_EXECUTION_DEFAULT_STRATEGY", "OUTSIDE")
    assert ExecutionSettings().default_strategy == "outside"


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        ExecutionSettings(default_strategy="remote")
    with pytest.raises(ValidationError):
        StatusSettings(failure_threshold=0)
