"""Shared fixtures for toolgate tests."""

from __future__ import annotations

import pytest

from toolgate.foundation.config import (
    CacheSettings,
    ExecutionSettings,
    LoggingSettings,
    OutsideSettings,
    RetrySettings,
    StatusSettings,
    ToolgateSettings,
    clear_settings_cache,
)
from toolgate.runtime.events import EventBus
from toolgate.runtime.observability import NoOpRenderer, use_renderer

from .helpers import FakeClock


@pytest.fixture(autouse=True)
def quiet_logging() -> object:
    use_renderer(NoOpRenderer())
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def settings() -> ToolgateSettings:
    """Fast, deterministic settings: no retry delay, short timeouts."""
    return ToolgateSettings(
        cache=CacheSettings(enabled=True, ttl=300.0, max_size=1000),
        retry=RetrySettings(max_retries=0, base_delay=0.0),
        execution=ExecutionSettings(timeout=1.0, default_strategy="internal", enforce_availability=False),
        status=StatusSettings(failure_threshold=3, failure_duration=300.0, auto_rebind=True, rebind_delay=10.0),
        outside=OutsideSettings(wait_for_result=False, timeout=1.0),
        logging=LoggingSettings(format="none"),
    )
