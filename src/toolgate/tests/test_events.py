"""Tests for the event bus."""

from __future__ import annotations

import logging

import pytest

from toolgate.runtime.events import EventBus, EventType, ToolEvent


def test_emit_reaches_listeners_in_subscription_order(bus: EventBus) -> None:
    seen: list[str] = []
    bus.on(EventType.EXECUTED, lambda e: seen.append(f"a:{e.tool_name}"))
    bus.on(EventType.EXECUTED, lambda e: seen.append(f"b:{e.tool_name}"))

    event = bus.emit(EventType.EXECUTED, tool_name="search", attempts=1)

    assert seen == ["a:search", "b:search"]
    assert isinstance(event, ToolEvent)
    assert event.data == {"tool_name": "search", "attempts": 1}


def test_listeners_only_see_their_event_type(bus: EventBus) -> None:
    seen: list[ToolEvent] = []
    bus.on(EventType.FAILED, seen.append)
    bus.emit(EventType.EXECUTED, tool_name="x")
    assert seen == []


def test_failing_listener_is_isolated(bus: EventBus, caplog: pytest.LogCaptureFixture) -> None:
    seen: list[str] = []

    def broken(event: ToolEvent) -> None:
        raise RuntimeError("listener exploded")

    bus.on(EventType.REGISTERED, broken)
    bus.on(EventType.REGISTERED, lambda e: seen.append(e.tool_name or ""))

    with caplog.at_level(logging.ERROR, logger="toolgate.events"):
        bus.emit(EventType.REGISTERED, tool_name="login")

    assert seen == ["login"]
    assert "tool.registered" in caplog.text


def test_on_is_idempotent_and_off_unsubscribes(bus: EventBus) -> None:
    seen: list[ToolEvent] = []
    bus.on("tool.executed", seen.append)
    bus.on(EventType.EXECUTED, seen.append)
    assert bus.listener_count(EventType.EXECUTED) == 1

    assert bus.off(EventType.EXECUTED, seen.append) is True
    assert bus.off(EventType.EXECUTED, seen.append) is False
    bus.emit(EventType.EXECUTED, tool_name="x")
    assert seen == []


def test_listener_may_unsubscribe_during_dispatch(bus: EventBus) -> None:
    calls: list[str] = []

    def once(event: ToolEvent) -> None:
        calls.append("once")
        bus.off(EventType.EXECUTED, once)

    bus.on(EventType.EXECUTED, once)
    bus.on(EventType.EXECUTED, lambda e: calls.append("always"))
    bus.emit(EventType.EXECUTED)
    bus.emit(EventType.EXECUTED)

    assert calls == ["once", "always", "always"]


def test_unknown_event_type_is_rejected(bus: EventBus) -> None:
    with pytest.raises(ValueError):
        bus.on("tool.exploded", lambda e: None)


def test_listener_count_and_clear(bus: EventBus) -> None:
    bus.on(EventType.EXECUTED, lambda e: None)
    bus.on(EventType.FAILED, lambda e: None)
    assert bus.listener_count() == 2
    bus.clear()
    assert bus.listener_count() == 0
