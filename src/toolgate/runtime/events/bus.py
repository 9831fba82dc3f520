"""Typed publish/subscribe fan-out for coordinator state changes.

One EventBus is owned by each coordinator instance and injected into every
component that emits. Listeners run synchronously in subscription order; a
listener that raises is logged and skipped without affecting the others.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable

from toolgate.foundation.errors import JsonDict

logger = logging.getLogger("toolgate.events")


class EventType(StrEnum):
    """Event taxonomy published on every state change."""
    REGISTERED = "tool.registered"
    UNREGISTERED = "tool.unregistered"
    EXECUTED = "tool.executed"
    FAILED = "tool.failed"
    AVAILABILITY_CHANGED = "tool.availability.changed"
    STATUS_CHANGED = "tool.status.changed"
    REBIND_SCHEDULED = "tool.rebind.scheduled"
    CALL_DISPATCHED = "tool.call.dispatched"
    CALL_RESOLVED = "tool.call.resolved"


@dataclass(frozen=True, slots=True)
class ToolEvent:
    """A published event. ``data`` always carries ``tool_name`` when one applies."""

    type: EventType
    data: JsonDict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def tool_name(self) -> str | None:
        return self.data.get("tool_name")


EventListener = Callable[[ToolEvent], None]


class EventBus:
    """In-memory synchronous event bus.

    Example:
        >>> bus = EventBus()
        >>> bus.on(EventType.EXECUTED, lambda e: print(e.tool_name))
        >>> bus.emit(EventType.EXECUTED, tool_name="search")
        search
    """

    __slots__ = ("_listeners",)

    def __init__(self) -> None:
        self._listeners: dict[EventType, list[EventListener]] = {}

    def on(self, event_type: EventType | str, listener: EventListener) -> None:
        """Subscribe a listener. Subscribing the same listener twice is a no-op."""
        listeners = self._listeners.setdefault(EventType(event_type), [])
        if listener not in listeners:
            listeners.append(listener)

    def off(self, event_type: EventType | str, listener: EventListener) -> bool:
        """Unsubscribe a listener. Returns True if it was subscribed."""
        listeners = self._listeners.get(EventType(event_type), [])
        try:
            listeners.remove(listener)
        except ValueError:
            return False
        return True

    def emit(self, event_type: EventType, **data: object) -> ToolEvent:
        """Build and publish an event, returning it."""
        event = ToolEvent(type=event_type, data=data)
        self.publish(event)
        return event

    def publish(self, event: ToolEvent) -> None:
        """Deliver an event to every listener of its type."""
        # Copy so listeners may (un)subscribe while being notified
        for listener in list(self._listeners.get(event.type, ())):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed for {event.type.value}")

    def listener_count(self, event_type: EventType | str | None = None) -> int:
        """Count listeners for one type, or all types when omitted."""
        if event_type is None:
            return sum(len(v) for v in self._listeners.values())
        return len(self._listeners.get(EventType(event_type), ()))

    def clear(self) -> None:
        """Remove every listener."""
        self._listeners.clear()
