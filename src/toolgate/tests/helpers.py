"""Test doubles and definition builders."""

from __future__ import annotations

from typing import Any, Callable

from pydantic import BaseModel

from toolgate.foundation.core import DependencyGroup, ToolDefinition
from toolgate.runtime.events import EventBus, EventType, ToolEvent


class QueryParams(BaseModel):
    query: str = "default"


class CountParams(BaseModel):
    count: int


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_tool(
    name: str,
    *groups: DependencyGroup,
    handler: Callable[..., Any] | None = None,
    schema: type[BaseModel] = QueryParams,
    **kw: Any,
) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=f"The {name} tool",
        input_schema=schema,
        handler=handler or (lambda p: f"{name}:{getattr(p, 'query', '')}"),
        dependency_groups=groups,
        **kw,
    )


class EventRecorder:
    """Subscribes to every event type and keeps what it sees."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[ToolEvent] = []
        for t in EventType:
            bus.on(t, self.events.append)

    def of(self, event_type: EventType) -> list[ToolEvent]:
        return [e for e in self.events if e.type is event_type]

    def types(self) -> list[EventType]:
        return [e.type for e in self.events]
