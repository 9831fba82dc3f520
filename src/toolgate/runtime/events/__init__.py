"""Coordinator event bus."""

from .bus import EventBus, EventListener, EventType, ToolEvent

__all__ = ["EventBus", "EventListener", "EventType", "ToolEvent"]
