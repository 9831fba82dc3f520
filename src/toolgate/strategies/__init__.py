"""Interchangeable execution strategies."""

from .base import CallStatus, ExecutionStrategy, OutcomeReporter, PendingToolCall, StrategyKind
from .internal import InternalStrategy
from .outside import OutsideStrategy

__all__ = [
    "CallStatus",
    "ExecutionStrategy",
    "InternalStrategy",
    "OutcomeReporter",
    "OutsideStrategy",
    "PendingToolCall",
    "StrategyKind",
]
