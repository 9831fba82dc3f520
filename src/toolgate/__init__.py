"""Toolgate - Dependency-gated tool coordination for AI agents.

A registry of named, schema-validated tools whose eligibility to run is gated
by declarative dependency groups over other tools' execution history. Tools
run through an execution engine (cache, retry, timeout), their health is
tracked by a failure/recovery state machine, and every state change is
published on an event bus.

Quick Start:
    >>> from pydantic import BaseModel
    >>> from toolgate import ToolCoordinator, ToolDefinition, all_of
    >>>
    >>> class LoginParams(BaseModel):
    ...     user: str
    ...
    >>> class SearchParams(BaseModel):
    ...     query: str
    ...
    >>> hub = ToolCoordinator()
    >>> hub.register(ToolDefinition(
    ...     name="login",
    ...     description="Authenticate the user",
    ...     input_schema=LoginParams,
    ...     handler=lambda p: {"token": f"t-{p.user}"},
    ... ))
    >>> hub.register(ToolDefinition(
    ...     name="search",
    ...     description="Search the catalog",
    ...     input_schema=SearchParams,
    ...     handler=lambda p: [p.query],
    ...     dependency_groups=[all_of("login")],
    ... ))
    >>> hub.get_availability("search").available
    False
    >>> await hub.execute("login", {"user": "ada"})
    >>> hub.get_availability("search").available
    True

Outside Execution:
    >>> hub.set_strategy("outside")
    >>> pending = await hub.execute("search", {"query": "tea"})
    >>> hub.resolve_external_result(pending.call_id, data=["green tea"])

Configuration (environment):
    TOOLGATE_CACHE_TTL=60
    TOOLGATE_STATUS_FAILURE_THRESHOLD=5
    TOOLGATE_EXECUTION_DEFAULT_STRATEGY=outside
"""

from __future__ import annotations

__version__ = "0.1.0"

# Core
from .foundation.core import (
    Dependency,
    DependencyGroup,
    DependencyKind,
    ExecutionContext,
    GroupType,
    ToolDefinition,
    all_of,
    any_of,
    sequence_of,
)

# Errors
from .foundation.errors import Err, ErrorCode, Ok, RegistrationError, Result, ToolError, ToolException

# Configuration
from .foundation.config import ToolgateSettings, get_settings

# Runtime
from .runtime.cache import ExecutionCache
from .runtime.engine import ExecutionEngine, ExecutionOptions, ExecutionResult, ExecutionStatus
from .runtime.events import EventBus, EventType, ToolEvent
from .runtime.observability import configure_logging, get_logger
from .runtime.retry import ExponentialBackoff, RetryPolicy

# Registry & status
from .registry import AvailabilityStatus, DependencyGraph, ToolRegistry
from .status import StatusManager, ToolStatus, ToolStatusInfo

# Strategies & facade
from .strategies import InternalStrategy, OutsideStrategy, PendingToolCall, StrategyKind
from .coordinator import ToolCoordinator

__all__ = [
    "__version__",
    # Core
    "Dependency",
    "DependencyGroup",
    "DependencyKind",
    "ExecutionContext",
    "GroupType",
    "ToolDefinition",
    "all_of",
    "any_of",
    "sequence_of",
    # Errors
    "Err",
    "ErrorCode",
    "Ok",
    "RegistrationError",
    "Result",
    "ToolError",
    "ToolException",
    # Configuration
    "ToolgateSettings",
    "get_settings",
    # Runtime
    "EventBus",
    "EventType",
    "ExecutionCache",
    "ExecutionEngine",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "ExponentialBackoff",
    "RetryPolicy",
    "ToolEvent",
    "configure_logging",
    "get_logger",
    # Registry & status
    "AvailabilityStatus",
    "DependencyGraph",
    "StatusManager",
    "ToolRegistry",
    "ToolStatus",
    "ToolStatusInfo",
    # Strategies & facade
    "InternalStrategy",
    "OutsideStrategy",
    "PendingToolCall",
    "StrategyKind",
    "ToolCoordinator",
]
