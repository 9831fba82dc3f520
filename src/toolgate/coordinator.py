"""Coordinator facade: the single surface the workflow layer talks to.

Owns one event bus, registry, engine (with its cache), status manager and
both execution strategies. Every final outcome, whichever strategy produced
it, flows through one reporter that updates status tracking (and through it
the registry) and publishes ``tool.executed`` / ``tool.failed``.

Example:
    >>> async with ToolCoordinator() as hub:
    ...     hub.register(login)
    ...     hub.register(search)               # depends on "login"
    ...     await hub.execute("login", {"user": "ada"})
    ...     [t.name for t in hub.get_available_tools()]
    ['login', 'search']
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from typing import Any, Callable

import orjson
from pydantic import BaseModel, ValidationError

from toolgate.foundation.config import ToolgateSettings, get_settings
from toolgate.foundation.core import ExecutionContext, ToolDefinition
from toolgate.foundation.errors import Err, ErrorCode, Ok, RegistrationError, Result, ToolError
from toolgate.registry import (
    AvailabilityStatus,
    BatchRegistrationResult,
    DependencyGraph,
    ToolRegistry,
    Validator,
)
from toolgate.runtime.engine import ExecutionEngine, ExecutionOptions, ExecutionResult
from toolgate.runtime.events import EventBus, EventListener, EventType
from toolgate.runtime.observability import configure_from_settings, get_logger, log_context
from toolgate.status import StatusManager, ToolStatus, ToolStatusInfo
from toolgate.strategies import (
    ExecutionStrategy,
    InternalStrategy,
    OutsideStrategy,
    PendingToolCall,
    StrategyKind,
)

SNAPSHOT_VERSION = 1


class ToolCoordinator:
    """Dependency-gated tool coordinator.

    Args:
        settings: Configuration (defaults to ``get_settings()``). Its ``logging``
            section is applied globally on construction.
        validators: Extra registration validators
        clock: Time source shared by the cache and status manager (tests)
    """

    def __init__(
        self,
        settings: ToolgateSettings | None = None,
        *,
        validators: Iterable[Validator] = (),
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        configure_from_settings(self.settings.logging)
        self.events = EventBus()
        self.registry = ToolRegistry(self.events, validators)
        self.engine = ExecutionEngine.from_settings(self.settings, clock=clock)
        self.status = StatusManager.from_settings(self.settings.status, self.registry, self.events, clock=clock or time.time)
        self._internal = InternalStrategy(self.engine, self._report)
        self._outside = OutsideStrategy.from_settings(self.settings.outside, self._report, self.events)
        self._retired: list[OutsideStrategy] = []
        self._default = StrategyKind(self.settings.execution.default_strategy)
        self.enforce_availability = self.settings.execution.enforce_availability
        self._log = get_logger("toolgate.coordinator")

    async def __aenter__(self) -> ToolCoordinator:
        return self

    async def __aexit__(self, *_: object) -> None:
        self.close()

    def close(self) -> None:
        """Cancel scheduled recovery sweeps."""
        self.status.close()

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    def register(self, definition: ToolDefinition | Mapping[str, Any]) -> Result[str, ToolError]:
        return self.registry.register(definition)

    def register_or_raise(self, definition: ToolDefinition | Mapping[str, Any]) -> str:
        """Register, raising RegistrationError on rejection."""
        result = self.registry.register(definition)
        if result.is_err():
            raise RegistrationError(result.unwrap_err())
        return result.unwrap()

    def register_batch(self, definitions: Iterable[ToolDefinition | Mapping[str, Any]]) -> BatchRegistrationResult:
        return self.registry.register_batch(definitions)

    def unregister(self, name: str) -> bool:
        """Remove a tool along with its cached results and tracked status."""
        if not self.registry.unregister(name):
            return False
        self.engine.clear_cache(name)
        self.status.reset(name)
        return True

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    async def execute(
        self,
        name: str,
        input: BaseModel | dict[str, Any] | None = None,  # noqa: A002
        *,
        context: ExecutionContext | None = None,
        options: ExecutionOptions | None = None,
        strategy: StrategyKind | str | None = None,
    ) -> ExecutionResult:
        """Execute a registered tool through the selected (or default) strategy.

        Never raises for tool-level problems: unknown tools, unmet dependencies
        (with ``enforce_availability``) and handler failures all come back as
        failed results.
        """
        opts = options or ExecutionOptions()
        if context is not None:
            opts = opts.model_copy(update={"context": context})

        definition = self.registry.get(name)
        if definition is None:
            return self._refuse(
                ToolError.create(name, f"Tool '{name}' is not registered", ErrorCode.UNKNOWN_TOOL, recoverable=False), opts,
            )

        if self.enforce_availability:
            availability = self.registry.get_availability(name, opts.context)
            if not availability.available:
                return self._refuse(
                    ToolError.create(name, f"Tool '{name}' is unavailable: {availability.reason}", ErrorCode.DEPENDENCY_UNMET),
                    opts,
                )

        runner = self._strategy_for(strategy)
        with log_context(tool=name, strategy=runner.kind.value):
            self._log.debug("executing tool")
            return await runner.execute(definition, input, opts)

    def _refuse(self, error: ToolError, opts: ExecutionOptions) -> ExecutionResult:
        self._log.warning("execution refused", tool=error.tool_name, code=error.code.value, message=error.message)
        self.events.emit(EventType.FAILED, tool_name=error.tool_name, code=error.code.value, message=error.message)
        return ExecutionResult.failure(error, context=opts.context)

    def _report(self, result: ExecutionResult, kind: StrategyKind) -> None:
        """Single sink for final outcomes from every strategy."""
        name = result.tool_name
        if result.success:
            self.status.report_success(name, result.context)
            self.registry.update_usage(name)
            self.events.emit(
                EventType.EXECUTED,
                tool_name=name,
                strategy=kind.value,
                from_cache=result.from_cache,
                attempts=result.attempts,
                execution_time_ms=result.execution_time_ms,
                call_id=result.call_id,
            )
            return
        error = result.error
        self.status.report_failure(name, error)
        self._log.warning("tool failed", tool=name, strategy=kind.value, code=error.code.value if error else None)
        self.events.emit(
            EventType.FAILED,
            tool_name=name,
            strategy=kind.value,
            code=error.code.value if error else None,
            message=error.message if error else None,
            call_id=result.call_id,
        )

    # ─────────────────────────────────────────────────────────────────
    # Strategies
    # ─────────────────────────────────────────────────────────────────

    @property
    def default_strategy(self) -> StrategyKind:
        return self._default

    def set_strategy(self, kind: StrategyKind | str) -> None:
        """Change the default strategy. Pending outside calls stay resolvable."""
        self._default = StrategyKind(kind)
        self._log.info("default strategy changed", strategy=self._default.value)

    def use_strategy(self, strategy: InternalStrategy | OutsideStrategy) -> None:
        """Replace a strategy instance. A replaced outside instance is kept until its calls resolve."""
        if isinstance(strategy, OutsideStrategy):
            if self._outside.has_pending:
                self._retired.append(self._outside)
            self._outside = strategy
        elif isinstance(strategy, InternalStrategy):
            self._internal = strategy
        else:
            raise TypeError(f"Unsupported strategy: {type(strategy).__name__}")

    @property
    def outside(self) -> OutsideStrategy:
        return self._outside

    def _strategy_for(self, kind: StrategyKind | str | None) -> ExecutionStrategy:
        chosen = self._default if kind is None else StrategyKind(kind)
        return self._outside if chosen is StrategyKind.OUTSIDE else self._internal

    def resolve_external_result(
        self, call_id: str, *, data: Any = None, error: ToolError | str | None = None,
    ) -> Result[ExecutionResult, ToolError]:
        """Resolve an outside call through whichever instance dispatched it."""
        owner = next((s for s in (self._outside, *self._retired) if s.owns(call_id)), None)
        if owner is None:
            return Err(ToolError.create("outside", f"Unknown call {call_id}", ErrorCode.UNKNOWN_CALL, recoverable=False))
        result = owner.resolve(call_id, data=data, error=error)
        self._retired = [s for s in self._retired if s.has_pending]
        return result

    def pending_calls(self) -> list[PendingToolCall]:
        return [c for s in (self._outside, *self._retired) for c in s.pending_calls()]

    # ─────────────────────────────────────────────────────────────────
    # Availability & graph
    # ─────────────────────────────────────────────────────────────────

    def get_availability(self, name: str, context: ExecutionContext | None = None) -> AvailabilityStatus:
        return self.registry.get_availability(name, context)

    def get_available_tools(self, *, include_failed: bool = False) -> list[ToolDefinition]:
        """Tools whose dependencies are met and (unless ``include_failed``) whose status is usable."""
        tools = self.registry.get_available_tools()
        if include_failed:
            return tools
        return [t for t in tools if self.status.is_usable(t.name)]

    def get_all_statuses(self, context: ExecutionContext | None = None) -> list[AvailabilityStatus]:
        return self.registry.get_all_statuses(context)

    def get_dependency_graph(self) -> DependencyGraph:
        return self.registry.get_dependency_graph()

    def get_execution_path(self, target: str) -> list[str]:
        return self.registry.get_execution_path(target)

    def record_execution(self, name: str, context: ExecutionContext | None = None) -> bool:
        """Record an execution that happened outside any strategy."""
        return self.registry.record_execution(name, context or ExecutionContext())

    def reset(self, name: str) -> bool:
        """Forget a tool's executions and tracked status."""
        found = self.registry.reset(name)
        self.status.reset(name)
        return found

    def reset_all(self) -> None:
        self.registry.reset_all()
        self.status.reset_all()

    # ─────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────

    def status_of(self, name: str) -> ToolStatusInfo | None:
        return self.status.get_status(name)

    def set_status(self, name: str, status: ToolStatus | str, reason: str | None = None) -> ToolStatusInfo:
        return self.status.set_status(name, status, reason)

    def serialize_status(self) -> str:
        """JSON snapshot of tracked statuses."""
        return orjson.dumps(
            {"version": SNAPSHOT_VERSION, "statuses": self.status.export_records()},
            option=orjson.OPT_SORT_KEYS,
        ).decode()

    def restore_status(self, snapshot: str | bytes) -> Result[int, ToolError]:
        """Load a ``serialize_status`` snapshot. Returns the number of records restored."""
        try:
            payload = orjson.loads(snapshot)
            return Ok(self.status.import_records(payload["statuses"]))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            return Err(ToolError.from_exception("coordinator", e, "Invalid status snapshot", code=ErrorCode.INVALID_PARAMS))

    # ─────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────

    def on(self, event_type: EventType | str, listener: EventListener) -> None:
        self.events.on(event_type, listener)

    def off(self, event_type: EventType | str, listener: EventListener) -> bool:
        return self.events.off(event_type, listener)

    # ─────────────────────────────────────────────────────────────────
    # Cache & statistics
    # ─────────────────────────────────────────────────────────────────

    def clear_cache(self, tool_name: str | None = None) -> int:
        return self.engine.clear_cache(tool_name)

    def cache_stats(self) -> dict[str, object]:
        return self.engine.cache_stats()

    def get_statistics(self) -> dict[str, Any]:
        records = self.status.get_all()
        return {
            "registry": self.registry.get_statistics().model_dump(),
            "status": {s.value: sum(1 for r in records if r.status is s) for s in ToolStatus},
            "cache": self.cache_stats(),
            "pending_calls": len(self.pending_calls()),
            "default_strategy": self._default.value,
        }
