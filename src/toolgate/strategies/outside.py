"""Dispatch execution to an external executor and await its resolution.

The strategy records a PendingToolCall and announces it with
``tool.call.dispatched``. The external party runs the tool and hands the
outcome back through ``resolve``. Callers either get a PENDING result
immediately, or wait (bounded by ``timeout``) for the resolution.

A wait that times out yields a TIMEOUT result but leaves the call pending: it
must still be resolved exactly once, and only that resolution is reported.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel

from toolgate.foundation.core import ExecutionContext
from toolgate.foundation.errors import Err, ErrorCode, Ok, Result, ToolError, to_jsonable
from toolgate.runtime.engine import ExecutionResult, validate_input
from toolgate.runtime.events import EventBus, EventType
from toolgate.runtime.observability import get_logger

from .base import CallStatus, OutcomeReporter, PendingToolCall, StrategyKind

if TYPE_CHECKING:
    from toolgate.foundation.config import OutsideSettings
    from toolgate.foundation.core import ToolDefinition
    from toolgate.runtime.engine import ExecutionOptions

log = get_logger("toolgate.strategies.outside")


class OutsideStrategy:
    """Externally executed calls with explicit resolution.

    Args:
        reporter: Receives the resolved outcome (status tracking, events)
        events: Bus for dispatch/resolve announcements
        wait_for_result: Block ``execute`` until resolution or timeout
        timeout: Seconds to wait when ``wait_for_result`` is on
        clock: Time source for ``created_at`` and latency
        resolved_limit: How many resolved call ids to remember for ALREADY_RESOLVED;
            older ids are forgotten and then read as UNKNOWN_CALL

    Example:
        >>> outside = OutsideStrategy(reporter, bus)
        >>> pending = await outside.execute(definition, {"city": "Oslo"}, ExecutionOptions())
        >>> outside.resolve(pending.call_id, data={"temp": 4})
    """

    __slots__ = ("_report", "_events", "_pending", "_resolved", "_clock", "_resolved_limit", "wait_for_result", "timeout")

    def __init__(
        self,
        reporter: OutcomeReporter,
        events: EventBus,
        *,
        wait_for_result: bool = False,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
        resolved_limit: int = 10_000,
    ) -> None:
        self._report = reporter
        self._events = events
        self._pending: dict[str, PendingToolCall] = {}
        self._resolved: dict[str, None] = {}
        self._resolved_limit = resolved_limit
        self._clock = clock
        self.wait_for_result = wait_for_result
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: OutsideSettings, reporter: OutcomeReporter, events: EventBus) -> OutsideStrategy:
        return cls(reporter, events, wait_for_result=settings.wait_for_result, timeout=settings.timeout)

    @property
    def kind(self) -> StrategyKind:
        return StrategyKind.OUTSIDE

    # ─────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────

    async def execute(
        self,
        definition: ToolDefinition,
        input: BaseModel | dict[str, Any] | None,  # noqa: A002
        options: ExecutionOptions,
    ) -> ExecutionResult:
        name = definition.name
        validated = validate_input(definition, input)
        if validated.is_err():
            result = ExecutionResult.failure(validated.unwrap_err(), context=options.context)
            self._report(result, self.kind)
            return result

        context = options.context or ExecutionContext()
        call = PendingToolCall(
            tool_name=name,
            args=to_jsonable(validated.unwrap()),
            context=context,
            created_at=self._clock(),
        )
        if self.wait_for_result:
            call.waiter = asyncio.get_running_loop().create_future()
        self._pending[call.id] = call
        log.info("outside call dispatched", tool=name, call_id=call.id)
        self._events.emit(EventType.CALL_DISPATCHED, tool_name=name, call_id=call.id, args=call.args)

        waiter = call.waiter
        if waiter is None:
            return ExecutionResult.pending(name, call.id, context=context)

        done, _ = await asyncio.wait({waiter}, timeout=self.timeout)
        if not done:
            log.warning("outside call wait timed out", tool=name, call_id=call.id, timeout=self.timeout)
            return ExecutionResult.failure(
                ToolError.create(name, f"No external result for call {call.id} after {self.timeout}s", ErrorCode.TIMEOUT),
                context=context,
                call_id=call.id,
                execution_time_ms=self.timeout * 1000,
            )
        return waiter.result()

    # ─────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────

    def resolve(
        self,
        call_id: str,
        *,
        data: Any = None,
        error: ToolError | str | None = None,
    ) -> Result[ExecutionResult, ToolError]:
        """Hand back the external outcome of a pending call.

        Passing ``error`` marks the call failed. Returns Err with UNKNOWN_CALL
        or ALREADY_RESOLVED without changing anything when the id is not pending.
        """
        if call_id in self._resolved:
            return Err(ToolError.create("outside", f"Call {call_id} was already resolved", ErrorCode.ALREADY_RESOLVED, recoverable=False))
        call = self._pending.get(call_id)
        if call is None:
            return Err(ToolError.create("outside", f"Unknown call {call_id}", ErrorCode.UNKNOWN_CALL, recoverable=False))

        elapsed = max(0.0, (self._clock() - call.created_at) * 1000)
        if error is None:
            result = ExecutionResult.ok(call.tool_name, data, context=call.context, call_id=call_id, attempts=1, execution_time_ms=elapsed)
        else:
            if not isinstance(error, ToolError):
                error = ToolError.create(call.tool_name, (error or "").strip() or "External execution failed", ErrorCode.EXTERNAL_SERVICE_ERROR)
            result = ExecutionResult.failure(error, context=call.context, call_id=call_id, attempts=1, execution_time_ms=elapsed)

        del self._pending[call_id]
        self._resolved[call_id] = None
        if len(self._resolved) > self._resolved_limit:
            del self._resolved[next(iter(self._resolved))]
        call.status = CallStatus.RESOLVED

        self._report(result, self.kind)
        log.info("outside call resolved", tool=call.tool_name, call_id=call_id, success=result.success)
        self._events.emit(EventType.CALL_RESOLVED, tool_name=call.tool_name, call_id=call_id, success=result.success)
        if call.waiter is not None and not call.waiter.done():
            call.waiter.set_result(result)
        return Ok(result)

    def owns(self, call_id: str) -> bool:
        """Whether this instance dispatched the call (pending or resolved)."""
        return call_id in self._pending or call_id in self._resolved

    def get_pending(self, call_id: str) -> PendingToolCall | None:
        return self._pending.get(call_id)

    def pending_calls(self) -> list[PendingToolCall]:
        return list(self._pending.values())

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)
