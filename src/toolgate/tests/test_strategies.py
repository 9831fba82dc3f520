"""Tests for internal and outside execution strategies."""

from __future__ import annotations

import asyncio

import pytest

from toolgate.foundation.core import ExecutionContext
from toolgate.foundation.errors import ErrorCode, Result, ToolError
from toolgate.runtime.cache import ExecutionCache
from toolgate.runtime.engine import ExecutionEngine, ExecutionOptions, ExecutionResult, ExecutionStatus
from toolgate.runtime.events import EventBus, EventType
from toolgate.strategies import (
    CallStatus,
    ExecutionStrategy,
    InternalStrategy,
    OutsideStrategy,
    PendingToolCall,
    StrategyKind,
)

from .helpers import CountParams, EventRecorder, make_tool


class Reports:
    """Collects reported outcomes."""

    def __init__(self) -> None:
        self.seen: list[tuple[ExecutionResult, StrategyKind]] = []

    def __call__(self, result: ExecutionResult, kind: StrategyKind) -> None:
        self.seen.append((result, kind))

    @property
    def results(self) -> list[ExecutionResult]:
        return [r for r, _ in self.seen]


@pytest.fixture
def reports() -> Reports:
    return Reports()


def test_strategies_satisfy_protocol(reports: Reports, bus: EventBus) -> None:
    assert isinstance(InternalStrategy(ExecutionEngine(None), reports), ExecutionStrategy)
    assert isinstance(OutsideStrategy(reports, bus), ExecutionStrategy)


@pytest.mark.asyncio
async def test_internal_runs_engine_and_reports(reports: Reports) -> None:
    strategy = InternalStrategy(ExecutionEngine(ExecutionCache()), reports)

    result = await strategy.execute(make_tool("search"), {"query": "tea"}, ExecutionOptions())

    assert result.success and result.data == "search:tea"
    assert reports.seen == [(result, StrategyKind.INTERNAL)]


@pytest.mark.asyncio
async def test_internal_reports_failures_too(reports: Reports) -> None:
    def broken(params: object) -> None:
        raise RuntimeError("nope")

    strategy = InternalStrategy(ExecutionEngine(None), reports)
    result = await strategy.execute(make_tool("broken", handler=broken), {}, ExecutionOptions())

    assert not result.success
    assert reports.results == [result]


@pytest.mark.asyncio
async def test_outside_returns_pending_and_announces(reports: Reports, bus: EventBus) -> None:
    recorder = EventRecorder(bus)
    strategy = OutsideStrategy(reports, bus)
    ctx = ExecutionContext(session_id="s")

    result = await strategy.execute(make_tool("weather"), {"query": "Oslo"}, ExecutionOptions(context=ctx))

    assert result.status is ExecutionStatus.PENDING
    assert result.call_id is not None
    assert strategy.has_pending and strategy.owns(result.call_id)
    call = strategy.get_pending(result.call_id)
    assert call is not None
    assert call.args == {"query": "Oslo"}
    assert call.context == ctx
    assert call.status is CallStatus.PENDING
    (dispatched,) = recorder.of(EventType.CALL_DISPATCHED)
    assert dispatched.data["call_id"] == result.call_id
    assert dispatched.data["args"] == {"query": "Oslo"}
    # Nothing is reported until the call resolves
    assert reports.seen == []


@pytest.mark.asyncio
async def test_outside_resolve_reports_success(reports: Reports, bus: EventBus) -> None:
    recorder = EventRecorder(bus)
    strategy = OutsideStrategy(reports, bus)
    pending = await strategy.execute(make_tool("weather"), {}, ExecutionOptions())

    resolved = strategy.resolve(pending.call_id, data={"temp": 4}).unwrap()

    assert resolved.success
    assert resolved.data == {"temp": 4}
    assert resolved.call_id == pending.call_id
    assert reports.seen == [(resolved, StrategyKind.OUTSIDE)]
    assert not strategy.has_pending
    assert strategy.owns(pending.call_id)
    (event,) = recorder.of(EventType.CALL_RESOLVED)
    assert event.data["success"] is True


@pytest.mark.asyncio
async def test_outside_resolve_with_error(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus)
    first = await strategy.execute(make_tool("weather"), {}, ExecutionOptions())
    second = await strategy.execute(make_tool("weather"), {}, ExecutionOptions())

    text = strategy.resolve(first.call_id, error="service unavailable").unwrap()
    typed = strategy.resolve(
        second.call_id, error=ToolError.create("weather", "quota", ErrorCode.RATE_LIMITED),
    ).unwrap()

    assert text.error is not None and text.error.code is ErrorCode.EXTERNAL_SERVICE_ERROR
    assert text.error.message == "service unavailable"
    assert typed.error is not None and typed.error.code is ErrorCode.RATE_LIMITED
    assert [r.success for r in reports.results] == [False, False]


@pytest.mark.asyncio
async def test_blank_error_text_still_resolves_once(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus, wait_for_result=True, timeout=2.0)
    resolutions: list[Result[ExecutionResult, ToolError]] = []

    async def external() -> None:
        while not strategy.has_pending:
            await asyncio.sleep(0)
        (call,) = strategy.pending_calls()
        resolutions.append(strategy.resolve(call.id, error=" "))
        resolutions.append(strategy.resolve(call.id, error="late"))

    result, _ = await asyncio.gather(
        strategy.execute(make_tool("job"), {}, ExecutionOptions()),
        external(),
    )

    assert result.error is not None and result.error.message == "External execution failed"
    assert result.error.code is ErrorCode.EXTERNAL_SERVICE_ERROR
    assert resolutions[0].unwrap() is result
    assert resolutions[1].unwrap_err().code is ErrorCode.ALREADY_RESOLVED
    assert reports.results == [result]
    assert not strategy.has_pending


@pytest.mark.asyncio
async def test_resolve_twice_or_unknown_is_an_error(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus)
    pending = await strategy.execute(make_tool("weather"), {}, ExecutionOptions())
    strategy.resolve(pending.call_id, data=1)

    again = strategy.resolve(pending.call_id, data=2)
    unknown = strategy.resolve("call_missing")

    assert again.unwrap_err().code is ErrorCode.ALREADY_RESOLVED
    assert unknown.unwrap_err().code is ErrorCode.UNKNOWN_CALL
    assert not strategy.owns("call_missing")
    assert len(reports.seen) == 1


@pytest.mark.asyncio
async def test_only_recent_resolutions_are_remembered(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus, resolved_limit=1)
    old = await strategy.execute(make_tool("weather"), {}, ExecutionOptions())
    new = await strategy.execute(make_tool("weather"), {}, ExecutionOptions())
    strategy.resolve(old.call_id, data=1)
    strategy.resolve(new.call_id, data=2)

    assert strategy.resolve(new.call_id).unwrap_err().code is ErrorCode.ALREADY_RESOLVED
    assert strategy.resolve(old.call_id).unwrap_err().code is ErrorCode.UNKNOWN_CALL
    assert not strategy.owns(old.call_id)


@pytest.mark.asyncio
async def test_outside_wait_for_result(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus, wait_for_result=True, timeout=2.0)

    async def external() -> None:
        while not strategy.has_pending:
            await asyncio.sleep(0)
        (call,) = strategy.pending_calls()
        strategy.resolve(call.id, data="done")

    result, _ = await asyncio.gather(
        strategy.execute(make_tool("job"), {}, ExecutionOptions()),
        external(),
    )

    assert result.success and result.data == "done"
    assert len(reports.seen) == 1


@pytest.mark.asyncio
async def test_resolution_from_dispatch_listener_is_seen_by_waiter(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus, wait_for_result=True, timeout=1.0)
    bus.on(EventType.CALL_DISPATCHED, lambda e: strategy.resolve(e.data["call_id"], data="inline"))

    result = await strategy.execute(make_tool("job"), {}, ExecutionOptions())

    assert result.success and result.data == "inline"


@pytest.mark.asyncio
async def test_wait_timeout_leaves_call_pending(reports: Reports, bus: EventBus) -> None:
    strategy = OutsideStrategy(reports, bus, wait_for_result=True, timeout=0.05)

    result = await strategy.execute(make_tool("job"), {}, ExecutionOptions())

    assert result.status is ExecutionStatus.FAILED
    assert result.error is not None and result.error.code is ErrorCode.TIMEOUT
    assert result.call_id is not None
    assert strategy.has_pending
    assert reports.seen == []

    late = strategy.resolve(result.call_id, data="late").unwrap()
    assert late.success
    assert reports.results == [late]


@pytest.mark.asyncio
async def test_outside_rejects_invalid_input(reports: Reports, bus: EventBus) -> None:
    recorder = EventRecorder(bus)
    strategy = OutsideStrategy(reports, bus)

    result = await strategy.execute(make_tool("count", schema=CountParams), {"count": "many"}, ExecutionOptions())

    assert result.error is not None and result.error.code is ErrorCode.INVALID_PARAMS
    assert not strategy.has_pending
    assert recorder.of(EventType.CALL_DISPATCHED) == []
    assert reports.results == [result]


def test_pending_call_to_dict() -> None:
    call = PendingToolCall(tool_name="t", args={"a": 1}, context=ExecutionContext(execution_id="x"), created_at=5.0)
    data = call.to_dict()

    assert data["id"].startswith("call_")
    assert data["status"] == "pending"
    assert data["context"]["execution_id"] == "x"


@pytest.mark.asyncio
async def test_opaque_context_metadata_is_stringified(reports: Reports, bus: EventBus) -> None:
    class Session:
        def __str__(self) -> str:
            return "<session 7>"

    strategy = OutsideStrategy(reports, bus)
    ctx = ExecutionContext(execution_id="x", metadata={"session": Session()})

    pending = await strategy.execute(make_tool("weather"), {"query": "Oslo"}, ExecutionOptions(context=ctx))

    (call,) = strategy.pending_calls()
    assert call.id == pending.call_id
    assert call.to_dict()["context"]["metadata"] == {"session": "<session 7>"}
