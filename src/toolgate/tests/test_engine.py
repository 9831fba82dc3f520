"""Tests for the execution engine."""

from __future__ import annotations

import asyncio

import pytest

from toolgate.foundation.config import ToolgateSettings
from toolgate.foundation.core import ExecutionContext
from toolgate.foundation.errors import Err, ErrorCode, Ok, ToolException
from toolgate.runtime.cache import ExecutionCache
from toolgate.runtime.engine import ExecutionEngine, ExecutionOptions, ExecutionStatus
from toolgate.runtime.retry import ConstantBackoff, RetryPolicy

from .helpers import CountParams, FakeClock, QueryParams, make_tool


def _engine(cache: ExecutionCache | None = None, *, timeout: float | None = 1.0) -> ExecutionEngine:
    return ExecutionEngine(
        cache if cache is not None else ExecutionCache(),
        retry=RetryPolicy(backoff=ConstantBackoff(0.0)),
        timeout=timeout,
    )


class Flaky:
    """Fails a set number of times before succeeding."""

    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.calls = 0
        self.exc = exc or RuntimeError("transient")

    def __call__(self, params: QueryParams) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return f"ok after {self.calls}"


@pytest.mark.asyncio
async def test_sync_handler_success_then_cache_hit() -> None:
    calls: list[str] = []
    tool = make_tool("search", handler=lambda p: calls.append(p.query) or f"results:{p.query}")
    engine = _engine()

    first = await engine.execute(tool, {"query": "tea"})
    second = await engine.execute(tool, {"query": "tea"})

    assert first.success and first.status is ExecutionStatus.SUCCEEDED
    assert first.data == "results:tea"
    assert first.attempts == 1 and not first.from_cache
    assert second.from_cache and second.data == "results:tea"
    assert calls == ["tea"]


@pytest.mark.asyncio
async def test_async_handler_receives_validated_model() -> None:
    seen: list[object] = []

    async def handler(params: CountParams) -> int:
        seen.append(params)
        return params.count * 2

    tool = make_tool("double", handler=handler, schema=CountParams)
    result = await _engine().execute(tool, {"count": "21"})

    assert result.data == 42
    assert isinstance(seen[0], CountParams)


@pytest.mark.asyncio
async def test_invalid_params_skip_handler_retry_and_cache() -> None:
    handler = Flaky(0)
    cache = ExecutionCache()
    engine = ExecutionEngine(cache, retry=RetryPolicy(max_retries=3, backoff=ConstantBackoff(0.0)))
    tool = make_tool("double", handler=handler, schema=CountParams)

    result = await engine.execute(tool, {"count": "not a number"})

    assert result.status is ExecutionStatus.FAILED
    assert result.error is not None and result.error.code is ErrorCode.INVALID_PARAMS
    assert "count" in result.error.message
    assert not result.error.recoverable
    assert result.attempts == 0
    assert handler.calls == 0
    assert cache.size == 0


@pytest.mark.asyncio
async def test_retries_until_success() -> None:
    handler = Flaky(2)
    result = await _engine().execute(make_tool("flaky", handler=handler), {}, ExecutionOptions(retries=2))

    assert result.success
    assert result.data == "ok after 3"
    assert result.attempts == 3


@pytest.mark.asyncio
async def test_exhausted_retries_return_last_error() -> None:
    handler = Flaky(10, RuntimeError("still broken"))
    retried: list[int] = []
    engine = ExecutionEngine(
        ExecutionCache(),
        retry=RetryPolicy(max_retries=2, backoff=ConstantBackoff(0.0), on_retry=lambda a, c, d: retried.append(a)),
    )

    result = await engine.execute(make_tool("flaky", handler=handler), {})

    assert not result.success
    assert result.error is not None
    assert result.error.code is ErrorCode.HANDLER_ERROR
    assert result.error.message == "still broken"
    assert result.attempts == 3
    assert handler.calls == 3
    assert retried == [0, 1]


@pytest.mark.asyncio
async def test_non_retryable_tool_exception_stops_early() -> None:
    exc = ToolException.create("guarded", "no access", ErrorCode.PERMISSION_DENIED, recoverable=False)
    handler = Flaky(10, exc)

    result = await _engine().execute(make_tool("guarded", handler=handler), {}, ExecutionOptions(retries=3))

    assert result.error is not None and result.error.code is ErrorCode.PERMISSION_DENIED
    assert result.attempts == 1
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_result_returning_handlers() -> None:
    engine = _engine()
    ok = await engine.execute(make_tool("good", handler=lambda p: Ok("fine")), {})
    bad = await engine.execute(make_tool("bad", handler=lambda p: Err("nope")), {})

    assert ok.success and ok.data == "fine"
    assert not bad.success
    assert bad.error is not None and bad.error.code is ErrorCode.HANDLER_ERROR
    assert bad.error.message == "nope"


@pytest.mark.asyncio
async def test_blank_error_messages_are_still_captured() -> None:
    def blank(params: QueryParams) -> str:
        raise ValueError("   ")

    engine = _engine()
    raised = await engine.execute(make_tool("blank", handler=blank), {})
    returned = await engine.execute(make_tool("quiet", handler=lambda p: Err(" ")), {})

    assert raised.status is ExecutionStatus.FAILED
    assert raised.error is not None and raised.error.message == "ValueError"
    assert raised.error.code is ErrorCode.HANDLER_ERROR
    assert returned.error is not None and returned.error.message == "Handler returned an error"


@pytest.mark.asyncio
async def test_context_with_opaque_metadata_is_cached() -> None:
    calls: list[str] = []
    tool = make_tool("echo", handler=lambda p: calls.append(p.query) or "done")
    opts = ExecutionOptions(context=ExecutionContext(metadata={"request": object()}))
    engine = _engine()

    first = await engine.execute(tool, {}, opts)
    second = await engine.execute(tool, {}, opts)

    assert first.success and not first.from_cache
    assert second.success and second.from_cache
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_timeout_does_not_cancel_handler() -> None:
    finished = asyncio.Event()

    async def slow(params: QueryParams) -> str:
        await asyncio.sleep(0.2)
        finished.set()
        return "late"

    engine = _engine()
    result = await engine.execute(make_tool("slow", handler=slow), {}, ExecutionOptions(timeout=0.05))

    assert result.error is not None and result.error.code is ErrorCode.TIMEOUT
    assert engine.orphaned_tasks == 1

    await asyncio.wait_for(finished.wait(), timeout=2.0)
    await asyncio.sleep(0.05)
    assert engine.orphaned_tasks == 0
    assert engine.cache is not None and engine.cache.size == 0


@pytest.mark.asyncio
async def test_each_retry_attempt_is_timed_independently() -> None:
    calls = 0

    async def slow_then_fast(params: QueryParams) -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(0.5)
        return f"attempt {calls}"

    result = await _engine().execute(
        make_tool("mixed", handler=slow_then_fast), {}, ExecutionOptions(timeout=0.05, retries=1),
    )

    assert result.success
    assert result.data == "attempt 2"
    assert result.attempts == 2


@pytest.mark.asyncio
async def test_concurrent_identical_calls_both_run() -> None:
    calls = 0

    async def handler(params: QueryParams) -> int:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return calls

    engine = _engine()
    tool = make_tool("count", handler=handler)
    await asyncio.gather(engine.execute(tool, {"query": "same"}), engine.execute(tool, {"query": "same"}))

    assert calls == 2


@pytest.mark.asyncio
async def test_use_cache_false_bypasses_cache() -> None:
    handler = Flaky(0)
    engine = _engine()
    tool = make_tool("t", handler=handler)

    await engine.execute(tool, {}, ExecutionOptions(use_cache=False))
    await engine.execute(tool, {}, ExecutionOptions(use_cache=False))

    assert handler.calls == 2
    assert engine.cache is not None and engine.cache.size == 0


@pytest.mark.asyncio
async def test_cache_expiry_reruns_handler(clock: FakeClock) -> None:
    handler = Flaky(0)
    engine = _engine(ExecutionCache(ttl=60.0, clock=clock))
    tool = make_tool("t", handler=handler)

    await engine.execute(tool, {})
    clock.advance(61)
    again = await engine.execute(tool, {})

    assert not again.from_cache
    assert handler.calls == 2


@pytest.mark.asyncio
async def test_clear_cache_and_stats() -> None:
    engine = _engine()
    await engine.execute(make_tool("a"), {"query": "1"})
    await engine.execute(make_tool("b"), {"query": "1"})

    assert engine.cache_stats()["total_entries"] == 2
    assert engine.clear_cache("a") == 1
    assert engine.clear_cache() == 1
    assert ExecutionEngine(None).cache_stats() == {"enabled": False}


def test_from_settings_honours_cache_switch(settings: ToolgateSettings) -> None:
    assert ExecutionEngine.from_settings(settings).cache is not None
    disabled = settings.model_copy(update={"cache": settings.cache.model_copy(update={"enabled": False})})
    assert ExecutionEngine.from_settings(disabled).cache is None
