"""Execution engine: cache, validation, timed invocation and retry.

The engine knows nothing about the registry or status tracking. It takes a
definition and raw input and produces an ExecutionResult; every failure
downstream of handler invocation is captured, never raised.

A timed-out handler is NOT cancelled. Its task keeps running to completion in
the background and its eventual outcome is discarded (``orphaned_tasks``
exposes how many are still alive).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from toolgate.foundation.errors import Err, ErrorCode, Ok, Result, ToolError, ToolException
from toolgate.runtime.cache import ExecutionCache, make_key
from toolgate.runtime.retry import RetryPolicy

from .result import ExecutionOptions, ExecutionResult

if TYPE_CHECKING:
    from toolgate.foundation.config import ToolgateSettings
    from toolgate.foundation.core import ToolDefinition

logger = logging.getLogger("toolgate.engine")

DEFAULT_TIMEOUT: float = 30.0


def _format_validation(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "input"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def validate_input(definition: ToolDefinition, raw: BaseModel | dict[str, Any] | None) -> Result[BaseModel, ToolError]:
    """Validate raw input against the definition's schema (INVALID_PARAMS on failure)."""
    schema = definition.input_schema
    if isinstance(raw, schema):
        return Ok(raw)
    try:
        payload = raw.model_dump() if isinstance(raw, BaseModel) else (raw or {})
        return Ok(schema.model_validate(payload))
    except ValidationError as e:
        return Err(ToolError.create(
            definition.name,
            f"Invalid parameters: {_format_validation(e)}",
            ErrorCode.INVALID_PARAMS,
            recoverable=False,
        ))


class ExecutionEngine:
    """Runs a tool handler with caching, timeout and retry.

    Args:
        cache: Result cache; ``None`` disables caching entirely
        retry: Default retry policy (overridable per call via ``retries``)
        timeout: Default per-attempt timeout in seconds; ``None`` = unbounded

    Example:
        >>> engine = ExecutionEngine(ExecutionCache(), timeout=5.0)
        >>> result = await engine.execute(definition, {"query": "python"})
        >>> result.success, result.from_cache
        (True, False)
    """

    __slots__ = ("_cache", "_retry", "_timeout", "_orphans")

    def __init__(
        self,
        cache: ExecutionCache | None = None,
        *,
        retry: RetryPolicy | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self._cache = cache
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._orphans: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_settings(cls, settings: ToolgateSettings, *, clock: Any = None) -> ExecutionEngine:
        cache = None
        if settings.cache.enabled:
            kw = {"clock": clock} if clock is not None else {}
            cache = ExecutionCache(ttl=settings.cache.ttl, max_size=settings.cache.max_size, **kw)
        return cls(cache, retry=RetryPolicy.from_settings(settings.retry), timeout=settings.execution.timeout)

    @property
    def cache(self) -> ExecutionCache | None:
        return self._cache

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def orphaned_tasks(self) -> int:
        """Handlers that timed out and are still running."""
        return len(self._orphans)

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    async def execute(
        self,
        definition: ToolDefinition,
        input: BaseModel | dict[str, Any] | None,  # noqa: A002
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Execute ``definition`` with ``input``.

        Order: cache lookup, input validation, handler call (timed, retried),
        cache write-through on success.
        """
        opts = options or ExecutionOptions()
        name = definition.name
        raw = input if input is not None else {}
        started = time.perf_counter()

        def elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 3)

        key: str | None = None
        if self._cache is not None and opts.use_cache:
            key = make_key(name, raw, opts.context)
            entry = self._cache.lookup(key)
            if entry is not None:
                logger.debug(f"[{name}] Cache hit")
                return ExecutionResult.ok(
                    name, entry.result, from_cache=True, context=opts.context, execution_time_ms=elapsed(),
                )

        params = validate_input(definition, raw)
        if params.is_err():
            return ExecutionResult.failure(params.unwrap_err(), context=opts.context, execution_time_ms=elapsed())

        policy = self._retry if opts.retries is None else self._retry.with_retries(opts.retries)
        timeout = self._resolve_timeout(opts)
        validated = params.unwrap()

        attempt = 0
        while True:
            outcome = await self._attempt(definition, validated, timeout)
            if outcome.is_ok():
                data = outcome.unwrap()
                if key is not None:
                    self._cache.store(key, data)  # type: ignore[union-attr]
                return ExecutionResult.ok(
                    name, data, attempts=attempt + 1, context=opts.context, execution_time_ms=elapsed(),
                )

            error = outcome.unwrap_err()
            if not policy.should_retry(error.code, attempt):
                break
            delay = policy.get_delay(attempt)
            logger.info(f"[{name}] Retry {attempt + 1}/{policy.max_retries} after {delay:.1f}s (code: {error.code})")
            if policy.on_retry:
                policy.on_retry(attempt, error.code, delay)
            await asyncio.sleep(delay)
            attempt += 1

        logger.warning(f"[{name}] Failed after {attempt + 1} attempt(s): {error.message}")
        return ExecutionResult.failure(error, attempts=attempt + 1, context=opts.context, execution_time_ms=elapsed())

    def _resolve_timeout(self, opts: ExecutionOptions) -> float | None:
        if opts.timeout is None:
            return self._timeout
        return opts.timeout or None

    async def _attempt(self, definition: ToolDefinition, params: BaseModel, timeout: float | None) -> Result[Any, ToolError]:
        """One timed handler invocation."""
        name = definition.name
        task = asyncio.ensure_future(_invoke(definition.handler, params))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            self._orphans.add(task)
            task.add_done_callback(self._reap)
            return Err(ToolError.create(name, f"Execution timed out after {timeout}s", ErrorCode.TIMEOUT))

        try:
            value = task.result()
        except ToolException as e:
            return Err(e.error)
        except Exception as e:
            return Err(ToolError.from_exception(name, e))

        if isinstance(value, Result):
            if value.is_ok():
                return Ok(value.unwrap())
            err = value.unwrap_err()
            if isinstance(err, ToolError):
                return Err(err)
            return Err(ToolError.create(name, str(err).strip() or "Handler returned an error", ErrorCode.HANDLER_ERROR))
        return Ok(value)

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._orphans.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Orphaned handler finished with error: {task.exception()!r}")

    # ─────────────────────────────────────────────────────────────────
    # Cache management
    # ─────────────────────────────────────────────────────────────────

    def clear_cache(self, tool_name: str | None = None) -> int:
        """Drop cached results for one tool, or everything. Returns count removed."""
        if self._cache is None:
            return 0
        if tool_name is not None:
            return self._cache.invalidate_tool(tool_name)
        count = self._cache.size
        self._cache.clear()
        return count

    def cache_stats(self) -> dict[str, object]:
        if self._cache is None:
            return {"enabled": False}
        return {"enabled": True, **self._cache.stats()}


async def _invoke(handler: Any, params: BaseModel) -> Any:
    """Await async handlers; run sync ones in a worker thread."""
    if inspect.iscoroutinefunction(handler):
        return await handler(params)
    result = await asyncio.to_thread(handler, params)
    if inspect.isawaitable(result):
        return await result
    return result
