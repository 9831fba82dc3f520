"""Structured logging for coordinator activity.

Two kinds of callers write here:
- Strategies and the coordinator use ``get_logger()`` and log events with
  key/value context (tool, strategy, call id).
- Registry, engine, event bus and status manager log through stdlib
  ``logging.getLogger("toolgate.*")``. Those records are forwarded into the
  same renderer, so ``TOOLGATE_LOG_FORMAT=json`` covers both.

Quick Start:
    >>> from toolgate.runtime.observability import configure_logging, get_logger
    >>>
    >>> configure_logging(format="json", level="DEBUG")
    >>> log = get_logger("toolgate.coordinator").bind_tool("web_search", "outside")
    >>> log.info("call dispatched", call_id="call_1a2b")
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

from toolgate.foundation.errors import JsonDict, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

    from toolgate.foundation.config import LoggingSettings

ROOT_LOGGER = "toolgate"

# Scoped context (session id, tool) shared by every entry logged inside a log_context block
_log_context: ContextVar[JsonDict] = ContextVar("toolgate_log_context", default={})


@dataclass(slots=True)
class LogEntry:
    timestamp: float
    level: str
    event: str
    context: JsonDict

    def iso_time(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    def clock_time(self) -> str:
        """HH:MM:SS.mmm"""
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


@runtime_checkable
class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class _Config:
    renderer: LogRenderer
    level: int = logging.INFO


# ─────────────────────────────────────────────────────────────────────────────
# Logger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class BoundLogger:
    """Logger carrying key/value context. ``bind`` returns a new logger.

    Example:
        >>> log = get_logger("toolgate.strategies.outside")
        >>> log.bind(call_id="call_1a2b").info("call resolved", success=True)
    """

    context: JsonDict = field(default_factory=dict)

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return BoundLogger({**self.context, **kw})

    def bind_tool(self, name: str, strategy: str, **kw: JsonValue) -> BoundLogger:
        return self.bind(tool=name, strategy=strategy, **kw)

    def unbind(self, *keys: str) -> BoundLogger:
        return BoundLogger({k: v for k, v in self.context.items() if k not in keys})

    def debug(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.DEBUG, event, kw)

    def info(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.INFO, event, kw)

    def warning(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.WARNING, event, kw)

    def error(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.ERROR, event, kw)

    def exception(self, event: str, **kw: JsonValue) -> None:
        """Error entry with the active traceback under ``exc_info``."""
        kw["exc_info"] = traceback.format_exc()
        self._emit(logging.ERROR, event, kw)

    def _emit(self, level: int, event: str, kw: JsonDict) -> None:
        if level < _config.level:
            return
        # scope -> bound -> call site
        _render(time.time(), level, event, {**_log_context.get(), **self.context, **kw})


def _render(timestamp: float, level: int, event: str, context: JsonDict) -> None:
    name = logging.getLevelName(level).lower()
    _config.renderer.render(LogEntry(timestamp=timestamp, level=name, event=event, context=context))


class _StdlibBridge(logging.Handler):
    """Forwards ``toolgate.*`` stdlib records into the structured renderer."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            context: JsonDict = {**_log_context.get(), "logger": record.name}
            if record.exc_info:
                context["exc_info"] = "".join(traceback.format_exception(*record.exc_info))
            _render(record.created, record.levelno, record.getMessage(), context)
        except Exception:
            self.handleError(record)


_bridge = _StdlibBridge()


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class ConsoleRenderer:
    """One line per entry: ``HH:MM:SS.mmm [level] event key=value ...``.

    Values are written as JSON so strings stay quoted and booleans read ``true``.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    show_timestamp: bool = True

    def render(self, entry: LogEntry) -> None:
        head = f"[{entry.level}] {entry.event}"
        if self.show_timestamp:
            head = f"{entry.clock_time()} {head}"
        pairs = [f"{k}={_json(v)}" for k, v in sorted(entry.context.items()) if k != "exc_info"]
        print(" ".join([head, *pairs]), file=self.output)
        if "exc_info" in entry.context:
            print(entry.context["exc_info"], file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines for log aggregation."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        record = {"timestamp": entry.iso_time(), "level": entry.level, "event": entry.event, **entry.context}
        print(orjson.dumps(record, default=str).decode(), file=self.output)


@dataclass(slots=True)
class NoOpRenderer:
    def render(self, entry: LogEntry) -> None:
        pass


@dataclass(slots=True)
class MemoryRenderer:
    """Collects entries in a list, for asserting on coordinator logs."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self, tool: str | None = None) -> list[str]:
        """Event names in order, optionally only those bound to one tool."""
        return [e.event for e in self.entries if tool is None or e.context.get("tool") == tool]


_config = _Config(renderer=ConsoleRenderer())
logging.getLogger(ROOT_LOGGER).addHandler(_bridge)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────


def use_renderer(renderer: LogRenderer, level: str = "INFO") -> LogRenderer:
    """Install ``renderer`` for every toolgate logger at ``level``."""
    _config.renderer = renderer
    _config.level = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger(ROOT_LOGGER).setLevel(_config.level)
    return renderer


def configure_logging(
    format: str = "console",  # noqa: A002
    level: str = "INFO",
    *,
    output: TextIO | None = None,
) -> LogRenderer:
    """Pick a renderer by name: "console" (stderr), "json" (stdout) or "none"."""
    renderer: LogRenderer
    match format:
        case "console":
            renderer = ConsoleRenderer(output=output or sys.stderr)
        case "json":
            renderer = JsonRenderer(output=output or sys.stdout)
        case "none":
            renderer = NoOpRenderer()
        case _:
            raise ValueError(f"Unknown log format {format!r}; expected 'console', 'json' or 'none'")
    return use_renderer(renderer, level)


def configure_from_settings(settings: LoggingSettings) -> LogRenderer:
    """Apply ``TOOLGATE_LOG_FORMAT`` / ``TOOLGATE_LOG_LEVEL``."""
    return configure_logging(format=settings.format, level=settings.level)


def current_renderer() -> LogRenderer:
    return _config.renderer


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Structured logger; ``name`` is recorded under the ``logger`` key."""
    ctx: JsonDict = {"logger": name} if name else {}
    return BoundLogger({**ctx, **initial_context})


class log_context:
    """Adds key/value pairs to every entry logged inside the block, including stdlib records.

    Example:
        >>> with log_context(session_id="s-1"):
        ...     await coordinator.execute("search", {"query": "x"})
    """

    __slots__ = ("_ctx", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._ctx: JsonDict = dict(kw)
        self._token: object | None = None

    def __enter__(self) -> log_context:
        self._token = _log_context.set({**_log_context.get(), **self._ctx})
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _log_context.reset(self._token)  # type: ignore[arg-type]


def _json(value: object) -> str:
    return orjson.dumps(value, default=str).decode()
