"""Failure tracking with opportunistic auto-recovery.

Every execution outcome is reported here. Consecutive failures accumulate per
tool; reaching the threshold marks the tool FAILED and flags it for rebinding.
With auto-rebind on, one deferred sweep is scheduled per failed tool on the
running event loop. A sweep returns a FAILED tool to AVAILABLE once its last
failure is older than ``failure_duration``.

State machine::

    AVAILABLE --(streak >= threshold)--> FAILED
    FAILED    --(success | sweep past window | reset)--> AVAILABLE
    any       --(set_status)--> any
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from toolgate.foundation.core import ExecutionContext
from toolgate.foundation.errors import ToolError
from toolgate.runtime.events import EventBus, EventType

if TYPE_CHECKING:
    from toolgate.foundation.config import StatusSettings
    from toolgate.registry import ToolRegistry

logger = logging.getLogger("toolgate.status")

Clock = Callable[[], float]


class ToolStatus(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
    MAINTENANCE = "maintenance"


class ToolStatusInfo(BaseModel):
    """Tracked health of one tool. Timestamps are clock seconds."""

    model_config = ConfigDict(validate_assignment=True)

    tool_name: str
    status: ToolStatus = ToolStatus.AVAILABLE
    consecutive_failures: NonNegativeInt = 0
    last_success_time: float | None = None
    last_failure_time: float | None = None
    last_updated: float = Field(default_factory=time.time)
    should_rebind: bool = False
    reason: str | None = None

    @property
    def usable(self) -> bool:
        return self.status is ToolStatus.AVAILABLE


class StatusManager:
    """Tracks failure streaks and schedules recovery sweeps.

    Args:
        registry: Receives ``record_execution`` for every reported success
        events: Bus for ``tool.status.changed`` / ``tool.rebind.scheduled``
        failure_threshold: Consecutive failures that mark a tool FAILED
        failure_duration: Seconds since the last failure before a sweep recovers it
        auto_rebind: Schedule a deferred sweep when a tool fails
        rebind_delay: Seconds until that sweep runs
        enabled: When False, failures are not tracked (successes still forward)
        clock: Time source, injectable for tests
    """

    __slots__ = (
        "_registry", "_events", "_records", "_timers", "_lock", "_clock",
        "failure_threshold", "failure_duration", "auto_rebind", "rebind_delay", "enabled",
    )

    def __init__(
        self,
        registry: ToolRegistry,
        events: EventBus | None = None,
        *,
        failure_threshold: int = 3,
        failure_duration: float = 300.0,
        auto_rebind: bool = True,
        rebind_delay: float = 10.0,
        enabled: bool = True,
        clock: Clock = time.time,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self._registry = registry
        self._events = events or registry.events
        self._records: dict[str, ToolStatusInfo] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self.failure_threshold = failure_threshold
        self.failure_duration = failure_duration
        self.auto_rebind = auto_rebind
        self.rebind_delay = rebind_delay
        self.enabled = enabled

    @classmethod
    def from_settings(
        cls, settings: StatusSettings, registry: ToolRegistry, events: EventBus | None = None, *, clock: Clock = time.time,
    ) -> StatusManager:
        return cls(
            registry,
            events,
            failure_threshold=settings.failure_threshold,
            failure_duration=settings.failure_duration,
            auto_rebind=settings.auto_rebind,
            rebind_delay=settings.rebind_delay,
            enabled=settings.enabled,
            clock=clock,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reporting
    # ─────────────────────────────────────────────────────────────────

    def report_success(self, name: str, context: ExecutionContext | None = None) -> ToolStatusInfo:
        """Reset the failure streak and forward the execution to the registry."""
        with self._lock:
            info = self._ensure(name)
            previous = info.status
            now = self._clock()
            info.consecutive_failures = 0
            info.status = ToolStatus.AVAILABLE
            info.last_success_time = now
            info.last_updated = now
            info.should_rebind = False
            info.reason = None
            snapshot = info.model_copy()
            if (handle := self._timers.pop(name, None)) is not None:
                handle.cancel()

        if previous is not ToolStatus.AVAILABLE:
            self._announce(snapshot, previous)
        self._registry.record_execution(name, context or ExecutionContext())
        return snapshot

    def report_failure(self, name: str, error: ToolError | str | None = None) -> ToolStatusInfo:
        """Count a failure; at the threshold mark the tool FAILED and schedule recovery."""
        message = error.message if isinstance(error, ToolError) else error
        with self._lock:
            info = self._ensure(name)
            if not self.enabled:
                return info.model_copy()
            previous = info.status
            now = self._clock()
            info.consecutive_failures += 1
            info.last_failure_time = now
            info.last_updated = now
            streak = info.consecutive_failures
            tripped = streak >= self.failure_threshold
            if tripped:
                info.status = ToolStatus.FAILED
                info.should_rebind = True
                info.reason = f"failed {streak} consecutive times" + (f": {message}" if message else "")
            else:
                info.reason = f"{streak}/{self.failure_threshold} failures"
            snapshot = info.model_copy()

        if tripped:
            if previous is not ToolStatus.FAILED:
                logger.warning(f"Tool '{name}' marked failed after {streak} consecutive failures")
            if self.auto_rebind:
                self._schedule_sweep(name)
        if snapshot.status is not previous:
            self._announce(snapshot, previous)
        return snapshot

    # ─────────────────────────────────────────────────────────────────
    # Recovery
    # ─────────────────────────────────────────────────────────────────

    def _schedule_sweep(self, name: str) -> None:
        if name in self._timers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info(f"No running event loop; recovery sweep for '{name}' not scheduled")
            return
        self._timers[name] = loop.call_later(self.rebind_delay, self._scheduled_sweep, name)
        self._events.emit(EventType.REBIND_SCHEDULED, tool_name=name, delay=self.rebind_delay)

    def _scheduled_sweep(self, name: str) -> None:
        self._timers.pop(name, None)
        recovered = self._sweep_names([name], self._clock())
        if not recovered:
            logger.debug(f"Recovery sweep for '{name}' found it still inside its failure window")

    def sweep(self, now: float | None = None) -> list[str]:
        """Recover every FAILED tool whose failure window has elapsed. Returns their names."""
        with self._lock:
            names = list(self._records)
        return self._sweep_names(names, self._clock() if now is None else now)

    def _sweep_names(self, names: Iterable[str], now: float) -> list[str]:
        changed: list[ToolStatusInfo] = []
        with self._lock:
            for name in names:
                info = self._records.get(name)
                if info is None or info.status is not ToolStatus.FAILED:
                    continue
                if info.last_failure_time is None or now - info.last_failure_time <= self.failure_duration:
                    continue
                info.status = ToolStatus.AVAILABLE
                info.consecutive_failures = 0
                info.last_updated = now
                info.reason = "recovered after failure window"
                changed.append(info.model_copy())

        for snapshot in changed:
            logger.info(f"Tool '{snapshot.tool_name}' recovered")
            self._announce(snapshot, ToolStatus.FAILED)
        return [s.tool_name for s in changed]

    def pending_rebinds(self) -> list[str]:
        """Names flagged for rebinding since the last call; clears the flags."""
        with self._lock:
            names = [n for n, info in self._records.items() if info.should_rebind]
            for n in names:
                self._records[n].should_rebind = False
            return names

    def scheduled_sweeps(self) -> list[str]:
        return list(self._timers)

    # ─────────────────────────────────────────────────────────────────
    # Manual control
    # ─────────────────────────────────────────────────────────────────

    def set_status(self, name: str, status: ToolStatus | str, reason: str | None = None) -> ToolStatusInfo:
        """Override a tool's status.

        A manual FAILED clears the failure time, so sweeps leave it alone
        until the next reported failure or another override.
        """
        new_status = ToolStatus(status)
        with self._lock:
            info = self._ensure(name)
            previous = info.status
            info.status = new_status
            info.reason = reason
            info.last_updated = self._clock()
            if new_status is ToolStatus.AVAILABLE:
                info.consecutive_failures = 0
            elif new_status is ToolStatus.FAILED:
                info.last_failure_time = None
            snapshot = info.model_copy()
        if previous is not new_status:
            self._announce(snapshot, previous)
        return snapshot

    def reset(self, name: str) -> bool:
        """Forget everything tracked for a tool."""
        with self._lock:
            info = self._records.pop(name, None)
            if (handle := self._timers.pop(name, None)) is not None:
                handle.cancel()
        if info is None:
            return False
        if info.status is not ToolStatus.AVAILABLE:
            self._announce(ToolStatusInfo(tool_name=name, last_updated=self._clock(), reason="reset"), info.status)
        return True

    def reset_all(self) -> None:
        with self._lock:
            names = list(self._records)
        for name in names:
            self.reset(name)

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    def get_status(self, name: str) -> ToolStatusInfo | None:
        with self._lock:
            info = self._records.get(name)
            return info.model_copy() if info else None

    def get_all(self) -> list[ToolStatusInfo]:
        with self._lock:
            return [info.model_copy() for info in self._records.values()]

    def is_usable(self, name: str) -> bool:
        """Untracked tools count as usable."""
        with self._lock:
            info = self._records.get(name)
            return info is None or info.usable

    # ─────────────────────────────────────────────────────────────────
    # Persistence
    # ─────────────────────────────────────────────────────────────────

    def export_records(self) -> list[dict[str, Any]]:
        """Flat JSON-serialisable list of every record."""
        with self._lock:
            return [info.model_dump(mode="json") for info in self._records.values()]

    def import_records(self, records: Iterable[dict[str, Any]]) -> int:
        """Load exported records over the tracked state. Returns count imported."""
        parsed = [ToolStatusInfo.model_validate(r) for r in records]
        with self._lock:
            for info in parsed:
                self._records[info.tool_name] = info
        logger.info(f"Imported {len(parsed)} status record(s)")
        return len(parsed)

    def close(self) -> None:
        """Cancel every scheduled sweep."""
        with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _ensure(self, name: str) -> ToolStatusInfo:
        info = self._records.get(name)
        if info is None:
            info = self._records[name] = ToolStatusInfo(tool_name=name, last_updated=self._clock())
        return info

    def _announce(self, info: ToolStatusInfo, previous: ToolStatus) -> None:
        self._events.emit(
            EventType.STATUS_CHANGED,
            tool_name=info.tool_name,
            status=info.status.value,
            previous=previous.value,
            consecutive_failures=info.consecutive_failures,
            reason=info.reason,
        )
