"""Dependency-aware registry of tool definitions.

The registry provides:
- Registration with structural and custom validation, rejecting duplicates
- A dependency graph kept in sync on every (un)registration
- Per-tool execution history and one-hop availability propagation
- Tag index, search, and usage statistics

All fallible operations return ``Result``; nothing here raises for bad input.
Mutations are guarded by an RLock, and events are published after the lock
is released.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError

from toolgate.foundation.core import ExecutionContext, ToolDefinition
from toolgate.foundation.errors import Err, ErrorCode, Ok, Result, ToolError
from toolgate.runtime.events import EventBus, EventType

from .availability import AvailabilityStatus, evaluate, initial_status
from .graph import DependencyGraph

logger = logging.getLogger("toolgate.registry")

# Validators return True to accept, or a message (or False) to reject
Validator = Callable[[ToolDefinition], bool | str]


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class ToolRegistration:
    """Registry-owned mutable state for one definition."""

    definition: ToolDefinition
    available: bool
    availability_reason: str
    dependents: list[str] = field(default_factory=list)
    execution_count: int = 0
    last_executed: datetime | None = None
    usage_count: int = 0
    registered_at: datetime = field(default_factory=_now)
    last_used: datetime | None = None

    @property
    def name(self) -> str:
        return self.definition.name


@dataclass(frozen=True, slots=True)
class BatchRegistrationResult:
    """Outcome of ``register_batch``, one Result per input in order."""

    results: tuple[Result[str, ToolError], ...]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.is_ok())

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def errors(self) -> list[ToolError]:
        return [r.unwrap_err() for r in self.results if r.is_err()]


@dataclass(frozen=True, slots=True)
class ToolSearchResult:
    tools: list[ToolDefinition]
    total: int
    has_more: bool


class RegistryStatistics(BaseModel):
    """Aggregate counters across all registrations."""

    model_config = ConfigDict(frozen=True)

    total_tools: int
    available_tools: int
    executed_tools: int
    root_tools: int
    leaf_tools: int
    total_executions: int
    average_execution_count: float


def _format_definition_error(exc: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in e['loc']) or 'definition'}: {e['msg']}" for e in exc.errors())


class ToolRegistry:
    """Registry of tool definitions gated by declarative dependencies.

    Example:
        >>> registry = ToolRegistry(EventBus())
        >>> registry.register(login_def)
        >>> registry.register(search_def)   # depends on "login"
        >>> registry.get_availability("search").available
        False
        >>> registry.record_execution("login", ExecutionContext())
        >>> registry.get_availability("search").available
        True
    """

    __slots__ = ("_events", "_tools", "_history", "_tags", "_validators", "_graph", "_lock")

    def __init__(self, events: EventBus | None = None, validators: Iterable[Validator] = ()) -> None:
        self._events = events or EventBus()
        self._tools: dict[str, ToolRegistration] = {}
        self._history: dict[str, list[ExecutionContext]] = {}
        self._tags: dict[str, set[str]] = {}
        self._validators: list[Validator] = list(validators)
        self._graph = DependencyGraph()
        self._lock = threading.RLock()

    @property
    def events(self) -> EventBus:
        return self._events

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    def register(self, definition: ToolDefinition | Mapping[str, Any]) -> Result[str, ToolError]:
        """Register a definition (or a mapping coerced through ToolDefinition).

        Returns Ok(name), or Err with INVALID_DEFINITION / DUPLICATE_NAME.
        """
        checked = self._check(definition)
        if checked.is_err():
            err = checked.unwrap_err()
            logger.warning(f"Rejected tool '{err.tool_name}': {err.message}")
            return Err(err)
        defn = checked.unwrap()
        name = defn.name

        with self._lock:
            if name in self._tools:
                return Err(ToolError.create(
                    name, f"Tool '{name}' is already registered", ErrorCode.DUPLICATE_NAME, recoverable=False,
                ))
            available, reason = initial_status(defn)
            reg = ToolRegistration(definition=defn, available=available, availability_reason=reason)
            reg.dependents = [n for n, r in self._tools.items() if name in r.definition.dependency_names]
            for dep in defn.dependency_names:
                if (dep_reg := self._tools.get(dep)) is not None and name not in dep_reg.dependents:
                    dep_reg.dependents.append(name)
            self._tools[name] = reg
            for tag in defn.tags:
                self._tags.setdefault(tag, set()).add(name)
            self._rebuild_graph()

        logger.info(f"Registered tool '{name}' ({reason})")
        self._events.emit(EventType.REGISTERED, tool_name=name, available=available, reason=reason)
        return Ok(name)

    def _check(self, definition: ToolDefinition | Mapping[str, Any]) -> Result[ToolDefinition, ToolError]:
        if isinstance(definition, ToolDefinition):
            defn = definition
        elif isinstance(definition, Mapping):
            label = str(definition.get("name") or "<unnamed>")
            try:
                defn = ToolDefinition.model_validate(dict(definition))
            except ValidationError as e:
                return Err(ToolError.create(
                    label, f"Invalid definition: {_format_definition_error(e)}", ErrorCode.INVALID_DEFINITION, recoverable=False,
                ))
        else:
            return Err(ToolError.create(
                "<unnamed>",
                f"Expected ToolDefinition or mapping, got {type(definition).__name__}",
                ErrorCode.INVALID_DEFINITION,
                recoverable=False,
            ))

        for validator in list(self._validators):
            try:
                verdict = validator(defn)
            except Exception as e:
                verdict = f"validator {getattr(validator, '__name__', 'validator')} raised {type(e).__name__}: {e}"
            if verdict is not True:
                message = verdict if isinstance(verdict, str) and verdict else "rejected by validator"
                return Err(ToolError.create(defn.name, message, ErrorCode.INVALID_DEFINITION, recoverable=False))
        return Ok(defn)

    def register_batch(self, definitions: Iterable[ToolDefinition | Mapping[str, Any]]) -> BatchRegistrationResult:
        """Register each definition in order; failures do not stop the batch."""
        return BatchRegistrationResult(results=tuple(self.register(d) for d in definitions))

    def unregister(self, name: str) -> bool:
        """Remove a tool and its history. Returns True if it was registered."""
        with self._lock:
            reg = self._tools.pop(name, None)
            if reg is None:
                logger.warning(f"Cannot unregister unknown tool '{name}'")
                return False
            for tag in reg.definition.tags:
                if (names := self._tags.get(tag)) is not None:
                    names.discard(name)
                    if not names:
                        del self._tags[tag]
            for other in self._tools.values():
                if name in other.dependents:
                    other.dependents.remove(name)
            self._history.pop(name, None)
            self._rebuild_graph()
            flips = self._refresh(reg.dependents, None, trigger=name)

        logger.info(f"Unregistered tool '{name}'")
        self._events.emit(EventType.UNREGISTERED, tool_name=name)
        self._publish_flips(flips)
        return True

    def clear(self) -> None:
        """Drop every registration, tag and history entry."""
        with self._lock:
            self._tools.clear()
            self._tags.clear()
            self._history.clear()
            self._graph = DependencyGraph()

    # ─────────────────────────────────────────────────────────────────
    # Validators
    # ─────────────────────────────────────────────────────────────────

    def add_validator(self, validator: Validator) -> None:
        self._validators.append(validator)

    def remove_validator(self, validator: Validator) -> bool:
        try:
            self._validators.remove(validator)
        except ValueError:
            return False
        return True

    # ─────────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────────

    def get(self, name: str) -> ToolDefinition | None:
        reg = self._tools.get(name)
        return reg.definition if reg else None

    def get_registration(self, name: str) -> ToolRegistration | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def get_available_tools(self) -> list[ToolDefinition]:
        """Definitions whose tracked availability flag is set."""
        with self._lock:
            return [r.definition for r in self._tools.values() if r.available]

    def get_tags(self) -> list[str]:
        return sorted(self._tags)

    def get_tools_by_tag(self, tag: str) -> list[ToolDefinition]:
        names = self._tags.get(tag, set())
        return [r.definition for n, r in self._tools.items() if n in names]

    def search(
        self,
        *,
        name: str | None = None,
        description: str | None = None,
        tags: Iterable[str] | None = None,
        category: str | None = None,
        available: bool | None = None,
        enabled_only: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> ToolSearchResult:
        """Filter definitions. ``name`` and ``description`` are case-insensitive regexes.

        An invalid pattern matches nothing.
        """
        try:
            name_re = re.compile(name, re.IGNORECASE) if name else None
            description_re = re.compile(description, re.IGNORECASE) if description else None
        except re.error as e:
            logger.warning(f"Invalid search pattern: {e}")
            return ToolSearchResult(tools=[], total=0, has_more=False)

        with self._lock:
            regs = list(self._tools.values())
        if name_re is not None:
            regs = [r for r in regs if name_re.search(r.name)]
        if description_re is not None:
            regs = [r for r in regs if description_re.search(r.definition.description)]
        if tags:
            wanted = set(tags)
            regs = [r for r in regs if wanted.intersection(r.definition.tags)]
        if category is not None:
            regs = [r for r in regs if r.definition.category == category]
        if enabled_only:
            regs = [r for r in regs if r.definition.enabled]
        if available is not None:
            regs = [r for r in regs if r.available is available]

        total = len(regs)
        end = total if limit is None else offset + limit
        return ToolSearchResult(tools=[r.definition for r in regs[offset:end]], total=total, has_more=end < total)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter([r.definition for r in self._tools.values()])

    # ─────────────────────────────────────────────────────────────────
    # History view (used by availability evaluation)
    # ─────────────────────────────────────────────────────────────────

    def is_registered(self, name: str) -> bool:
        return name in self._tools

    def has_executed(self, name: str) -> bool:
        reg = self._tools.get(name)
        return reg is not None and reg.execution_count > 0

    def last_context(self, name: str) -> ExecutionContext | None:
        history = self._history.get(name)
        return history[-1] if history else None

    def execution_history(self, name: str) -> list[ExecutionContext]:
        """Every recorded context for a tool, oldest first."""
        with self._lock:
            return list(self._history.get(name, ()))

    # ─────────────────────────────────────────────────────────────────
    # Availability
    # ─────────────────────────────────────────────────────────────────

    def get_availability(self, name: str, context: ExecutionContext | None = None) -> AvailabilityStatus:
        """Evaluate availability now. Never raises; unknown names report "not registered"."""
        with self._lock:
            reg = self._tools.get(name)
            if reg is None:
                return AvailabilityStatus.not_registered(name)
            return evaluate(reg.definition, self, context)

    def get_all_statuses(self, context: ExecutionContext | None = None) -> list[AvailabilityStatus]:
        with self._lock:
            return [self.get_availability(n, context) for n in self._tools]

    def record_execution(self, name: str, context: ExecutionContext) -> bool:
        """Record a successful execution and re-evaluate direct dependents.

        Returns False (and logs) for unknown tools.
        """
        with self._lock:
            reg = self._tools.get(name)
            if reg is None:
                logger.warning(f"Ignoring execution record for unknown tool '{name}'")
                return False
            reg.execution_count += 1
            reg.last_executed = _now()
            self._history.setdefault(name, []).append(context)
            flips = self._refresh(reg.dependents, context, trigger=name)
            count = reg.execution_count

        logger.debug(f"Recorded execution of '{name}' (count={count})")
        self._publish_flips(flips)
        return True

    def update_usage(self, name: str) -> None:
        with self._lock:
            if (reg := self._tools.get(name)) is not None:
                reg.usage_count += 1
                reg.last_used = _now()

    def reset(self, name: str) -> bool:
        """Forget a tool's executions and re-evaluate its direct dependents."""
        with self._lock:
            reg = self._tools.get(name)
            if reg is None:
                return False
            reg.execution_count = 0
            reg.last_executed = None
            self._history.pop(name, None)
            flips = self._refresh(reg.dependents, None, trigger=name)

        logger.info(f"Reset execution state of '{name}'")
        self._publish_flips(flips)
        return True

    def reset_all(self) -> None:
        """Forget every execution and restore registration-time availability."""
        flips: list[tuple[ToolRegistration, str]] = []
        with self._lock:
            self._history.clear()
            for reg in self._tools.values():
                reg.execution_count = 0
                reg.last_executed = None
                available, reason = initial_status(reg.definition)
                if available != reg.available:
                    flips.append((reg, "reset"))
                reg.available, reg.availability_reason = available, reason

        logger.info("Reset execution state of all tools")
        self._publish_flips(flips)

    def _refresh(
        self, names: Iterable[str], context: ExecutionContext | None, *, trigger: str,
    ) -> list[tuple[ToolRegistration, str]]:
        """Re-evaluate the given tools. Caller must hold the lock. Returns flipped registrations."""
        flips = []
        for dep_name in list(names):
            if (dep_reg := self._tools.get(dep_name)) is None:
                continue
            status = evaluate(dep_reg.definition, self, context)
            changed = status.available != dep_reg.available
            dep_reg.available, dep_reg.availability_reason = status.available, status.reason
            if changed:
                flips.append((dep_reg, trigger))
        return flips

    def _publish_flips(self, flips: list[tuple[ToolRegistration, str]]) -> None:
        for reg, trigger in flips:
            logger.info(f"Tool '{reg.name}' is now {'available' if reg.available else 'unavailable'}: {reg.availability_reason}")
            self._events.emit(
                EventType.AVAILABILITY_CHANGED,
                tool_name=reg.name,
                available=reg.available,
                reason=reg.availability_reason,
                triggered_by=trigger,
            )

    # ─────────────────────────────────────────────────────────────────
    # Graph
    # ─────────────────────────────────────────────────────────────────

    def _rebuild_graph(self) -> None:
        rules: dict[tuple[str, str], tuple[str, ...]] = {}
        for name, reg in self._tools.items():
            for group in reg.definition.dependency_groups:
                for dep in group.dependencies:
                    rules[(dep.tool_name, name)] = (*rules.get((dep.tool_name, name), ()), group.type.value)
        self._graph = DependencyGraph.build(
            {n: r.definition.dependency_names for n, r in self._tools.items()},
            {n: r.dependents for n, r in self._tools.items()},
            rules,
        )

    def get_dependency_graph(self) -> DependencyGraph:
        return self._graph

    def get_execution_path(self, target: str) -> list[str]:
        """Root-first path of tools leading to ``target``; ``[]`` if none."""
        return self._graph.path_to(target)

    # ─────────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────────

    def get_statistics(self) -> RegistryStatistics:
        with self._lock:
            regs = list(self._tools.values())
            graph = self._graph
        total = len(regs)
        executions = sum(r.execution_count for r in regs)
        return RegistryStatistics(
            total_tools=total,
            available_tools=sum(1 for r in regs if r.available),
            executed_tools=sum(1 for r in regs if r.execution_count > 0),
            root_tools=len(graph.root_nodes),
            leaf_tools=len(graph.leaf_nodes),
            total_executions=executions,
            average_execution_count=round(executions / total, 2) if total else 0.0,
        )
