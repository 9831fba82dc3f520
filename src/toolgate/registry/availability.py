"""Dependency satisfaction rules.

Pure functions over a tool definition and a read-only view of execution
history. Nothing here mutates state or raises: a condition that throws is
logged and treated as not holding.

Rules:
    - A dependency is satisfied when its tool has executed at least once and
      its condition (if any) holds against that tool's most recent context.
    - An unexecuted OPTIONAL dependency is satisfied; an unexecuted REQUIRED
      one is not. An executed dependency whose condition fails is satisfied
      only when OPTIONAL.
    - ``any`` needs one satisfied dependency, ``all`` needs every one, and
      ``sequence`` stops at the first unmet dependency, the only one reported.
    - A group ``condition`` is evaluated against the current context.
    - A tool's groups combine with AND.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from toolgate.foundation.core import (
    Condition,
    Dependency,
    DependencyGroup,
    DependencyKind,
    ExecutionContext,
    GroupType,
    ToolDefinition,
)

logger = logging.getLogger("toolgate.registry")

REASON_NO_DEPENDENCIES = "no dependencies"
REASON_AWAITING = "awaiting dependencies"
REASON_SATISFIED = "all dependencies satisfied"
REASON_NOT_REGISTERED = "not registered"
REASON_DISABLED = "disabled"

# Stand-in context used when availability is queried without a live execution
QUERY_CONTEXT = ExecutionContext(execution_id="query", session_id="query", thread_id="query")


class HistoryView(Protocol):
    """What the rules need to know about past executions."""

    def is_registered(self, name: str) -> bool: ...
    def has_executed(self, name: str) -> bool: ...
    def last_context(self, name: str) -> ExecutionContext | None: ...


class AvailabilityStatus(BaseModel):
    """Whether a tool may run now, and what is blocking it if not."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    available: bool
    reason: str
    missing_dependencies: tuple[str, ...] = ()
    suggested_actions: tuple[str, ...] = ()

    @classmethod
    def not_registered(cls, name: str) -> AvailabilityStatus:
        return cls(tool_name=name, available=False, reason=REASON_NOT_REGISTERED, suggested_actions=(f'register tool "{name}"',))


@dataclass(slots=True)
class GroupOutcome:
    satisfied: bool
    missing: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)


def _holds(condition: Condition, context: ExecutionContext, subject: str) -> bool:
    try:
        return bool(condition(context))
    except Exception as e:
        logger.warning(f"Condition for '{subject}' raised {type(e).__name__}: {e}; treating as false")
        return False


def check_dependency(dep: Dependency, history: HistoryView) -> tuple[bool, str | None]:
    """Evaluate one dependency. Returns (satisfied, suggested action when unmet)."""
    optional = dep.kind is DependencyKind.OPTIONAL
    name = dep.tool_name
    if not history.has_executed(name):
        if optional:
            return True, None
        if not history.is_registered(name):
            return False, f'register tool "{name}"'
        return False, f'execute tool "{name}"'
    if dep.condition is not None:
        last = history.last_context(name)
        if last is not None and not _holds(dep.condition, last, name):
            return optional, None if optional else f're-execute tool "{name}" to satisfy its condition'
    return True, None


def check_group(group: DependencyGroup, history: HistoryView, context: ExecutionContext) -> GroupOutcome:
    """Evaluate one group against history and the current context."""
    if group.condition is not None and not _holds(group.condition, context, group.label):
        return GroupOutcome(False, actions=[f'satisfy condition of group "{group.label}"'])

    if group.type is GroupType.SEQUENCE:
        for dep in group.dependencies:
            ok, action = check_dependency(dep, history)
            if not ok:
                return GroupOutcome(False, [dep.tool_name], [action] if action else [])
        return GroupOutcome(True)

    results = [(dep, *check_dependency(dep, history)) for dep in group.dependencies]
    unmet = [(dep, action) for dep, ok, action in results if not ok]
    satisfied = len(unmet) < len(results) if group.type is GroupType.ANY else not unmet
    if satisfied:
        return GroupOutcome(True)
    actions = [a for _, a in unmet if a]
    if group.type is GroupType.ANY:
        actions = [f'satisfy dependency group "{group.label}"']
    return GroupOutcome(False, [dep.tool_name for dep, _ in unmet], actions)


def evaluate(
    definition: ToolDefinition,
    history: HistoryView,
    context: ExecutionContext | None = None,
) -> AvailabilityStatus:
    """Compute availability for a registered definition."""
    name = definition.name
    if not definition.enabled:
        return AvailabilityStatus(tool_name=name, available=False, reason=REASON_DISABLED, suggested_actions=(f'enable tool "{name}"',))
    if definition.is_root:
        return AvailabilityStatus(tool_name=name, available=True, reason=REASON_NO_DEPENDENCIES)

    ctx = context or QUERY_CONTEXT
    missing: list[str] = []
    actions: list[str] = []
    blocked_groups: list[str] = []
    for group in definition.dependency_groups:
        outcome = check_group(group, history, ctx)
        if outcome.satisfied:
            continue
        blocked_groups.append(group.label)
        missing.extend(outcome.missing)
        actions.extend(outcome.actions)

    if not blocked_groups:
        return AvailabilityStatus(tool_name=name, available=True, reason=REASON_SATISFIED)

    missing = list(dict.fromkeys(missing))
    if missing:
        reason = f"missing dependencies: {', '.join(missing)}"
    else:
        reason = f"condition not met: {', '.join(blocked_groups)}"
    return AvailabilityStatus(
        tool_name=name,
        available=False,
        reason=reason,
        missing_dependencies=tuple(missing),
        suggested_actions=tuple(dict.fromkeys(actions)),
    )


def initial_status(definition: ToolDefinition) -> tuple[bool, str]:
    """Availability assigned at registration, before any history is consulted."""
    if not definition.enabled:
        return False, REASON_DISABLED
    if definition.is_root:
        return True, REASON_NO_DEPENDENCIES
    return False, REASON_AWAITING
