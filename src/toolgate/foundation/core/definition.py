"""Core tool abstractions: ToolDefinition, dependency groups and execution context.

A ToolDefinition is the immutable descriptor a caller registers. Its
``dependency_groups`` declare which other tools must have run (and under which
conditions) before it becomes available. Conditions are live callables: they
are evaluated at availability-check time and are never serialized.

Example:
    >>> class SearchParams(BaseModel):
    ...     query: str
    ...
    >>> search = ToolDefinition(
    ...     name="web_search",
    ...     description="Search the web for information",
    ...     input_schema=SearchParams,
    ...     handler=lambda p: f"Results for: {p.query}",
    ...     dependency_groups=[all_of("login")],
    ... )
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import Annotated, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DependencyKind(StrEnum):
    """Whether an unexecuted dependency blocks availability."""
    REQUIRED = "required"
    OPTIONAL = "optional"


class GroupType(StrEnum):
    """Combination rule over a group's dependencies."""
    ANY = "any"
    ALL = "all"
    SEQUENCE = "sequence"


def _execution_id() -> str:
    return f"exec_{uuid.uuid4().hex[:12]}"


class ExecutionContext(BaseModel):
    """Caller-supplied correlation bundle for one execution.

    Carries no identity of its own beyond what callers attach. The registry
    keeps the most recent context per tool for condition evaluation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    execution_id: str = Field(default_factory=_execution_id)
    session_id: str | None = None
    thread_id: str | None = None
    user_id: str | None = None
    request_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# Conditions see a context and answer yes/no
Condition = Callable[[ExecutionContext], bool]


class Dependency(BaseModel):
    """A single edge from a tool to a tool it depends on.

    Attributes:
        tool_name: Name of the tool that must have executed
        kind: REQUIRED blocks until executed; OPTIONAL is satisfied when never executed
        condition: Optional predicate over the dependency's most recent execution context
    """

    model_config = ConfigDict(frozen=True)

    tool_name: Annotated[str, Field(min_length=1)]
    kind: DependencyKind = DependencyKind.REQUIRED
    condition: Condition | None = Field(default=None, exclude=True, repr=False)


class DependencyGroup(BaseModel):
    """An any/all/sequence rule over an ordered list of dependencies.

    The optional group ``condition`` is evaluated against the *current*
    execution context, not against any dependency's history.
    """

    model_config = ConfigDict(frozen=True)

    type: GroupType = GroupType.ALL
    dependencies: Annotated[tuple[Dependency, ...], Field(min_length=1)]
    condition: Condition | None = Field(default=None, exclude=True, repr=False)
    description: str | None = None

    @property
    def label(self) -> str:
        """Human label used in suggested actions."""
        return self.description or f"{self.type.value}({', '.join(d.tool_name for d in self.dependencies)})"


class ToolDefinition(BaseModel):
    """Immutable descriptor of a registered tool.

    Attributes:
        name: Unique identifier
        description: What the tool does (shown to the LLM for selection)
        input_schema: Pydantic model validating handler input
        handler: Callable receiving the validated input model (sync or async)
        tags: Free-form labels for lookup
        dependency_groups: Groups combined with AND to gate availability
        enabled: Disabled tools are never available
        category: Grouping category
        permission: Security label, carried but not enforced
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
    description: str = Field(..., min_length=1)
    input_schema: type[BaseModel]
    handler: Callable[..., Any] = Field(..., repr=False)
    tags: tuple[str, ...] = ()
    dependency_groups: tuple[DependencyGroup, ...] = ()
    enabled: bool = True
    category: str = "general"
    permission: str | None = None

    @model_validator(mode="after")
    def _no_self_dependency(self) -> ToolDefinition:
        if self.name in self.dependency_names:
            raise ValueError(f"Tool '{self.name}' cannot depend on itself")
        return self

    @property
    def dependency_names(self) -> list[str]:
        """Dependency tool names across all groups, first occurrence order."""
        return list(dict.fromkeys(d.tool_name for g in self.dependency_groups for d in g.dependencies))

    @property
    def is_root(self) -> bool:
        return not self.dependency_groups


# ─────────────────────────────────────────────────────────────────────────────
# Group Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _deps(names: tuple[str | Dependency, ...]) -> tuple[Dependency, ...]:
    return tuple(n if isinstance(n, Dependency) else Dependency(tool_name=n) for n in names)


def all_of(*names: str | Dependency, condition: Condition | None = None, description: str | None = None) -> DependencyGroup:
    """Group satisfied when every dependency is satisfied."""
    return DependencyGroup(type=GroupType.ALL, dependencies=_deps(names), condition=condition, description=description)


def any_of(*names: str | Dependency, condition: Condition | None = None, description: str | None = None) -> DependencyGroup:
    """Group satisfied when at least one dependency is satisfied."""
    return DependencyGroup(type=GroupType.ANY, dependencies=_deps(names), condition=condition, description=description)


def sequence_of(*names: str | Dependency, condition: Condition | None = None, description: str | None = None) -> DependencyGroup:
    """Group checked in declared order; the first unmet dependency stops evaluation."""
    return DependencyGroup(type=GroupType.SEQUENCE, dependencies=_deps(names), condition=condition, description=description)
