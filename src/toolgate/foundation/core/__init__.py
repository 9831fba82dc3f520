"""Core data model: tool definitions, dependency groups and execution context."""

from .definition import (
    Condition,
    Dependency,
    DependencyGroup,
    DependencyKind,
    ExecutionContext,
    GroupType,
    ToolDefinition,
    all_of,
    any_of,
    sequence_of,
)

__all__ = [
    "Condition",
    "Dependency",
    "DependencyGroup",
    "DependencyKind",
    "ExecutionContext",
    "GroupType",
    "ToolDefinition",
    "all_of",
    "any_of",
    "sequence_of",
]
