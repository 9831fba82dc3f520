"""Dependency graph and tool registry."""

from .availability import AvailabilityStatus, check_dependency, check_group, evaluate
from .graph import DependencyGraph
from .registry import (
    BatchRegistrationResult,
    RegistryStatistics,
    ToolRegistration,
    ToolRegistry,
    ToolSearchResult,
    Validator,
)

__all__ = [
    "AvailabilityStatus",
    "BatchRegistrationResult",
    "DependencyGraph",
    "RegistryStatistics",
    "ToolRegistration",
    "ToolRegistry",
    "ToolSearchResult",
    "Validator",
    "check_dependency",
    "check_group",
    "evaluate",
]
