"""Execution engine."""

from .engine import DEFAULT_TIMEOUT, ExecutionEngine, validate_input
from .result import ExecutionOptions, ExecutionResult, ExecutionStatus

__all__ = ["DEFAULT_TIMEOUT", "ExecutionEngine", "ExecutionOptions", "ExecutionResult", "ExecutionStatus", "validate_input"]
