"""Standardized error handling for the coordinator.

Provides error codes and structured error payloads carried inside
ExecutionResult and registration Results. Uses Pydantic for validation and
serialization.
"""

from __future__ import annotations

import traceback
from enum import StrEnum
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Standard error codes for coordinator and tool failures.

    Used for programmatic error handling and retry decisions.
    """
    # Registration
    DUPLICATE_NAME = "DUPLICATE_NAME"
    INVALID_DEFINITION = "INVALID_DEFINITION"
    # Execution
    INVALID_PARAMS = "INVALID_PARAMS"
    HANDLER_ERROR = "HANDLER_ERROR"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    DEPENDENCY_UNMET = "DEPENDENCY_UNMET"
    # Outside execution
    UNKNOWN_CALL = "UNKNOWN_CALL"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    # Transient failures a handler may raise explicitly
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNKNOWN = "UNKNOWN"


# Pre-computed retryable codes set for O(1) lookup
_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.HANDLER_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.RATE_LIMITED,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.EXTERNAL_SERVICE_ERROR,
    ErrorCode.UNKNOWN,
})


class ToolError(BaseModel):
    """Structured error for a tool or coordinator failure.

    Attributes:
        tool_name: Name of the tool involved
        message: Human-readable error message
        code: Machine-readable error code for programmatic handling
        recoverable: Whether the error might succeed on retry
        details: Optional detailed information (e.g., stack trace)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Tool Error",
            "description": "Structured error from tool registration or execution",
            "examples": [{
                "tool_name": "web_search",
                "message": "Execution timed out after 30.0s",
                "code": "TIMEOUT",
                "recoverable": True,
            }],
        },
    )

    tool_name: Annotated[str, Field(description="Name of the tool that produced the error")]
    message: Annotated[str, Field(min_length=1, description="Human-readable error message")]
    code: ErrorCode = Field(default=ErrorCode.UNKNOWN, description="Machine-readable error classification")
    recoverable: bool = Field(default=True, description="Whether retry might succeed")
    details: str | None = Field(default=None, description="Optional detailed error info (e.g., stack trace)")

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept Exception objects and extract message."""
        if isinstance(v, Exception):
            return str(v).strip() or type(v).__name__
        return v

    @computed_field
    @property
    def is_retryable(self) -> bool:
        """Whether this error is typically retryable (handler failures, timeouts, transient I/O)."""
        return self.code in _RETRYABLE_CODES

    @classmethod
    def create(
        cls,
        tool_name: str,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        recoverable: bool = True,
        details: str | None = None,
    ) -> Self:
        """Factory method for construction."""
        return cls(tool_name=tool_name, message=message, code=code, recoverable=recoverable, details=details)

    @classmethod
    def from_exception(
        cls,
        tool_name: str,
        exc: Exception,
        context: str = "",
        *,
        code: ErrorCode = ErrorCode.HANDLER_ERROR,
        include_trace: bool = False,
    ) -> Self:
        """Create from a handler exception. ToolException keeps its own error."""
        if isinstance(exc, ToolException):
            return exc.error  # type: ignore[return-value]
        message = str(exc).strip() or type(exc).__name__
        return cls(
            tool_name=tool_name,
            message=f"{context}: {message}" if context else message,
            code=code,
            recoverable=code in _RETRYABLE_CODES,
            details=traceback.format_exc() if include_trace else None,
        )

    def render(self) -> str:
        """Format error for LLM consumption."""
        parts = [f"**Tool Error ({self.tool_name}):** {self.message}"]
        if self.recoverable:
            parts.append("\n_This error may be recoverable - consider retrying or trying an alternative approach._")
        if self.details:
            parts.append(f"\n\nDetails:\n```\n{self.details}\n```")
        return "".join(parts)

    __str__ = render


class ToolException(Exception):
    """Exception wrapping a ToolError for raising.

    Handlers raise it to pick an explicit error code; the engine stops
    retrying when that code is not retryable.
    """

    __slots__ = ("error",)

    def __init__(self, error: ToolError) -> None:
        self.error = error
        super().__init__(error.message)

    @classmethod
    def create(cls, tool_name: str, message: str, code: ErrorCode = ErrorCode.UNKNOWN, *, recoverable: bool = True) -> Self:
        """Create tool exception."""
        return cls(ToolError(tool_name=tool_name, message=message, code=code, recoverable=recoverable))


class RegistrationError(ToolException):
    """Raised by ``register_or_raise`` when a definition is rejected."""

    __slots__ = ()
