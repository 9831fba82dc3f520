"""Execution request options and outcome records."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field, NonNegativeFloat, NonNegativeInt, computed_field

from toolgate.foundation.core import ExecutionContext
from toolgate.foundation.errors import ErrorCode, ToolError


class ExecutionStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


class ExecutionOptions(BaseModel):
    """Per-call overrides. ``None`` means the engine's configured default.

    Attributes:
        context: Correlation context; part of the cache key and recorded on success
        timeout: Per-attempt timeout in seconds; ``0`` disables the timeout
        retries: Retries after the first attempt
        use_cache: Read and write the execution cache
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    context: ExecutionContext | None = None
    timeout: NonNegativeFloat | None = None
    retries: Annotated[int, Field(ge=0, le=10)] | None = None
    use_cache: bool = True


class ExecutionResult(BaseModel):
    """Outcome of one execution request.

    A ``PENDING`` result carries ``call_id`` of an outside call that is still
    awaiting its external resolution.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    tool_name: str
    status: ExecutionStatus
    data: Any = None
    error: ToolError | None = None
    execution_time_ms: NonNegativeFloat = 0.0
    from_cache: bool = False
    attempts: NonNegativeInt = 0
    context: ExecutionContext | None = None
    call_id: str | None = None

    @computed_field
    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.SUCCEEDED

    @property
    def error_code(self) -> ErrorCode | None:
        return self.error.code if self.error else None

    @classmethod
    def ok(cls, tool_name: str, data: Any, **kw: Any) -> Self:
        return cls(tool_name=tool_name, status=ExecutionStatus.SUCCEEDED, data=data, **kw)

    @classmethod
    def failure(cls, error: ToolError, **kw: Any) -> Self:
        return cls(tool_name=error.tool_name, status=ExecutionStatus.FAILED, error=error, **kw)

    @classmethod
    def pending(cls, tool_name: str, call_id: str, **kw: Any) -> Self:
        return cls(tool_name=tool_name, status=ExecutionStatus.PENDING, call_id=call_id, **kw)
