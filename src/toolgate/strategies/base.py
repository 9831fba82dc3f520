"""Execution strategy contract and shared records."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from toolgate.foundation.core import ExecutionContext
from toolgate.foundation.errors import to_jsonable

if TYPE_CHECKING:
    from pydantic import BaseModel

    from toolgate.foundation.core import ToolDefinition
    from toolgate.runtime.engine import ExecutionOptions, ExecutionResult


class StrategyKind(StrEnum):
    INTERNAL = "internal"
    OUTSIDE = "outside"


class CallStatus(StrEnum):
    PENDING = "pending"
    RESOLVED = "resolved"


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class PendingToolCall:
    """An outside call dispatched for external execution and not yet resolved."""

    tool_name: str
    args: dict[str, Any]
    context: ExecutionContext
    created_at: float
    id: str = field(default_factory=_call_id)
    status: CallStatus = CallStatus.PENDING
    waiter: asyncio.Future[Any] | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "args": self.args,
            "status": self.status.value,
            "created_at": self.created_at,
            "context": to_jsonable(self.context),
        }


# Receives every final outcome so status tracking and events stay in one place
OutcomeReporter = Callable[["ExecutionResult", StrategyKind], None]


@runtime_checkable
class ExecutionStrategy(Protocol):
    """Runs (or dispatches) one execution and reports its outcome."""

    @property
    def kind(self) -> StrategyKind: ...

    async def execute(
        self,
        definition: ToolDefinition,
        input: BaseModel | dict[str, Any] | None,  # noqa: A002
        options: ExecutionOptions,
    ) -> ExecutionResult: ...
