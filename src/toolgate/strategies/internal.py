"""In-process execution through the engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from toolgate.runtime.observability import get_logger

from .base import OutcomeReporter, StrategyKind

if TYPE_CHECKING:
    from pydantic import BaseModel

    from toolgate.foundation.core import ToolDefinition
    from toolgate.runtime.engine import ExecutionEngine, ExecutionOptions, ExecutionResult

log = get_logger("toolgate.strategies.internal")


class InternalStrategy:
    """Awaits the engine and reports the outcome inline."""

    __slots__ = ("_engine", "_report")

    def __init__(self, engine: ExecutionEngine, reporter: OutcomeReporter) -> None:
        self._engine = engine
        self._report = reporter

    @property
    def kind(self) -> StrategyKind:
        return StrategyKind.INTERNAL

    async def execute(
        self,
        definition: ToolDefinition,
        input: BaseModel | dict[str, Any] | None,  # noqa: A002
        options: ExecutionOptions,
    ) -> ExecutionResult:
        result = await self._engine.execute(definition, input, options)
        log.debug(
            "internal execution finished",
            tool=definition.name,
            status=result.status.value,
            attempts=result.attempts,
            from_cache=result.from_cache,
        )
        self._report(result, self.kind)
        return result
