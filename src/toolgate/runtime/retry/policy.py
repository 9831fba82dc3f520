"""Retry policy for handler execution.

Decides whether a failed attempt is retried, from the attempt number and the
failure's error code, and how long to wait first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Callable

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer, field_validator

from toolgate.foundation.errors import ErrorCode

from .backoff import Backoff, ExponentialBackoff

if TYPE_CHECKING:
    from toolgate.foundation.config import RetrySettings

# Failures that may succeed on a later attempt
DEFAULT_RETRYABLE: frozenset[ErrorCode] = frozenset({
    ErrorCode.HANDLER_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.RATE_LIMITED,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.EXTERNAL_SERVICE_ERROR,
    ErrorCode.UNKNOWN,
})


class RetryPolicy(BaseModel):
    """Configurable retry policy for the execution engine.

    Attributes:
        max_retries: Retries after the first attempt (0 = a single attempt)
        backoff: Backoff strategy for delay calculation
        retryable_codes: Error codes that allow another attempt
        on_retry: Optional callback ``(attempt, code, delay)`` fired before each sleep

    Example:
        >>> policy = RetryPolicy(max_retries=2)
        >>> policy.get_delay(0), policy.get_delay(1)
        (1.0, 2.0)
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        validate_default=True,
        extra="forbid",
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 0
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    retryable_codes: frozenset[ErrorCode] = DEFAULT_RETRYABLE
    on_retry: Callable[[int, ErrorCode, float], None] | None = Field(default=None, exclude=True, repr=False)

    @field_validator("retryable_codes", mode="before")
    @classmethod
    def _normalize_codes(cls, v: frozenset[ErrorCode] | set[str] | list[str] | tuple[str, ...]) -> frozenset[ErrorCode]:
        """Accept strings and convert to ErrorCode enum."""
        return frozenset(ErrorCode(c) if isinstance(c, str) else c for c in v)

    @field_serializer("retryable_codes")
    def _serialize_codes(self, v: frozenset[ErrorCode]) -> list[str]:
        return sorted(c.value for c in v)

    @computed_field
    @property
    def is_disabled(self) -> bool:
        """Whether retries are effectively disabled."""
        return self.max_retries == 0 or not self.retryable_codes

    def should_retry(self, code: ErrorCode | str, attempt: int) -> bool:
        """Whether to attempt again after failure number ``attempt`` (0-indexed)."""
        if attempt >= self.max_retries:
            return False
        return ErrorCode(code) in self.retryable_codes

    def get_delay(self, attempt: int) -> float:
        """Delay before the retry following ``attempt``."""
        return self.backoff.delay(attempt)

    def with_retries(self, max_retries: int) -> RetryPolicy:
        """Copy with a different retry budget."""
        return self.model_copy(update={"max_retries": max_retries})

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            backoff=ExponentialBackoff(
                base=settings.base_delay,
                multiplier=settings.multiplier,
                max_delay=settings.max_delay,
            ),
        )

    def __hash__(self) -> int:
        return hash((self.max_retries, tuple(sorted(c.value for c in self.retryable_codes))))


NO_RETRY = RetryPolicy(max_retries=0)
