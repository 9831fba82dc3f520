"""Retry policy and backoff strategies."""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import DEFAULT_RETRYABLE, NO_RETRY, RetryPolicy

__all__ = [
    "Backoff",
    "ConstantBackoff",
    "ExponentialBackoff",
    "DEFAULT_RETRYABLE",
    "NO_RETRY",
    "RetryPolicy",
]
