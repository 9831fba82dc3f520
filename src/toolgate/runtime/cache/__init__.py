"""Execution result cache."""

from .cache import DEFAULT_MAX_SIZE, DEFAULT_TTL, CacheEntry, ExecutionCache, make_key

__all__ = ["DEFAULT_MAX_SIZE", "DEFAULT_TTL", "CacheEntry", "ExecutionCache", "make_key"]
