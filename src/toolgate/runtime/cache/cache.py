"""Execution result caching with TTL and FIFO eviction.

Prevents repeated handler calls for identical (tool, input, context) triples.
Cache keys are generated from tool name + a hash of the serialized input and
context. Eviction is strictly insertion-order: once the bound is reached the
oldest entry goes, regardless of how often it was hit.
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import orjson

if TYPE_CHECKING:
    from pydantic import BaseModel

    from toolgate.foundation.core import ExecutionContext

DEFAULT_TTL: float = 300.0  # 5 minutes
DEFAULT_MAX_SIZE: int = 1000

Clock = Callable[[], float]


@dataclass(slots=True)
class CacheEntry:
    """A cached handler result with its insertion time."""
    result: object
    inserted_at: float


def _dumpable(value: BaseModel | dict[str, object] | None) -> object:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        return value.model_dump()  # type: ignore[union-attr]
    return value


def make_key(
    tool_name: str,
    params: BaseModel | dict[str, object],
    context: ExecutionContext | dict[str, object] | None = None,
) -> str:
    """Generate cache key from tool name, parameters and context."""
    payload = orjson.dumps(
        [_dumpable(params), _dumpable(context)],
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        default=str,
    )
    digest = hashlib.md5(payload, usedforsecurity=False).hexdigest()[:12]
    return f"{tool_name}:{digest}"


class ExecutionCache:
    """Thread-safe in-memory cache with TTL expiry and FIFO eviction.

    Args:
        ttl: Entry lifetime in seconds; an entry is served while its age is below it
        max_size: Maximum entries; inserting at the bound evicts the oldest insert
        clock: Time source, injectable for tests

    Example:
        >>> cache = ExecutionCache(ttl=60)
        >>> cache.set("search", {"q": "test"}, None, "result")
        >>> cache.get("search", {"q": "test"})
        'result'
    """

    __slots__ = ("_entries", "_ttl", "_max_size", "_clock", "_lock", "_hits", "_misses", "_evictions")

    def __init__(self, ttl: float = DEFAULT_TTL, max_size: int = DEFAULT_MAX_SIZE, *, clock: Clock = time.monotonic) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: dict[str, CacheEntry] = {}
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._lock = threading.RLock()
        self._hits = self._misses = self._evictions = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def lookup(self, key: str) -> CacheEntry | None:
        """Return a live entry by key, dropping it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.inserted_at >= self._ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def get(
        self,
        tool_name: str,
        params: BaseModel | dict[str, object],
        context: ExecutionContext | dict[str, object] | None = None,
    ) -> object | None:
        """Get cached result if present and not expired."""
        entry = self.lookup(make_key(tool_name, params, context))
        return None if entry is None else entry.result

    def set(
        self,
        tool_name: str,
        params: BaseModel | dict[str, object],
        context: ExecutionContext | dict[str, object] | None,
        result: object,
    ) -> str:
        """Store a result, evicting the oldest insert at the bound. Returns the key."""
        key = make_key(tool_name, params, context)
        self.store(key, result)
        return key

    def store(self, key: str, result: object) -> None:
        """Store a result under a precomputed key."""
        with self._lock:
            # Overwrites keep their original slot in insertion order
            if key not in self._entries:
                while len(self._entries) >= self._max_size:
                    del self._entries[next(iter(self._entries))]
                    self._evictions += 1
            self._entries[key] = CacheEntry(result=result, inserted_at=self._clock())

    def invalidate(
        self,
        tool_name: str,
        params: BaseModel | dict[str, object],
        context: ExecutionContext | dict[str, object] | None = None,
    ) -> bool:
        """Remove a specific entry."""
        key = make_key(tool_name, params, context)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_tool(self, tool_name: str) -> int:
        """Remove all entries for a tool. Returns count removed."""
        prefix = f"{tool_name}:"
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        """Keys in insertion (eviction) order."""
        with self._lock:
            return list(self._entries)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, object]:
        """Get cache statistics for monitoring."""
        with self._lock:
            now = self._clock()
            expired = sum(1 for v in self._entries.values() if now - v.inserted_at >= self._ttl)
            return {
                "total_entries": len(self._entries),
                "expired_entries": expired,
                "active_entries": len(self._entries) - expired,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "ttl": self._ttl,
                "max_size": self._max_size,
            }
