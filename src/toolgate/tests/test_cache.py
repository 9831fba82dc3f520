"""Tests for the execution cache."""

from __future__ import annotations

import pytest

from toolgate.foundation.core import ExecutionContext
from toolgate.runtime.cache import ExecutionCache, make_key

from .helpers import FakeClock, QueryParams


def test_basic_get_set() -> None:
    cache = ExecutionCache()
    cache.set("tool", {"q": "test"}, None, "result")
    assert cache.get("tool", {"q": "test"}) == "result"
    assert cache.get("tool", {"q": "other"}) is None


def test_key_is_order_insensitive_and_model_aware() -> None:
    assert make_key("t", {"a": 1, "b": 2}) == make_key("t", {"b": 2, "a": 1})
    assert make_key("t", QueryParams(query="x")) == make_key("t", {"query": "x"})
    assert make_key("t", {"a": 1}).startswith("t:")
    assert make_key("t", {"a": 1}) != make_key("u", {"a": 1})


def test_context_is_part_of_the_key() -> None:
    cache = ExecutionCache()
    ctx_a = ExecutionContext(execution_id="a", session_id="s")
    ctx_b = ExecutionContext(execution_id="b", session_id="s")
    cache.set("tool", {"q": 1}, ctx_a, "from-a")

    assert cache.get("tool", {"q": 1}, ctx_a) == "from-a"
    assert cache.get("tool", {"q": 1}, ctx_b) is None
    assert cache.get("tool", {"q": 1}) is None


def test_context_metadata_need_not_be_json() -> None:
    marker = object()
    ctx = ExecutionContext(execution_id="a", metadata={"request": marker, "at": {1, 2}})
    cache = ExecutionCache()

    cache.set("tool", {"q": 1}, ctx, "hit")

    assert cache.get("tool", {"q": 1}, ctx) == "hit"
    assert make_key("tool", {"q": 1}, ctx) != make_key("tool", {"q": 1}, ExecutionContext(execution_id="a"))


def test_entry_expires_once_age_reaches_ttl(clock: FakeClock) -> None:
    cache = ExecutionCache(ttl=10.0, clock=clock)
    cache.set("tool", {}, None, "v")

    clock.advance(9)
    assert cache.get("tool", {}) == "v"

    clock.advance(1)
    assert cache.get("tool", {}) is None
    assert cache.size == 0


def test_fifo_eviction_ignores_hits(clock: FakeClock) -> None:
    cache = ExecutionCache(max_size=2, clock=clock)
    cache.set("tool", {"n": 1}, None, "one")
    cache.set("tool", {"n": 2}, None, "two")

    # A hit does not protect the oldest insert
    assert cache.get("tool", {"n": 1}) == "one"

    cache.set("tool", {"n": 3}, None, "three")
    assert cache.get("tool", {"n": 1}) is None
    assert cache.get("tool", {"n": 2}) == "two"
    assert cache.get("tool", {"n": 3}) == "three"
    assert cache.stats()["evictions"] == 1


def test_overwrite_does_not_evict() -> None:
    cache = ExecutionCache(max_size=2)
    cache.set("tool", {"n": 1}, None, "one")
    cache.set("tool", {"n": 2}, None, "two")
    cache.set("tool", {"n": 1}, None, "uno")

    assert cache.size == 2
    assert cache.get("tool", {"n": 1}) == "uno"


def test_invalidate_tool_and_clear() -> None:
    cache = ExecutionCache()
    cache.set("a", {"n": 1}, None, 1)
    cache.set("a", {"n": 2}, None, 2)
    cache.set("b", {"n": 1}, None, 3)

    assert cache.invalidate("b", {"n": 1}) is True
    assert cache.invalidate("b", {"n": 1}) is False
    assert cache.invalidate_tool("a") == 2
    assert cache.size == 0

    cache.set("a", {}, None, 1)
    cache.clear()
    assert cache.size == 0


def test_stats_track_hits_and_misses(clock: FakeClock) -> None:
    cache = ExecutionCache(ttl=5.0, max_size=10, clock=clock)
    cache.set("t", {}, None, "v")
    cache.get("t", {})
    cache.get("t", {"other": True})

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["total_entries"] == 1
    assert stats["max_size"] == 10


def test_max_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ExecutionCache(max_size=0)
