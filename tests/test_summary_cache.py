"""Tests for SummaryCache and conversation hashing."""

import asyncio

import pytest

from pairstream.core.summary_cache import (
    SummaryCache,
    conversation_hash,
    summary_cache_key,
)
from pairstream.types import CacheEntry, Message


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestConversationHash:
    def test_deterministic(self):
        a = [Message(role="user", content="hi", id="1"), Message(role="assistant", content="yo", id="2")]
        b = [Message(role="user", content="hi", id="x"), Message(role="assistant", content="yo", id="y")]
        assert conversation_hash(a) == conversation_hash(a)
        # ids are not part of the fingerprint
        assert conversation_hash(a) == conversation_hash(b)

    def test_sensitive_to_role_and_content(self):
        base = [Message(role="user", content="hi")]
        assert conversation_hash(base) != conversation_hash([Message(role="assistant", content="hi")])
        assert conversation_hash(base) != conversation_hash([Message(role="user", content="hi!")])
        assert conversation_hash(base) != conversation_hash(base + [Message(role="user", content="more")])


class TestCacheKey:
    def test_prompt_scope(self):
        assert summary_cache_key("optimized") == "optimized"
        assert summary_cache_key(None) == "default"
        assert summary_cache_key("") == "default"

    def test_conversation_scope_adds_first_message_id(self):
        messages = [Message(role="user", content="a", id="first")]
        assert summary_cache_key("p", messages, scope="conversation") == "p:first"
        assert summary_cache_key(None, messages, scope="conversation") == "default:first"


class TestSummaryCache:
    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = SummaryCache(ttl_seconds=600, clock=clock)
        cache.store("k", "summary", "h1")
        clock.now += 599
        entry = cache.get("k", "h1")
        assert entry is not None
        assert entry.summary_text == "summary"
        assert cache.stats.hits == 1

    def test_expired_entry_is_evicted(self):
        clock = FakeClock()
        cache = SummaryCache(ttl_seconds=600, clock=clock)
        cache.store("k", "summary", "h1")
        clock.now += 600
        assert cache.get("k", "h1") is None
        assert len(cache) == 0
        assert cache.stats.evictions == 1

    def test_hash_mismatch_misses_but_keeps_entry(self):
        cache = SummaryCache(clock=FakeClock())
        cache.store("k", "summary", "h1")
        assert cache.get("k", "h2") is None
        assert len(cache) == 1

    def test_set_overwrites(self):
        cache = SummaryCache(clock=FakeClock())
        cache.set("k", CacheEntry("one", "h1", created_at=1000.0))
        cache.set("k", CacheEntry("two", "h2", created_at=1000.0))
        assert cache.get("k", "h1") is None
        assert cache.get("k", "h2").summary_text == "two"

    def test_max_entries_evicts_oldest(self):
        cache = SummaryCache(max_entries=2, clock=FakeClock())
        cache.store("a", "A", "h")
        cache.store("b", "B", "h")
        cache.store("c", "C", "h")
        assert cache.get("a", "h") is None
        assert cache.get("b", "h") is not None
        assert cache.get("c", "h") is not None

    def test_invalidate(self):
        cache = SummaryCache(clock=FakeClock())
        cache.store("k", "summary", "h1")
        cache.invalidate("k")
        assert cache.get("k", "h1") is None
        cache.invalidate("missing")  # no error


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_factory_runs_once_then_cached(self):
        cache = SummaryCache(clock=FakeClock())
        calls = []

        async def factory():
            calls.append(1)
            return "fresh"

        assert await cache.get_or_create("k", "h", factory) == ("fresh", False)
        assert await cache.get_or_create("k", "h", factory) == ("fresh", True)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_regeneration(self):
        cache = SummaryCache(clock=FakeClock())
        release = asyncio.Event()
        calls = []

        async def factory():
            calls.append(1)
            await release.wait()
            return "shared"

        first = asyncio.create_task(cache.get_or_create("k", "h", factory))
        second = asyncio.create_task(cache.get_or_create("k", "h", factory))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second)

        assert len(calls) == 1
        assert sorted(results) == [("shared", False), ("shared", True)]
        assert cache.stats.shared_waits == 1

    @pytest.mark.asyncio
    async def test_factory_error_propagates_and_is_not_cached(self):
        cache = SummaryCache(clock=FakeClock())

        async def failing():
            raise RuntimeError("backend down")

        with pytest.raises(RuntimeError, match="backend down"):
            await cache.get_or_create("k", "h", failing)
        assert len(cache) == 0

        async def ok():
            return "recovered"

        assert await cache.get_or_create("k", "h", ok) == ("recovered", False)
