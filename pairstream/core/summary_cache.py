"""In-process summary cache with TTL eviction and single-flight regeneration."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..types import CacheEntry, Message

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "default"


def conversation_hash(messages: list[Message]) -> str:
    """Content fingerprint over the ``(role, content)`` pairs of *messages*."""
    payload = json.dumps(
        [{"role": m.role, "content": m.content} for m in messages],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def summary_cache_key(
    prompt_id: str | None,
    messages: list[Message] | None = None,
    scope: str = "prompt",
) -> str:
    """Cache key for a conversation summary.

    With ``scope="prompt"`` the key is the prompt id (or ``"default"``), so two
    conversations sharing a prompt id share one cache slot; the source hash
    check keeps them from reading each other's summary but they evict each
    other. ``scope="conversation"`` adds the first message id.
    """
    key = prompt_id or DEFAULT_CACHE_KEY
    if scope == "conversation" and messages:
        return f"{key}:{messages[0].id}"
    if key == DEFAULT_CACHE_KEY:
        logger.debug("Summary cache using shared default key")
    return key


@dataclass
class SummaryCacheStats:
    hits: int = 0
    misses: int = 0
    stores: int = 0
    evictions: int = 0
    shared_waits: int = 0


class SummaryCache:
    """Summary store keyed by cache key, validated by source hash and age.

    ``get_or_create`` deduplicates concurrent regenerations: callers asking for
    the same ``(key, source_hash)`` while a factory is running await that
    factory's result instead of starting their own.
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._inflight: dict[tuple[str, str], asyncio.Future[str]] = {}
        self.stats = SummaryCacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_valid(self, entry: CacheEntry, source_hash: str) -> bool:
        age = self._clock() - entry.created_at
        return age < self._ttl_seconds and entry.source_hash == source_hash

    def get(self, key: str, source_hash: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None
        if self._clock() - entry.created_at >= self._ttl_seconds:
            del self._entries[key]
            self.stats.evictions += 1
            self.stats.misses += 1
            return None
        if entry.source_hash != source_hash:
            self.stats.misses += 1
            return None
        self.stats.hits += 1
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        self._purge_expired()
        self._entries[key] = entry
        self._entries.move_to_end(key)
        self.stats.stores += 1
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            self.stats.evictions += 1

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def store(self, key: str, summary_text: str, source_hash: str) -> CacheEntry:
        entry = CacheEntry(
            summary_text=summary_text,
            source_hash=source_hash,
            created_at=self._clock(),
        )
        self.set(key, entry)
        return entry

    async def get_or_create(
        self,
        key: str,
        source_hash: str,
        factory: Callable[[], Awaitable[str]],
    ) -> tuple[str, bool]:
        """Return ``(summary_text, cached)``.

        ``cached`` is False only for the caller whose factory produced the
        value; callers that joined an in-flight regeneration get True.
        """
        entry = self.get(key, source_hash)
        if entry is not None:
            return entry.summary_text, True

        flight_key = (key, source_hash)
        pending = self._inflight.get(flight_key)
        if pending is not None:
            self.stats.shared_waits += 1
            try:
                return await asyncio.shield(pending), True
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The owning request went away; regenerate on our own behalf.
                return await self.get_or_create(key, source_hash, factory)

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._inflight[flight_key] = future
        try:
            summary_text = await factory()
        except BaseException as exc:
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
                # Retrieved here so an unobserved failure is not reported twice.
                future.exception()
            raise
        finally:
            self._inflight.pop(flight_key, None)

        self.store(key, summary_text, source_hash)
        future.set_result(summary_text)
        return summary_text, False

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            k for k, e in self._entries.items()
            if now - e.created_at >= self._ttl_seconds
        ]
        for k in expired:
            del self._entries[k]
            self.stats.evictions += 1
