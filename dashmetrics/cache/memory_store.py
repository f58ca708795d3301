"""
In-process TTL cache store.

Thread-safe LRU cache with per-entry TTL for metric payloads. Used when
Redis is disabled and in tests.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from fnmatch import fnmatchcase
from threading import RLock
from typing import Any

import structlog

from dashmetrics.cache.store import CacheStore, SupportsKeyEnumeration, SupportsMemoryUsage, SupportsTagging
from dashmetrics.config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cache entry with value and expiration timestamp."""

    value: Any
    expires_at: datetime


class InMemoryCacheStore(CacheStore, SupportsKeyEnumeration, SupportsMemoryUsage, SupportsTagging):
    """
    Thread-safe in-memory cache store.

    Enforces a maximum entry count by evicting expired entries first, then
    the least recently used ones. Tags are kept in an index from tag to keys;
    a key leaves every tag when its entry is replaced, expires, is evicted
    or is deleted.

    Example:
        ```python
        store = InMemoryCacheStore(max_entries=500)
        await store.put("metric:orders:30:...", payload, ttl_seconds=300)
        payload = await store.get("metric:orders:30:...")
        ```
    """

    def __init__(
        self,
        max_entries: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._max_entries = max_entries or settings.metric_cache_max_entries
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = RLock()
        self._tag_index: dict[str, set[str]] = {}
        self._key_tags: dict[str, set[str]] = {}
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._cache)

    def _discard(self, key: str) -> bool:
        # Must be called while holding _lock
        removed = self._cache.pop(key, None) is not None
        for tag in self._key_tags.pop(key, ()):
            members = self._tag_index.get(tag)
            if members is not None:
                members.discard(key)
                if not members:
                    del self._tag_index[tag]
        return removed

    def _live_entry(self, key: str, now: datetime) -> CacheEntry | None:
        # Must be called while holding _lock
        entry = self._cache.get(key)
        if entry is None:
            return None
        if now > entry.expires_at:
            self._discard(key)
            logger.debug("cache_entry_expired", key=key)
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._live_entry(key, now)
            if entry is None:
                return None
            self._cache.move_to_end(key)
            return entry.value

    async def put(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False
        now = self._clock()
        with self._lock:
            self._discard(key)
            if len(self._cache) >= self._max_entries:
                self._evict(now)
            self._cache[key] = CacheEntry(value=value, expires_at=now + timedelta(seconds=ttl_seconds))
        return True

    def _evict(self, now: datetime) -> None:
        """
        Make room for one entry.

        Removes expired entries first, then least recently used entries.
        Must be called while holding _lock.
        """
        expired = [key for key, entry in self._cache.items() if now > entry.expires_at]
        for key in expired:
            self._discard(key)
            self.evictions += 1
            logger.debug("cache_evicted_expired", key=key)

        while len(self._cache) >= self._max_entries:
            key = next(iter(self._cache))
            self._discard(key)
            self.evictions += 1
            logger.debug("cache_evicted_lru", key=key)

    async def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            return self._live_entry(key, now) is not None

    async def forget(self, key: str) -> bool:
        with self._lock:
            return self._discard(key)

    async def keys_matching(self, pattern: str) -> list[str]:
        now = self._clock()
        with self._lock:
            return [
                key
                for key in list(self._cache)
                if fnmatchcase(key, pattern) and self._live_entry(key, now) is not None
            ]

    async def delete_many(self, keys: list[str]) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._discard(key):
                    removed += 1
        return removed

    async def memory_usage(self, key: str) -> int | None:
        now = self._clock()
        with self._lock:
            entry = self._live_entry(key, now)
            if entry is None:
                return None
            return len(json.dumps(entry.value, default=str).encode("utf-8"))

    async def tag(self, key: str, tags: Iterable[str], ttl_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            if self._live_entry(key, now) is None:
                return False
            for tag in tags:
                self._tag_index.setdefault(tag, set()).add(key)
                self._key_tags.setdefault(key, set()).add(tag)
        return True

    async def flush_tag(self, tag: str) -> int:
        now = self._clock()
        removed = 0
        with self._lock:
            for key in list(self._tag_index.get(tag, ())):
                # Expired members are dropped by the liveness check
                if self._live_entry(key, now) is not None:
                    self._discard(key)
                    removed += 1
        logger.debug("cache_tag_flushed", tag=tag, keys_removed=removed)
        return removed

    def tagged_keys(self, tag: str) -> set[str]:
        with self._lock:
            return set(self._tag_index.get(tag, ()))

    async def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._tag_index.clear()
            self._key_tags.clear()
            logger.debug("cache_cleared")
