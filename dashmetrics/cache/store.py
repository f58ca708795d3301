"""
Cache Store ports.

``CacheStore`` is the minimal key/value capability the CacheManager needs.
Backends that can list keys by glob pattern or report per-key memory also
implement ``SupportsKeyEnumeration`` / ``SupportsMemoryUsage``, and backends
that can group keys under tags implement ``SupportsTagging``; the manager
checks for these and degrades gracefully when they are absent.

Stored values are JSON-compatible payloads (dicts, lists, numbers, strings).
``None`` is reserved for "absent".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any


class CacheStore(ABC):
    """Key/value store with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Value for ``key`` or None when absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store ``value`` for ``ttl_seconds``. Returns False if the write was dropped."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        """True when ``key`` holds an unexpired value."""

    @abstractmethod
    async def forget(self, key: str) -> bool:
        """Remove ``key``. Returns True if something was removed."""

    async def remember(self, key: str, ttl_seconds: int, producer: Callable[[], Awaitable[Any]]) -> Any:
        """Cache-aside helper: return the stored value or store what ``producer`` returns."""
        value = await self.get(key)
        if value is not None:
            return value
        value = await producer()
        await self.put(key, value, ttl_seconds)
        return value


class SupportsKeyEnumeration(ABC):
    """Optional capability: list and bulk-delete keys by glob pattern."""

    @abstractmethod
    async def keys_matching(self, pattern: str) -> list[str]:
        """Keys matching a glob pattern (``*``, ``?``, ``[...]``)."""

    @abstractmethod
    async def delete_many(self, keys: list[str]) -> int:
        """Delete ``keys``. Returns the number actually removed."""


class SupportsMemoryUsage(ABC):
    """Optional capability: bytes used by a single key."""

    @abstractmethod
    async def memory_usage(self, key: str) -> int | None:
        """Approximate bytes held by ``key``, or None if absent."""


class SupportsTagging(ABC):
    """Optional capability: group keys under tags and drop a whole tag at once."""

    @abstractmethod
    async def tag(self, key: str, tags: Iterable[str], ttl_seconds: int) -> bool:
        """Attach ``key`` to each tag. ``ttl_seconds`` is the lifetime of the tagged entry."""

    @abstractmethod
    async def flush_tag(self, tag: str) -> int:
        """Delete every key attached to ``tag`` and the tag itself. Returns keys removed."""
