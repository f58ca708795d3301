"""
Redis cache store for metric payloads.

Payloads are stored as JSON strings with ``SET ... EX ttl``. Read and write
failures degrade to a cache miss / dropped write so a Redis outage never
breaks a dashboard; key enumeration failures raise CacheStoreError because
a silent partial invalidation would leave stale data behind.

Each tag is a Redis set of member keys whose expiry is stretched to cover
its longest-lived member.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from dashmetrics.cache.store import CacheStore, SupportsKeyEnumeration, SupportsMemoryUsage, SupportsTagging
from dashmetrics.config import Settings, settings as default_settings
from dashmetrics.exceptions import CacheStoreError

logger = structlog.get_logger(__name__)

DELETE_BATCH_SIZE = 500


def create_redis_client(settings: Settings | None = None) -> Redis:
    """Redis client for the configured host/port/db."""
    settings = settings or default_settings
    return Redis(host=settings.redis_host, port=settings.redis_port, db=settings.redis_db)


class RedisCacheStore(CacheStore, SupportsKeyEnumeration, SupportsMemoryUsage, SupportsTagging):
    """
    Redis-backed cache store.

    Example:
        ```python
        store = RedisCacheStore(Redis(host="localhost"))
        await store.put("metric:orders:30:...", payload, ttl_seconds=300)
        ```
    """

    def __init__(self, redis: Redis):
        """
        Initialize store with Redis client.

        Args:
            redis: Async Redis client
        """
        self.redis = redis

    async def get(self, key: str) -> Any | None:
        try:
            cached = await self.redis.get(key)
            if cached is None:
                return None
            return json.loads(cached)
        except (RedisError, ValueError) as e:
            logger.warning("cache_get_failed", error=str(e), key=key)
            return None

    async def put(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False
        try:
            await self.redis.set(key, json.dumps(value, default=str), ex=ttl_seconds)
            return True
        except (RedisError, TypeError) as e:
            logger.warning("cache_set_failed", error=str(e), key=key)
            return False

    async def has(self, key: str) -> bool:
        try:
            return bool(await self.redis.exists(key))
        except RedisError as e:
            logger.warning("cache_exists_failed", error=str(e), key=key)
            return False

    async def forget(self, key: str) -> bool:
        try:
            return bool(await self.redis.delete(key))
        except RedisError as e:
            logger.warning("cache_delete_failed", error=str(e), key=key)
            return False

    async def keys_matching(self, pattern: str) -> list[str]:
        try:
            keys = [key async for key in self.redis.scan_iter(match=pattern)]
        except RedisError as e:
            raise CacheStoreError(f"Key scan failed for {pattern!r}: {e}", details={"pattern": pattern}) from e
        return [key.decode("utf-8") if isinstance(key, bytes) else key for key in keys]

    async def delete_many(self, keys: list[str]) -> int:
        removed = 0
        try:
            for i in range(0, len(keys), DELETE_BATCH_SIZE):
                removed += await self.redis.delete(*keys[i : i + DELETE_BATCH_SIZE])
        except RedisError as e:
            raise CacheStoreError(f"Bulk delete failed: {e}", details={"keys": len(keys)}) from e
        return removed

    async def memory_usage(self, key: str) -> int | None:
        try:
            return await self.redis.memory_usage(key)
        except RedisError as e:
            logger.warning("cache_memory_usage_failed", error=str(e), key=key)
            return None

    async def tag(self, key: str, tags: Iterable[str], ttl_seconds: int) -> bool:
        try:
            for tag in tags:
                await self.redis.sadd(tag, key)
                if await self.redis.ttl(tag) < ttl_seconds:
                    await self.redis.expire(tag, ttl_seconds)
            return True
        except RedisError as e:
            logger.warning("cache_tag_failed", error=str(e), key=key)
            return False

    async def flush_tag(self, tag: str) -> int:
        try:
            members = await self.redis.smembers(tag)
            keys = [key.decode("utf-8") if isinstance(key, bytes) else key for key in members]
            removed = await self.delete_many(keys) if keys else 0
            await self.redis.delete(tag)
        except RedisError as e:
            raise CacheStoreError(f"Tag flush failed for {tag!r}: {e}", details={"tag": tag}) from e
        return removed
