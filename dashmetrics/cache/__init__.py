"""Metric cache: store ports, backends, key composition and the manager."""

from dashmetrics.cache.keys import CacheKeyComposer
from dashmetrics.cache.manager import CacheManager
from dashmetrics.cache.memory_store import InMemoryCacheStore
from dashmetrics.cache.redis_store import RedisCacheStore, create_redis_client
from dashmetrics.cache.store import CacheStore, SupportsKeyEnumeration, SupportsMemoryUsage, SupportsTagging
from dashmetrics.cache.ttl import resolve_ttl
from dashmetrics.config import Settings, settings as default_settings


def create_cache_store(settings: Settings | None = None) -> CacheStore:
    """Redis store when ``enable_redis_cache`` is set, otherwise the in-memory store."""
    settings = settings or default_settings
    if settings.enable_redis_cache:
        return RedisCacheStore(create_redis_client(settings))
    return InMemoryCacheStore(max_entries=settings.metric_cache_max_entries)


__all__ = [
    "CacheKeyComposer",
    "CacheManager",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "SupportsKeyEnumeration",
    "SupportsMemoryUsage",
    "SupportsTagging",
    "create_cache_store",
    "create_redis_client",
    "resolve_ttl",
]
