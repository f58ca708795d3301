"""
Metric Cache Manager.

Wraps an injected CacheStore with hit/miss/write/delete accounting,
cache-aside ``remember`` with an optional per-key single-flight guard,
best-effort pattern and tag invalidation, bulk warming and a performance
heuristic.

Accounting rules:
- ``remember`` counts exactly one hit, or one miss plus one write. A
  producer that raises counts the miss only and the error propagates.
- With single-flight enabled, concurrent ``remember`` calls for one key
  wait for the first computation and then count as hits.
- A TTL of None or 0 bypasses the cache entirely and counts nothing.
- Tag invalidation counts one delete per removed payload key.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from itertools import product
from typing import Any, AsyncIterator, Protocol

import structlog

from dashmetrics.cache.keys import CacheKeyComposer
from dashmetrics.cache.store import CacheStore, SupportsKeyEnumeration, SupportsMemoryUsage, SupportsTagging
from dashmetrics.config import Settings, settings as default_settings
from dashmetrics.models.cache import CacheStats, MemoryUsage, PerformanceReport, WarmItemResult, WarmStatus
from dashmetrics.models.request import MetricRequest
from dashmetrics.observability.metrics import metric_cache_operations_total, metric_cache_warm_items_total

logger = structlog.get_logger(__name__)

ParameterSet = tuple[Any, str] | MetricRequest

_OPERATION_LABELS = {"hits": "hit", "misses": "miss", "writes": "write", "deletes": "delete"}


class CacheableMetric(Protocol):
    """What the manager needs from a metric to warm and invalidate it."""

    @property
    def uri_key(self) -> str: ...

    @property
    def ranges(self) -> Mapping[Any, str]: ...

    @property
    def cache_identity(self) -> str: ...

    @property
    def cache_tags(self) -> Iterable[str]: ...

    def cache_ttl(self, now: datetime | None = None) -> int | None: ...

    def cache_key(self, composer: CacheKeyComposer, request: MetricRequest) -> str: ...

    async def compute_payload(self, request: MetricRequest) -> dict[str, Any]: ...


def _identity(metric: CacheableMetric | str) -> str:
    return metric if isinstance(metric, str) else metric.cache_identity


class CacheManager:
    """
    Cache facade used by metrics and the metric service.

    Example:
        ```python
        manager = CacheManager(InMemoryCacheStore())
        payload = await manager.remember(key, 300, compute_payload)
        manager.get_stats().hit_ratio
        ```
    """

    def __init__(
        self,
        store: CacheStore,
        settings: Settings | None = None,
        key_composer: CacheKeyComposer | None = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.keys = key_composer or CacheKeyComposer(self.settings.metric_cache_prefix)
        self._stats = CacheStats()
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    # Accounting

    def _record(self, counter: str, count: int = 1) -> None:
        if count <= 0:
            return
        setattr(self._stats, counter, getattr(self._stats, counter) + count)
        metric_cache_operations_total.labels(operation=_OPERATION_LABELS[counter]).inc(count)

    def get_stats(self) -> CacheStats:
        return CacheStats(**vars(self._stats))

    def reset_stats(self) -> None:
        self._stats = CacheStats()

    # Basic operations

    async def get(self, key: str) -> Any | None:
        value = await self.store.get(key)
        if value is None:
            self._record("misses")
            logger.debug("cache_miss", key=key)
        else:
            self._record("hits")
            logger.debug("cache_hit", key=key)
        return value

    async def put(self, key: str, value: Any, ttl_seconds: int, tags: Iterable[str] = ()) -> bool:
        stored = await self.store.put(key, value, ttl_seconds)
        if stored:
            self._record("writes")
            logger.debug("cache_set", key=key, ttl_seconds=ttl_seconds)
            await self._tag(key, tags, ttl_seconds)
        return stored

    async def _tag(self, key: str, tags: Iterable[str], ttl_seconds: int) -> None:
        tags = list(tags)
        if not tags:
            return
        if not isinstance(self.store, SupportsTagging):
            logger.debug("cache_tags_unsupported", key=key, store=type(self.store).__name__)
            return
        await self.store.tag(key, [self.keys.tag_key(tag) for tag in tags], ttl_seconds)

    async def has(self, key: str) -> bool:
        return await self.store.has(key)

    async def forget(self, key: str) -> bool:
        removed = await self.store.forget(key)
        if removed:
            self._record("deletes")
        logger.debug("cache_forget", key=key, removed=removed)
        return removed

    @asynccontextmanager
    async def _single_flight(self, key: str) -> AsyncIterator[None]:
        if not self.settings.metric_cache_single_flight:
            yield
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    async def remember(
        self,
        key: str,
        ttl_seconds: int | None,
        producer: Callable[[], Awaitable[Any]],
        tags: Iterable[str] = (),
    ) -> Any:
        """
        Return the cached value for ``key`` or compute, store and return it.

        Args:
            key: Composed cache key
            ttl_seconds: Entry lifetime; None or 0 always recomputes without storing
            producer: Coroutine function computing the value on a miss
            tags: Tags attached to a freshly stored value

        Returns:
            Cached or freshly computed value
        """
        if not ttl_seconds:
            return await producer()

        async with self._single_flight(key):
            value = await self.get(key)
            if value is not None:
                return value

            value = await producer()
            await self.put(key, value, ttl_seconds, tags)
            return value

    # Invalidation

    @property
    def supports_pattern_invalidation(self) -> bool:
        return isinstance(self.store, SupportsKeyEnumeration)

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Stores that cannot enumerate keys report 0 deletions without error.

        Returns:
            Number of keys deleted
        """
        if not isinstance(self.store, SupportsKeyEnumeration):
            logger.info("cache_pattern_unsupported", pattern=pattern, store=type(self.store).__name__)
            return 0

        keys = await self.store.keys_matching(pattern)
        deleted = await self.store.delete_many(keys) if keys else 0
        self._record("deletes", deleted)
        logger.info("cache_pattern_invalidated", pattern=pattern, keys_removed=deleted)
        return deleted

    async def invalidate_metric(self, metric: CacheableMetric | str) -> int:
        return await self.invalidate_pattern(self.keys.metric_pattern(_identity(metric)))

    async def invalidate_all(self) -> int:
        return await self.invalidate_pattern(self.keys.all_pattern())

    @property
    def supports_tag_invalidation(self) -> bool:
        return isinstance(self.store, SupportsTagging)

    async def invalidate_tag(self, tag: str) -> int:
        """
        Delete every payload stored with ``tag``.

        Stores without tag support report 0 deletions without error.

        Returns:
            Number of keys deleted
        """
        if not isinstance(self.store, SupportsTagging):
            logger.info("cache_tags_unsupported", tag=tag, store=type(self.store).__name__)
            return 0

        deleted = await self.store.flush_tag(self.keys.tag_key(tag))
        self._record("deletes", deleted)
        logger.info("cache_tag_invalidated", tag=tag, keys_removed=deleted)
        return deleted

    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        deleted = 0
        for tag in tags:
            deleted += await self.invalidate_tag(tag)
        return deleted

    async def get_metric_keys(self, metric: CacheableMetric | str) -> list[str]:
        if not isinstance(self.store, SupportsKeyEnumeration):
            return []
        return sorted(await self.store.keys_matching(self.keys.metric_pattern(_identity(metric))))

    # Warming

    def default_parameter_sets(self, metric: CacheableMetric) -> list[tuple[Any, str]]:
        """Every declared range crossed with every configured warming timezone."""
        return list(product(metric.ranges.keys(), self.settings.metric_cache_timezones))

    async def _warm_one(
        self,
        metric: CacheableMetric,
        params: ParameterSet,
        ttl_seconds: int | None,
        semaphore: asyncio.Semaphore,
    ) -> WarmItemResult:
        if isinstance(params, MetricRequest):
            range_value, timezone = params.range, params.timezone
        else:
            range_value, timezone = params

        if not ttl_seconds:
            metric_cache_warm_items_total.labels(status=WarmStatus.ERROR.value).inc()
            return WarmItemResult(
                range=str(range_value),
                timezone=timezone,
                status=WarmStatus.ERROR,
                message="Caching is disabled for this metric",
            )

        async with semaphore:
            try:
                request = params if isinstance(params, MetricRequest) else MetricRequest(
                    range=range_value, timezone=timezone
                )
                key = metric.cache_key(self.keys, request)

                if await self.store.has(key):
                    status = WarmStatus.ALREADY_CACHED
                else:
                    payload = await metric.compute_payload(request)
                    await self.put(key, payload, ttl_seconds, metric.cache_tags)
                    status = WarmStatus.WARMED
                result = WarmItemResult(range=str(range_value), timezone=timezone, status=status, key=key)
            except Exception as e:
                logger.warning(
                    "cache_warm_item_failed",
                    metric=metric.uri_key,
                    range=str(range_value),
                    timezone=timezone,
                    error=str(e),
                )
                result = WarmItemResult(
                    range=str(range_value),
                    timezone=timezone,
                    status=WarmStatus.ERROR,
                    message=str(e),
                )

        metric_cache_warm_items_total.labels(status=result.status.value).inc()
        return result

    async def warm(
        self,
        metric: CacheableMetric,
        parameter_sets: Iterable[ParameterSet] | None = None,
        concurrency: int | None = None,
    ) -> list[WarmItemResult]:
        """
        Populate the cache for a metric across parameter sets.

        Existing entries are reported as ``already_cached`` and left
        untouched. Per-item failures are recorded and the batch continues.
        Metrics without a cache policy are stored for
        ``settings.metric_cache_ttl`` seconds; a policy resolving to 0
        disables warming.

        Args:
            metric: Metric to warm
            parameter_sets: (range, timezone) pairs or MetricRequests
                (defaults to ranges x configured timezones)
            concurrency: Worker pool size (defaults to settings)

        Returns:
            One WarmItemResult per parameter set, in input order
        """
        params = list(parameter_sets) if parameter_sets is not None else self.default_parameter_sets(metric)
        semaphore = asyncio.Semaphore(concurrency or self.settings.cache_warm_concurrency)
        ttl_seconds = metric.cache_ttl()
        if ttl_seconds is None:
            ttl_seconds = self.settings.metric_cache_ttl

        results = await asyncio.gather(*(self._warm_one(metric, p, ttl_seconds, semaphore) for p in params))

        logger.info(
            "cache_warm_completed",
            metric=metric.uri_key,
            warmed=sum(r.status is WarmStatus.WARMED for r in results),
            already_cached=sum(r.status is WarmStatus.ALREADY_CACHED for r in results),
            errors=sum(r.status is WarmStatus.ERROR for r in results),
        )
        return list(results)

    async def warm_metrics(
        self,
        metrics: Iterable[CacheableMetric],
        concurrency: int | None = None,
    ) -> dict[str, list[WarmItemResult]]:
        """Warm several metrics with their default parameter sets."""
        return {metric.uri_key: await self.warm(metric, concurrency=concurrency) for metric in metrics}

    # Analysis

    async def get_memory_usage(self, metric: CacheableMetric | str | None = None) -> MemoryUsage:
        """Bytes held by one metric's keys (or all metric keys) when the store can tell."""
        store = self.store
        if not (isinstance(store, SupportsKeyEnumeration) and isinstance(store, SupportsMemoryUsage)):
            return MemoryUsage(supported=False)

        pattern = self.keys.metric_pattern(_identity(metric)) if metric is not None else self.keys.all_pattern()
        usage = MemoryUsage(supported=True)
        for key in await store.keys_matching(pattern):
            size = await store.memory_usage(key)
            if size is None:
                continue
            usage.per_key[key] = size
            usage.total_bytes += size
            usage.keys += 1
        return usage

    async def analyze_performance(self) -> PerformanceReport:
        """
        Advisory health check.

        Flags a hit ratio below ``cache_low_hit_ratio`` (only once there have
        been lookups) and memory above ``cache_high_memory_bytes`` (only when
        the store reports memory).
        """
        stats = self.get_stats()
        memory = await self.get_memory_usage()
        report = PerformanceReport(stats=stats, memory=memory)

        if stats.total_lookups > 0 and stats.hit_ratio < self.settings.cache_low_hit_ratio:
            report.findings.append(
                f"Low cache hit ratio: {stats.hit_ratio:.1%} "
                f"(below {self.settings.cache_low_hit_ratio:.0%}); consider longer TTLs or cache warming"
            )
        if memory.supported and memory.total_bytes > self.settings.cache_high_memory_bytes:
            report.findings.append(
                f"High cache memory usage: {memory.total_bytes / 1024 / 1024:.1f} MiB "
                f"across {memory.keys} keys; consider shorter TTLs or fewer warmed ranges"
            )

        logger.info("cache_performance_analyzed", hit_ratio=stats.hit_ratio, findings=len(report.findings))
        return report
