"""
Unit tests for CacheManager.

Tests cover:
- remember accounting (one hit, or one miss plus one write)
- TTL bypass, producer failures and single-flight coalescing
- Pattern invalidation with and without key enumeration
- Tag invalidation with and without store tag support
- Cache warming outcomes and ordering
- Performance analysis findings
"""

import asyncio
from typing import Any

import pytest

from dashmetrics.cache import CacheManager, CacheStore, InMemoryCacheStore
from dashmetrics.config import Settings
from dashmetrics.models.cache import WarmStatus
from dashmetrics.models.request import MetricRequest


class KeyValueOnlyStore(CacheStore):
    """Store without key enumeration or memory reporting."""

    def __init__(self):
        self.data: dict[str, Any] = {}

    async def get(self, key):
        return self.data.get(key)

    async def put(self, key, value, ttl_seconds):
        self.data[key] = value
        return True

    async def has(self, key):
        return key in self.data

    async def forget(self, key):
        return self.data.pop(key, None) is not None


class TtlRecordingStore(KeyValueOnlyStore):
    """Store remembering the TTL each key was written with."""

    def __init__(self):
        super().__init__()
        self.ttls: dict[str, int] = {}

    async def put(self, key, value, ttl_seconds):
        self.ttls[key] = ttl_seconds
        return await super().put(key, value, ttl_seconds)


class StubMetric:
    """Minimal cacheable metric recording its computations."""

    def __init__(self, uri_key="orders", ttl=300, ranges=None, failing_ranges=(), tags=()):
        self.uri_key = uri_key
        self.cache_identity = uri_key
        self.cache_tags = tuple(tags)
        self.ranges = ranges or {30: "30 Days", "MTD": "Month To Date"}
        self.ttl = ttl
        self.failing_ranges = set(failing_ranges)
        self.computed: list[Any] = []

    def cache_ttl(self, now=None):
        return self.ttl

    def cache_key(self, composer, request):
        return composer.compose(self.cache_identity, request.range, request.timezone)

    async def compute_payload(self, request):
        if request.range in self.failing_ranges:
            raise RuntimeError(f"cannot compute {request.range}")
        self.computed.append(request.range)
        return {"value": len(self.computed)}


class Counter:
    def __init__(self, value=None):
        self.calls = 0
        self.value = value if value is not None else {"value": 1}

    async def __call__(self):
        self.calls += 1
        return self.value


class TestRemember:
    """Tests for cache-aside accounting."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, cache_manager):
        producer = Counter()

        first = await cache_manager.remember("metric:a", 60, producer)
        second = await cache_manager.remember("metric:a", 60, producer)

        stats = cache_manager.get_stats()
        assert first == second == {"value": 1}
        assert producer.calls == 1
        assert (stats.hits, stats.misses, stats.writes) == (1, 1, 1)

    @pytest.mark.parametrize("ttl", [None, 0])
    @pytest.mark.asyncio
    async def test_disabled_ttl_bypasses_cache(self, cache_manager, ttl):
        producer = Counter()

        await cache_manager.remember("metric:a", ttl, producer)
        await cache_manager.remember("metric:a", ttl, producer)

        stats = cache_manager.get_stats()
        assert producer.calls == 2
        assert stats.total_lookups == 0
        assert stats.writes == 0
        assert not await cache_manager.has("metric:a")

    @pytest.mark.asyncio
    async def test_failing_producer_counts_miss_only(self, cache_manager):
        async def explode():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache_manager.remember("metric:a", 60, explode)

        stats = cache_manager.get_stats()
        assert (stats.hits, stats.misses, stats.writes) == (0, 1, 0)

    @pytest.mark.asyncio
    async def test_single_flight_coalesces_concurrent_misses(self, cache_manager):
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"value": 42}

        results = await asyncio.gather(*(cache_manager.remember("metric:a", 60, slow) for _ in range(5)))

        stats = cache_manager.get_stats()
        assert results == [{"value": 42}] * 5
        assert calls == 1
        assert (stats.hits, stats.misses, stats.writes) == (4, 1, 1)
        assert cache_manager._locks == {}

    @pytest.mark.asyncio
    async def test_without_single_flight_each_miss_computes(self, cache_store):
        manager = CacheManager(cache_store, settings=Settings(metric_cache_single_flight=False))
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"value": 42}

        await asyncio.gather(*(manager.remember("metric:a", 60, slow) for _ in range(3)))

        assert calls == 3

    @pytest.mark.asyncio
    async def test_stats_are_a_snapshot(self, cache_manager):
        await cache_manager.get("metric:a")
        snapshot = cache_manager.get_stats()
        snapshot.misses = 100

        assert cache_manager.get_stats().misses == 1

    @pytest.mark.asyncio
    async def test_reset_stats(self, cache_manager):
        await cache_manager.get("metric:a")
        cache_manager.reset_stats()

        assert cache_manager.get_stats().total_lookups == 0


class TestBasicOperations:
    """Tests for put/forget accounting."""

    @pytest.mark.asyncio
    async def test_forget_counts_delete_only_when_removed(self, cache_manager):
        await cache_manager.put("metric:a", 1, 60)

        assert await cache_manager.forget("metric:a") is True
        assert await cache_manager.forget("metric:a") is False
        assert cache_manager.get_stats().deletes == 1

    @pytest.mark.asyncio
    async def test_dropped_write_not_counted(self, cache_manager):
        assert await cache_manager.put("metric:a", 1, 0) is False

        assert cache_manager.get_stats().writes == 0


class TestInvalidation:
    """Tests for pattern invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_metric(self, cache_manager):
        keys = cache_manager.keys
        await cache_manager.put(keys.compose("orders", 30, "UTC"), 1, 60)
        await cache_manager.put(keys.compose("orders", "MTD", "UTC"), 2, 60)
        await cache_manager.put(keys.compose("revenue", 30, "UTC"), 3, 60)

        assert len(await cache_manager.get_metric_keys("orders")) == 2
        assert await cache_manager.invalidate_metric("orders") == 2
        assert await cache_manager.get_metric_keys("orders") == []
        assert await cache_manager.has(keys.compose("revenue", 30, "UTC"))
        assert cache_manager.get_stats().deletes == 2

    @pytest.mark.asyncio
    async def test_invalidate_all(self, cache_manager):
        keys = cache_manager.keys
        await cache_manager.put(keys.compose("orders", 30, "UTC"), 1, 60)
        await cache_manager.put(keys.compose("revenue", 30, "UTC"), 3, 60)

        assert await cache_manager.invalidate_all() == 2

    @pytest.mark.asyncio
    async def test_invalidate_metric_object(self, cache_manager):
        metric = StubMetric()
        await cache_manager.warm(metric, [(30, "UTC")])

        assert await cache_manager.invalidate_metric(metric) == 1

    @pytest.mark.asyncio
    async def test_store_without_enumeration_reports_zero(self, test_settings):
        manager = CacheManager(KeyValueOnlyStore(), settings=test_settings)
        await manager.put(manager.keys.compose("orders", 30, "UTC"), 1, 60)

        assert not manager.supports_pattern_invalidation
        assert await manager.invalidate_metric("orders") == 0
        assert await manager.get_metric_keys("orders") == []
        assert (await manager.get_memory_usage()).supported is False


class TestTagInvalidation:
    """Tests for tag invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_tag_removes_only_tagged_payloads(self, cache_manager):
        keys = cache_manager.keys
        orders = keys.compose("orders", 30, "UTC")
        revenue = keys.compose("revenue", 30, "UTC")
        users = keys.compose("users", 30, "UTC")
        await cache_manager.put(orders, 1, 60, tags=["sales"])
        await cache_manager.put(revenue, 2, 60, tags=["sales", "finance"])
        await cache_manager.put(users, 3, 60)

        assert cache_manager.supports_tag_invalidation
        assert await cache_manager.invalidate_tag("sales") == 2
        assert not await cache_manager.has(orders)
        assert not await cache_manager.has(revenue)
        assert await cache_manager.has(users)
        assert cache_manager.get_stats().deletes == 2
        assert await cache_manager.invalidate_tag("finance") == 0

    @pytest.mark.asyncio
    async def test_remember_tags_fresh_values(self, cache_manager):
        key = cache_manager.keys.compose("orders", 30, "UTC")
        counter = Counter(5)

        await cache_manager.remember(key, 60, counter, tags=("sales",))
        await cache_manager.invalidate_tag("sales")
        await cache_manager.remember(key, 60, counter, tags=("sales",))

        assert counter.calls == 2

    @pytest.mark.asyncio
    async def test_warm_tags_payloads_with_metric_tags(self, cache_manager):
        metric = StubMetric(tags=["sales"])
        await cache_manager.warm(metric, [(30, "UTC"), ("MTD", "UTC")])

        assert await cache_manager.invalidate_tags(["sales", "unused"]) == 2
        assert await cache_manager.get_metric_keys(metric) == []

    @pytest.mark.asyncio
    async def test_store_without_tagging_reports_zero(self, test_settings):
        manager = CacheManager(KeyValueOnlyStore(), settings=test_settings)
        key = manager.keys.compose("orders", 30, "UTC")

        assert await manager.put(key, 1, 60, tags=["sales"]) is True
        assert not manager.supports_tag_invalidation
        assert await manager.invalidate_tag("sales") == 0
        assert await manager.has(key)


class TestWarming:
    """Tests for cache warming."""

    @pytest.mark.asyncio
    async def test_warm_then_already_cached(self, cache_manager):
        metric = StubMetric()

        first = await cache_manager.warm(metric, [(30, "UTC"), ("MTD", "UTC")])
        second = await cache_manager.warm(metric, [(30, "UTC"), ("MTD", "UTC")])

        assert [item.status for item in first] == [WarmStatus.WARMED, WarmStatus.WARMED]
        assert [item.status for item in second] == [WarmStatus.ALREADY_CACHED, WarmStatus.ALREADY_CACHED]
        assert metric.computed == [30, "MTD"]
        assert first[0].key == cache_manager.keys.compose("orders", 30, "UTC")

    @pytest.mark.asyncio
    async def test_default_parameter_sets(self, cache_store):
        manager = CacheManager(cache_store, settings=Settings(metric_cache_timezones=["UTC", "Europe/Paris"]))
        metric = StubMetric()

        results = await manager.warm(metric)

        assert [(item.range, item.timezone) for item in results] == [
            ("30", "UTC"),
            ("30", "Europe/Paris"),
            ("MTD", "UTC"),
            ("MTD", "Europe/Paris"),
        ]
        assert all(item.status is WarmStatus.WARMED for item in results)

    @pytest.mark.asyncio
    async def test_failures_are_reported_per_item(self, cache_manager):
        metric = StubMetric(failing_ranges=["MTD"])

        results = await cache_manager.warm(metric, [(30, "UTC"), ("MTD", "UTC"), ("forever", "UTC")])

        assert [item.status for item in results] == [WarmStatus.WARMED, WarmStatus.ERROR, WarmStatus.ERROR]
        assert results[1].message == "cannot compute MTD"
        assert results[2].message

    @pytest.mark.asyncio
    async def test_metric_without_policy_uses_configured_ttl(self):
        store = TtlRecordingStore()
        manager = CacheManager(store, settings=Settings(_env_file=None, metric_cache_ttl=900))
        metric = StubMetric(ttl=None)

        results = await manager.warm(metric, [(30, "UTC")])

        assert results[0].status is WarmStatus.WARMED
        assert store.ttls == {results[0].key: 900}
        assert metric.computed == [30]

    @pytest.mark.asyncio
    async def test_zero_ttl_metric_cannot_be_warmed(self, cache_manager):
        metric = StubMetric(ttl=0)

        results = await cache_manager.warm(metric, [(30, "UTC")])

        assert results[0].status is WarmStatus.ERROR
        assert results[0].message == "Caching is disabled for this metric"
        assert metric.computed == []

    @pytest.mark.asyncio
    async def test_accepts_metric_requests(self, cache_manager):
        metric = StubMetric()

        results = await cache_manager.warm(metric, [MetricRequest(range="YTD", timezone="Asia/Tokyo")])

        assert results[0].status is WarmStatus.WARMED
        assert results[0].timezone == "Asia/Tokyo"

    @pytest.mark.asyncio
    async def test_warm_metrics(self, cache_manager):
        results = await cache_manager.warm_metrics([StubMetric("orders"), StubMetric("revenue")])

        assert set(results) == {"orders", "revenue"}
        assert all(len(items) == 2 for items in results.values())

    @pytest.mark.asyncio
    async def test_warm_result_to_dict(self, cache_manager):
        results = await cache_manager.warm(StubMetric(), [(30, "UTC")])

        assert results[0].to_dict()["status"] == "warmed"


class TestAnalyzePerformance:
    """Tests for the advisory performance report."""

    @pytest.mark.asyncio
    async def test_fresh_manager_is_healthy(self, cache_manager):
        report = await cache_manager.analyze_performance()

        assert report.healthy
        assert report.memory.supported

    @pytest.mark.asyncio
    async def test_low_hit_ratio_flagged(self, cache_manager):
        producer = Counter()
        await cache_manager.remember("metric:a", 60, producer)
        for key in ("metric:b", "metric:c"):
            await cache_manager.get(key)
        await cache_manager.get("metric:a")

        report = await cache_manager.analyze_performance()

        assert report.stats.hit_ratio == 0.25
        assert any("hit ratio" in finding for finding in report.findings)
        assert not report.healthy

    @pytest.mark.asyncio
    async def test_high_memory_flagged(self):
        manager = CacheManager(InMemoryCacheStore(max_entries=10), settings=Settings(cache_high_memory_bytes=0))
        await manager.put(manager.keys.compose("orders", 30, "UTC"), {"value": 1}, 60)

        report = await manager.analyze_performance()

        assert report.memory.keys == 1
        assert report.memory.total_bytes > 0
        assert any("memory" in finding for finding in report.findings)
        assert report.to_dict()["healthy"] is False
