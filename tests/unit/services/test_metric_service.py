"""Unit tests for MetricService resolution, authorization and degradation."""

import pytest
from pydantic import ValidationError

from dashmetrics.aggregations import PartitionAggregation, ValueAggregation
from dashmetrics.metric import Metric
from dashmetrics.models.request import MetricRequest
from dashmetrics.services.metric_service import MetricService
from dashmetrics.sources import InMemoryQuerySource


class ExplodingSource(InMemoryQuerySource):
    """Source failing with an error that is not a query source error."""

    async def aggregate(self, function, column, window):
        raise RuntimeError("connection reset")


@pytest.fixture
def service(cache_manager):
    return MetricService(cache_manager)


@pytest.fixture
def revenue(memory_source, resolver):
    return Metric("Revenue", ValueAggregation(memory_source, "sum", "total"), resolver=resolver).cache_for(300).freeze()


@pytest.fixture
def statuses(memory_source, resolver):
    return Metric("Order Status", PartitionAggregation(memory_source, "status"), resolver=resolver).freeze()


class TestResolve:
    """Tests for resolving one metric."""

    @pytest.mark.asyncio
    async def test_cached_metric_computes_once(self, service, revenue):
        request = MetricRequest(range=30)

        first = await service.resolve(revenue, request)
        second = await service.resolve(revenue, request)

        stats = service.cache.get_stats()
        assert first == second
        assert first["value"] == 475.0
        assert (stats.hits, stats.misses, stats.writes) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_uncached_metric_skips_cache(self, service, statuses):
        payload = await service.resolve(statuses, MetricRequest(range="ALL"))

        assert payload["total"] == 7
        assert service.cache.get_stats().total_lookups == 0

    @pytest.mark.asyncio
    async def test_unauthorized_returns_none(self, service, memory_source, resolver):
        metric = Metric("Secret", ValueAggregation(memory_source), resolver=resolver).authorize_using(
            lambda request: request.user_id == "admin"
        )

        assert await service.resolve(metric, MetricRequest(user_id="guest")) is None
        assert await service.resolve(metric, MetricRequest(user_id="admin")) is not None

    @pytest.mark.asyncio
    async def test_different_timezones_are_cached_separately(self, service, revenue):
        await service.resolve(revenue, MetricRequest(range="MTD", timezone="UTC"))
        await service.resolve(revenue, MetricRequest(range="MTD", timezone="Pacific/Auckland"))

        assert service.cache.get_stats().writes == 2

    @pytest.mark.asyncio
    async def test_tagged_metric_is_invalidated_by_tag(self, service, memory_source, resolver):
        metric = (
            Metric("Orders", ValueAggregation(memory_source), resolver=resolver)
            .cache_for(300)
            .with_cache_tags("sales")
            .freeze()
        )
        request = MetricRequest(range=30)

        await service.resolve(metric, request)
        assert await service.cache.invalidate_tag("sales") == 1
        await service.resolve(metric, request)

        stats = service.cache.get_stats()
        assert (stats.hits, stats.misses, stats.writes, stats.deletes) == (0, 2, 2, 1)


class TestResolveAll:
    """Tests for resolving a whole dashboard."""

    @pytest.mark.asyncio
    async def test_payloads_in_order(self, service, revenue, statuses):
        payloads = await service.resolve_all([statuses, revenue], MetricRequest(range=30))

        assert list(payloads) == ["order-status", "revenue"]

    @pytest.mark.asyncio
    async def test_unauthorized_metrics_are_omitted(self, service, revenue, memory_source, resolver):
        hidden = Metric("Hidden", ValueAggregation(memory_source), resolver=resolver).authorize_using(lambda r: False)

        payloads = await service.resolve_all([revenue, hidden], MetricRequest(range=30))

        assert list(payloads) == ["revenue"]

    @pytest.mark.asyncio
    async def test_failing_metric_degrades_to_empty_payload(self, service, revenue, resolver):
        broken = Metric("Broken", ValueAggregation(ExplodingSource([{"total": 1}]), "sum", "total"), resolver=resolver)

        payloads = await service.resolve_all([broken, revenue], MetricRequest(range=30))

        assert payloads["broken"] == {"value": None, "formatted_value": "0", "has_no_data": True}
        assert payloads["revenue"]["value"] == 475.0

    @pytest.mark.asyncio
    async def test_failing_metric_propagates_from_resolve(self, service, resolver):
        broken = Metric("Broken", ValueAggregation(ExplodingSource([{"total": 1}]), "sum", "total"), resolver=resolver)

        with pytest.raises(RuntimeError):
            await service.resolve(broken, MetricRequest(range=30))


class TestMetricRequest:
    """Tests for request validation."""

    def test_defaults(self):
        request = MetricRequest()

        assert request.range == 30
        assert request.timezone == "UTC"
        assert request.sort_direction == "desc"

    @pytest.mark.parametrize(
        "fields",
        [{"range": "forever"}, {"range": 0}, {"timezone": "Mars/Olympus_Mons"}, {"limit": -1}, {"sort_direction": "up"}],
    )
    def test_invalid_requests(self, fields):
        with pytest.raises(ValidationError):
            MetricRequest(**fields)

    def test_request_is_immutable(self):
        request = MetricRequest(range="MTD")

        with pytest.raises(ValidationError):
            request.range = "YTD"
