"""
Unit tests for InMemoryQuerySource and reduce_values.

Uses the shared order data set (see conftest) with the resolver pinned to
2024-03-15 12:00 UTC.
"""

from datetime import UTC, date, datetime
from types import SimpleNamespace

import pytest

from dashmetrics.exceptions import QuerySourceUnavailableError
from dashmetrics.sources import AggregateFunction, InMemoryQuerySource
from dashmetrics.sources.base import reduce_values


class TestReduceValues:
    """Tests for aggregate semantics over extracted values."""

    def test_nulls_are_ignored(self):
        values = [1, None, 3]

        assert reduce_values(AggregateFunction.COUNT, values) == 2
        assert reduce_values(AggregateFunction.SUM, values) == 4
        assert reduce_values(AggregateFunction.AVG, values) == 2.0
        assert reduce_values(AggregateFunction.MAX, values) == 3
        assert reduce_values(AggregateFunction.MIN, values) == 1

    def test_empty_input(self):
        assert reduce_values(AggregateFunction.COUNT, []) == 0
        assert reduce_values(AggregateFunction.SUM, []) == 0
        assert reduce_values(AggregateFunction.AVG, []) is None
        assert reduce_values(AggregateFunction.MAX, [None]) is None

    def test_accepts_string_function(self):
        assert reduce_values("sum", [2, 3]) == 5


class TestAggregate:
    """Tests for single aggregates."""

    @pytest.mark.asyncio
    async def test_count_and_sum_over_window(self, memory_source, resolver):
        window = resolver.resolve(30, "UTC")

        assert await memory_source.count(window) == 4
        assert await memory_source.sum("total", window) == 475.0

    @pytest.mark.asyncio
    async def test_previous_window(self, memory_source, resolver):
        window = resolver.resolve_previous(30, "UTC")

        assert await memory_source.count(window) == 2
        assert await memory_source.sum("total", window) == 100.0

    @pytest.mark.asyncio
    async def test_no_window_means_all_records(self, memory_source):
        assert await memory_source.count() == 7
        assert await memory_source.max("total") == 500.0
        assert await memory_source.min("total") == 40.0

    @pytest.mark.asyncio
    async def test_count_of_column_skips_nulls(self, memory_source):
        assert await memory_source.count(column="status") == 6

    @pytest.mark.asyncio
    async def test_average(self, memory_source, resolver):
        window = resolver.resolve("MTD", "UTC")

        assert await memory_source.avg("total", window) == pytest.approx(400 / 3)

    @pytest.mark.asyncio
    async def test_empty_window(self, memory_source, resolver):
        window = resolver.resolve("TODAY", "UTC")

        assert await memory_source.sum("total", window) == 0
        assert await memory_source.avg("total", window) is None

    @pytest.mark.asyncio
    async def test_missing_column_is_unavailable(self, memory_source):
        with pytest.raises(QuerySourceUnavailableError):
            await memory_source.sum("revenue")

    @pytest.mark.asyncio
    async def test_empty_source_has_no_columns_to_check(self):
        source = InMemoryQuerySource([])

        assert await source.sum("total") == 0


class TestAggregateByBucket:
    """Tests for time-bucketed aggregates."""

    @pytest.mark.asyncio
    async def test_daily_buckets_ascending(self, memory_source, resolver):
        window = resolver.resolve("MTD", "UTC")

        buckets = await memory_source.aggregate_by_bucket(AggregateFunction.SUM, "total", window, "day", "UTC")

        assert buckets == {"2024-03-01": 50.0, "2024-03-10": 250.0, "2024-03-14": 100.0}

    @pytest.mark.asyncio
    async def test_monthly_buckets_without_window(self, memory_source):
        buckets = await memory_source.aggregate_by_bucket(AggregateFunction.COUNT, None, None, "month", "UTC")

        assert buckets == {"2023-06": 1, "2024-01": 1, "2024-02": 2, "2024-03": 3}

    @pytest.mark.asyncio
    async def test_timezone_shifts_buckets(self):
        source = InMemoryQuerySource([{"created_at": datetime(2024, 1, 1, 3, 0, tzinfo=UTC)}])

        utc = await source.aggregate_by_bucket(AggregateFunction.COUNT, None, None, "day", "UTC")
        new_york = await source.aggregate_by_bucket(AggregateFunction.COUNT, None, None, "day", "America/New_York")

        assert utc == {"2024-01-01": 1}
        assert new_york == {"2023-12-31": 1}


class TestAggregateByColumn:
    """Tests for column-grouped aggregates."""

    @pytest.mark.asyncio
    async def test_groups_include_null_key(self, memory_source):
        groups = await memory_source.aggregate_by_column(AggregateFunction.SUM, "total", "status", None)

        assert groups == {"paid": 950.0, "refunded": 50.0, None: 75.0}


class TestFetchRecords:
    """Tests for raw record access."""

    @pytest.mark.asyncio
    async def test_ordering_and_limit(self, memory_source):
        records = await memory_source.fetch_records(order_by="total", descending=True, limit=2)

        assert [record["total"] for record in records] == [500.0, 250.0]

    @pytest.mark.asyncio
    async def test_nulls_sort_last(self):
        source = InMemoryQuerySource([{"v": None}, {"v": 2}, {"v": 1}])

        records = await source.fetch_records(order_by="v")

        assert [record["v"] for record in records] == [1, 2, None]

    @pytest.mark.asyncio
    async def test_records_are_copies(self, memory_source):
        records = await memory_source.fetch_records()
        records[0]["total"] = -1

        assert await memory_source.max("total") == 500.0

    @pytest.mark.asyncio
    async def test_objects_and_string_timestamps(self, resolver):
        source = InMemoryQuerySource(
            [
                SimpleNamespace(created_at="2024-03-14T09:00:00+00:00", amount=5),
                SimpleNamespace(created_at=date(2024, 3, 2), amount=7),
                SimpleNamespace(created_at=None, amount=100),
            ]
        )
        window = resolver.resolve("MTD", "UTC")

        assert await source.sum("amount", window) == 12
