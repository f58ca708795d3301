"""
Pytest configuration and fixtures for dashmetrics tests.

Provides a pinned clock, an order data set shared by the in-memory and
SQLAlchemy query sources, and cache fixtures.
"""

from datetime import UTC, datetime

import pytest

from dashmetrics.cache.manager import CacheManager
from dashmetrics.cache.memory_store import InMemoryCacheStore
from dashmetrics.config import Settings
from dashmetrics.sources.memory import InMemoryQuerySource
from dashmetrics.timeframes import RangeResolver

# Friday 2024-03-15 12:00 UTC
FROZEN_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)

# Current 30-day window: 2024-02-14 12:00 .. 2024-03-15 12:00
# Previous 30-day window: 2024-01-15 12:00 .. 2024-02-14 11:59:59.999999
ORDER_ROWS = [
    {"id": 1, "customer": "Ann", "status": "paid", "total": 100.0, "created_at": datetime(2024, 3, 14, 10, 0)},
    {"id": 2, "customer": "Bob", "status": "paid", "total": 250.0, "created_at": datetime(2024, 3, 10, 13, 30)},
    {"id": 3, "customer": "Cid", "status": "refunded", "total": 50.0, "created_at": datetime(2024, 3, 1, 11, 0)},
    {"id": 4, "customer": "Dee", "status": None, "total": 75.0, "created_at": datetime(2024, 2, 20, 15, 0)},
    {"id": 5, "customer": "Eve", "status": "paid", "total": 40.0, "created_at": datetime(2024, 2, 1, 12, 0)},
    {"id": 6, "customer": "Fay", "status": "paid", "total": 60.0, "created_at": datetime(2024, 1, 20, 14, 0)},
    {"id": 7, "customer": "Gus", "status": "paid", "total": 500.0, "created_at": datetime(2023, 6, 1, 10, 0)},
]


@pytest.fixture
def now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def resolver() -> RangeResolver:
    """Range resolver whose "now" is pinned to FROZEN_NOW."""
    return RangeResolver(clock=lambda: FROZEN_NOW)


@pytest.fixture
def order_rows() -> list[dict]:
    return [dict(row) for row in ORDER_ROWS]


@pytest.fixture
def memory_source(order_rows) -> InMemoryQuerySource:
    return InMemoryQuerySource(order_rows, date_field="created_at")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        metric_cache_timezones=["UTC"],
        metric_cache_single_flight=True,
        cache_warm_concurrency=2,
    )


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore(max_entries=100)


@pytest.fixture
def cache_manager(cache_store, test_settings) -> CacheManager:
    return CacheManager(cache_store, settings=test_settings)
