"""
Aggregation strategy interface.

A strategy turns (request, range resolver, query source) into one typed
result. Strategies form a closed set (value, trend, partition, progress,
table) behind this single interface; a Metric picks one at configuration
time.

Data access failures never break a dashboard: ``calculate`` converts a
QuerySourceError into the strategy's empty result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

import structlog

from dashmetrics.exceptions import QuerySourceError
from dashmetrics.models.request import MetricRequest
from dashmetrics.results.base import MetricResult
from dashmetrics.sources.base import AggregateFunction, QuerySource
from dashmetrics.timeframes import DateWindow, RangeResolver

logger = structlog.get_logger(__name__)


class AggregationStrategy(ABC):
    """Base class for the five aggregation strategies."""

    kind: ClassVar[str]

    def __init__(self, source: QuerySource):
        self.source = source

    @abstractmethod
    async def compute(self, request: MetricRequest, resolver: RangeResolver) -> MetricResult:
        """Query the source and build a fresh result."""

    @abstractmethod
    def empty_result(self) -> MetricResult:
        """Result rendered when the source cannot be queried."""

    @property
    def single_aggregate(self) -> tuple[AggregateFunction, str | None] | None:
        """(function, column) when the strategy computes one aggregate, else None."""
        return None

    async def calculate(self, request: MetricRequest, resolver: RangeResolver) -> MetricResult:
        try:
            return await self.compute(request, resolver)
        except QuerySourceError as e:
            logger.warning(
                "query_source_unavailable",
                strategy=self.kind,
                error=e.message,
                details=e.details,
            )
            return self.empty_result()

    @staticmethod
    def window_for(request: MetricRequest, resolver: RangeResolver) -> DateWindow | None:
        """Current window, or None for ALL."""
        token = request.range_token
        if token.is_unbounded:
            return None
        return resolver.resolve(token, request.timezone)


def parse_function(function: AggregateFunction | str) -> AggregateFunction:
    return AggregateFunction(function.lower() if isinstance(function, str) else function)