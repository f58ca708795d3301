"""
Query Source port.

Aggregation strategies depend only on this interface. A query source counts,
sums, averages and takes min/max over a record set, optionally restricted to
a DateWindow and optionally grouped by time bucket or by column, and can hand
back raw records for tables and classifier-based partitions.

``window=None`` always means "no time restriction".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from statistics import fmean
from typing import Any

from dashmetrics.timeframes import BucketUnit, DateWindow

Number = int | float


class AggregateFunction(str, Enum):
    """Aggregates every query source supports."""

    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MAX = "max"
    MIN = "min"


def reduce_values(function: AggregateFunction, values: list[Any]) -> Number | None:
    """Apply an aggregate to already-extracted values. Nulls are ignored."""
    function = AggregateFunction(function)
    present = [value for value in values if value is not None]

    if function is AggregateFunction.COUNT:
        return len(present)
    if function is AggregateFunction.SUM:
        return sum(present)
    if not present:
        return None
    if function is AggregateFunction.AVG:
        return fmean(present)
    if function is AggregateFunction.MAX:
        return max(present)
    return min(present)


class QuerySource(ABC):
    """
    Abstract time-windowed aggregate capability.

    Semantics every implementation must honor:
    - COUNT without a column counts records; with a column it counts
      records whose column is not null.
    - SUM over no rows is 0; AVG/MAX/MIN over no rows is None.
    - ``aggregate_by_bucket`` returns buckets ascending by canonical bucket
      key (see ``dashmetrics.timeframes.bucketing.bucket_key``) and omits
      empty buckets.
    """

    @abstractmethod
    async def aggregate(
        self,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
    ) -> Number | None:
        """Single aggregate over the (optionally windowed) record set."""

    @abstractmethod
    async def aggregate_by_bucket(
        self,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
        unit: BucketUnit,
        timezone: str,
    ) -> dict[str, Number]:
        """Aggregate grouped by time bucket key, ascending."""

    @abstractmethod
    async def aggregate_by_column(
        self,
        function: AggregateFunction,
        column: str | None,
        group_by: str,
        window: DateWindow | None,
    ) -> dict[Any, Number]:
        """Aggregate grouped by the distinct values of ``group_by``."""

    @abstractmethod
    async def fetch_records(
        self,
        window: DateWindow | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Raw records as dictionaries."""

    @property
    @abstractmethod
    def date_column(self) -> str:
        """Name of the field windows and buckets are applied to."""

    async def count(self, window: DateWindow | None = None, column: str | None = None) -> Number:
        return await self.aggregate(AggregateFunction.COUNT, column, window) or 0

    async def sum(self, column: str, window: DateWindow | None = None) -> Number:
        return await self.aggregate(AggregateFunction.SUM, column, window) or 0

    async def avg(self, column: str, window: DateWindow | None = None) -> Number | None:
        return await self.aggregate(AggregateFunction.AVG, column, window)

    async def max(self, column: str, window: DateWindow | None = None) -> Number | None:
        return await self.aggregate(AggregateFunction.MAX, column, window)

    async def min(self, column: str, window: DateWindow | None = None) -> Number | None:
        return await self.aggregate(AggregateFunction.MIN, column, window)
