"""
Categorical partition aggregation.

Groupings:
----------
- ColumnGrouping: distinct values of a column (grouped in the source)
- ClassifierGrouping: caller function ``record -> category``
- DateRangeGrouping: named date ranges over a timestamp field
- NumericRangeGrouping: named ``[min, max)`` ranges over a numeric field

Range groupings take the first matching range, start every declared range
at zero so empty categories still show, and collect unmatched records in
an "Unknown" category that only appears when it is non-zero.

Results are sorted by value descending; ties keep discovery order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from dashmetrics.aggregations.base import AggregationStrategy, parse_function
from dashmetrics.models.request import MetricRequest
from dashmetrics.results.partition import PartitionResult
from dashmetrics.sources.base import AggregateFunction, QuerySource, reduce_values
from dashmetrics.timeframes import DateWindow, RangeResolver

UNKNOWN_CATEGORY = "Unknown"

_ADDITIVE = (AggregateFunction.COUNT, AggregateFunction.SUM)

Classifier = Callable[[Mapping[str, Any]], Any]


def _category(key: Any) -> str:
    return UNKNOWN_CATEGORY if key is None or key == "" else str(key)


def _instant(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class Grouping(ABC):
    """How records are assigned to partition categories."""

    @abstractmethod
    async def partition(
        self,
        source: QuerySource,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
    ) -> dict[str, Any]:
        """Category -> aggregate, in discovery order."""


def _group_values(function: AggregateFunction, groups: Mapping[str, list[Any]]) -> dict[str, Any]:
    result = {}
    for key, values in groups.items():
        value = reduce_values(function, values)
        result[key] = 0 if value is None else value
    return result


def _extract(record: Mapping[str, Any], column: str | None) -> Any:
    return 1 if column is None else record.get(column)


@dataclass(frozen=True)
class ColumnGrouping(Grouping):
    """
    Group by the distinct values of a column.

    Distinct source keys can land in one category (``None`` and ``""`` are
    both Unknown, ``1`` and ``"1"`` are both "1"). Counts and sums of such
    groups are added; other aggregates are recomputed from the records.
    """

    column: str

    async def partition(self, source, function, column, window):
        grouped = await source.aggregate_by_column(function, column, self.column, window)
        categories = [_category(key) for key in grouped]

        if len(set(categories)) < len(categories) and function not in _ADDITIVE:
            groups: dict[str, list[Any]] = {}
            for record in await source.fetch_records(window):
                groups.setdefault(_category(record.get(self.column)), []).append(_extract(record, column))
            return _group_values(function, groups)

        result: dict[str, Any] = {}
        for category, value in zip(categories, grouped.values()):
            result[category] = result.get(category, 0) + value
        return result


@dataclass(frozen=True)
class ClassifierGrouping(Grouping):
    """Group by a caller-supplied ``record -> category`` function."""

    classifier: Classifier

    async def partition(self, source, function, column, window):
        groups: dict[str, list[Any]] = {}
        for record in await source.fetch_records(window):
            groups.setdefault(_category(self.classifier(record)), []).append(_extract(record, column))
        return _group_values(function, groups)


class _RangeGrouping(Grouping):
    ranges: Mapping[str, tuple[Any, Any]]

    @abstractmethod
    def _matches(self, value: Any, bounds: tuple[Any, Any]) -> bool:
        ...

    @abstractmethod
    def _field(self, source: QuerySource) -> str:
        ...

    def _value_of(self, record: Mapping[str, Any], source: QuerySource) -> Any:
        return record.get(self._field(source))

    def classify(self, value: Any) -> str:
        if value is not None:
            for label, bounds in self.ranges.items():
                if self._matches(value, bounds):
                    return label
        return UNKNOWN_CATEGORY

    async def partition(self, source, function, column, window):
        groups: dict[str, list[Any]] = {label: [] for label in self.ranges}
        unknown: list[Any] = []
        for record in await source.fetch_records(window):
            label = self.classify(self._value_of(record, source))
            target = unknown if label == UNKNOWN_CATEGORY and label not in groups else groups[label]
            target.append(_extract(record, column))

        result = _group_values(function, groups)
        unknown_value = reduce_values(function, unknown)
        if unknown_value:
            result[UNKNOWN_CATEGORY] = unknown_value
        return result


@dataclass(frozen=True)
class DateRangeGrouping(_RangeGrouping):
    """
    Named closed date ranges, e.g. ``{"Q1": (datetime(2024, 1, 1), datetime(2024, 3, 31, 23, 59))}``.

    ``None`` as a bound means unbounded on that side; naive bounds are UTC.
    ``date_field`` defaults to the source's date column.
    """

    ranges: Mapping[str, tuple[Any, Any]]
    date_field: str | None = None

    def _field(self, source):
        return self.date_field or source.date_column

    def _matches(self, value, bounds):
        instant = _instant(value)
        start, end = (_instant(bound) for bound in bounds)
        return (start is None or instant >= start) and (end is None or instant <= end)


@dataclass(frozen=True)
class NumericRangeGrouping(_RangeGrouping):
    """Named half-open numeric ranges ``[min, max)``; ``None`` means unbounded."""

    column: str
    ranges: Mapping[str, tuple[Any, Any]]

    def _field(self, source):
        return self.column

    def _matches(self, value, bounds):
        low, high = bounds
        return (low is None or value >= low) and (high is None or value < high)


class PartitionAggregation(AggregationStrategy):
    """
    Aggregate per category.

    Accepts the ALL range, in which case no window is applied.

    Example:
        ```python
        PartitionAggregation(source, ColumnGrouping("status"))
        PartitionAggregation(source, ClassifierGrouping(lambda r: r["email"].split("@")[1]))
        PartitionAggregation(
            source,
            NumericRangeGrouping("total", {"small": (0, 100), "large": (100, None)}),
            function="sum",
            column="total",
        )
        ```
    """

    kind = "partition"

    def __init__(
        self,
        source: QuerySource,
        grouping: Grouping | str,
        function: AggregateFunction | str = AggregateFunction.COUNT,
        column: str | None = None,
    ):
        super().__init__(source)
        self.grouping = ColumnGrouping(grouping) if isinstance(grouping, str) else grouping
        self.function = parse_function(function)
        self.column = column

    async def compute(self, request: MetricRequest, resolver: RangeResolver) -> PartitionResult:
        partitions = await self.grouping.partition(
            self.source,
            self.function,
            self.column,
            self.window_for(request, resolver),
        )
        ordered = sorted(partitions.items(), key=lambda item: item[1], reverse=True)
        return PartitionResult(dict(ordered))

    def empty_result(self) -> PartitionResult:
        return PartitionResult({})
