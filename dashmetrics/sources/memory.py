"""
In-memory query source.

Aggregates over a list of mappings (or plain objects) in process. It is the
reference implementation of the QuerySource contract: time buckets come
straight from ``bucket_key``, so relational backends are tested against it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

import structlog

from dashmetrics.exceptions import QuerySourceUnavailableError
from dashmetrics.sources.base import AggregateFunction, Number, QuerySource, reduce_values
from dashmetrics.timeframes import BucketUnit, DateWindow, bucket_key

logger = structlog.get_logger(__name__)


def _as_mapping(record: Any) -> dict[str, Any]:
    if isinstance(record, Mapping):
        return dict(record)
    return {key: value for key, value in vars(record).items() if not key.startswith("_")}


def _as_instant(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


class InMemoryQuerySource(QuerySource):
    """
    Query source over records held in memory.

    Args:
        records: Mappings or objects with attributes
        date_field: Field holding the record timestamp (naive values are UTC)

    Example:
        ```python
        source = InMemoryQuerySource(
            [{"created_at": datetime(2024, 1, 1, tzinfo=UTC), "total": 10}],
            date_field="created_at",
        )
        await source.sum("total")  # 10
        ```
    """

    def __init__(self, records: Iterable[Any] = (), date_field: str = "created_at"):
        self._records = [_as_mapping(record) for record in records]
        self._date_field = date_field

    @property
    def date_column(self) -> str:
        return self._date_field

    def add(self, record: Any) -> None:
        self._records.append(_as_mapping(record))

    def _check_column(self, column: str | None) -> None:
        if column is None or not self._records:
            return
        if not any(column in record for record in self._records):
            raise QuerySourceUnavailableError(
                f"Column {column!r} not present in any record",
                details={"column": column},
            )

    def _windowed(self, window: DateWindow | None) -> list[dict[str, Any]]:
        if window is None:
            return list(self._records)
        selected = []
        for record in self._records:
            instant = _as_instant(record.get(self._date_field))
            if instant is not None and window.contains(instant):
                selected.append(record)
        return selected

    @staticmethod
    def _values(records: list[dict[str, Any]], column: str | None) -> list[Any]:
        if column is None:
            return [1] * len(records)
        return [record.get(column) for record in records]

    async def aggregate(
        self,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
    ) -> Number | None:
        function = AggregateFunction(function)
        self._check_column(column)
        return reduce_values(function, self._values(self._windowed(window), column))

    async def aggregate_by_bucket(
        self,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
        unit: BucketUnit,
        timezone: str,
    ) -> dict[str, Number]:
        function = AggregateFunction(function)
        self._check_column(column)

        groups: dict[str, list[dict[str, Any]]] = {}
        for record in self._windowed(window):
            instant = _as_instant(record.get(self._date_field))
            if instant is None:
                continue
            groups.setdefault(bucket_key(instant, unit, timezone), []).append(record)

        buckets = {}
        for key in sorted(groups):
            value = reduce_values(function, self._values(groups[key], column))
            buckets[key] = 0 if value is None else value
        return buckets

    async def aggregate_by_column(
        self,
        function: AggregateFunction,
        column: str | None,
        group_by: str,
        window: DateWindow | None,
    ) -> dict[Any, Number]:
        function = AggregateFunction(function)
        self._check_column(column)
        self._check_column(group_by)

        groups: dict[Any, list[dict[str, Any]]] = {}
        for record in self._windowed(window):
            groups.setdefault(record.get(group_by), []).append(record)

        result = {}
        for key, records in groups.items():
            value = reduce_values(function, self._values(records, column))
            result[key] = 0 if value is None else value
        return result

    async def fetch_records(
        self,
        window: DateWindow | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        records = self._windowed(window)

        if order_by is not None:
            self._check_column(order_by)
            present = [record for record in records if record.get(order_by) is not None]
            missing = [record for record in records if record.get(order_by) is None]
            present.sort(key=lambda record: record[order_by], reverse=descending)
            records = present + missing

        if limit is not None:
            records = records[:limit]

        logger.debug("records_fetched", count=len(records), order_by=order_by, limit=limit)
        return [dict(record) for record in records]
