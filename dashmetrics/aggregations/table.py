"""
Table aggregation.

Shapes:
-------
- records: raw records, optionally ordered and limited
- top: top-N records by a column (descending)
- recent: the N most recent records by the source's date column
- aggregated: one ``{group, value}`` row per group, value descending
- custom: rows returned by a caller query ``(request, window) -> records``

The request's ``sort_by``, ``sort_direction`` and ``limit`` override the
shape's ordering and limit.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from dashmetrics.aggregations.base import AggregationStrategy, parse_function
from dashmetrics.aggregations.partition import UNKNOWN_CATEGORY
from dashmetrics.exceptions import ConfigurationError
from dashmetrics.models.request import MetricRequest
from dashmetrics.results.table import Column, TableResult
from dashmetrics.sources.base import AggregateFunction, QuerySource
from dashmetrics.timeframes import DateWindow, RangeResolver

ColumnSpec = Mapping[str, str | Mapping[str, Any] | Column]
CustomQuery = Callable[[MetricRequest, DateWindow | None], Iterable[Any] | Awaitable[Iterable[Any]] | None]


def _as_row(record: Any) -> dict[str, Any]:
    if isinstance(record, Mapping):
        return dict(record)
    return {key: value for key, value in vars(record).items() if not key.startswith("_")}


class TableShape(str, Enum):
    RECORDS = "records"
    TOP = "top"
    RECENT = "recent"
    AGGREGATED = "aggregated"
    CUSTOM = "custom"


class TableAggregation(AggregationStrategy):
    """
    Rows for a table card.

    Prefer the named constructors:

        TableAggregation.top(source, "total", 10, columns={"name": "Customer", "total": "Total"})
        TableAggregation.recent(source, 5)
        TableAggregation.aggregated(source, "status", function="sum", column="total")
        TableAggregation.custom(source, lambda request, window: fetch_invoices(request.user_id, window))
    """

    kind = "table"

    def __init__(
        self,
        source: QuerySource,
        shape: TableShape | str = TableShape.RECORDS,
        columns: ColumnSpec | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
        group_by: str | None = None,
        function: AggregateFunction | str = AggregateFunction.COUNT,
        column: str | None = None,
        windowed: bool = True,
        query: CustomQuery | None = None,
    ):
        super().__init__(source)
        self.shape = TableShape(shape)
        self.columns = dict(columns or {})
        self.order_by = order_by
        self.descending = descending
        self.limit = limit
        self.group_by = group_by
        self.function = parse_function(function)
        self.column = column
        self.windowed = windowed
        self.query = query
        if self.shape is TableShape.CUSTOM and query is None:
            raise ConfigurationError(
                "Custom table shape requires a query callable",
                details={"shape": self.shape.value},
            )

    @classmethod
    def records(cls, source: QuerySource, columns: ColumnSpec | None = None, **options: Any) -> TableAggregation:
        return cls(source, TableShape.RECORDS, columns=columns, **options)

    @classmethod
    def top(
        cls,
        source: QuerySource,
        by: str,
        n: int = 10,
        columns: ColumnSpec | None = None,
        **options: Any,
    ) -> TableAggregation:
        return cls(source, TableShape.TOP, columns=columns, order_by=by, descending=True, limit=n, **options)

    @classmethod
    def recent(
        cls,
        source: QuerySource,
        n: int = 10,
        columns: ColumnSpec | None = None,
        **options: Any,
    ) -> TableAggregation:
        return cls(
            source,
            TableShape.RECENT,
            columns=columns,
            order_by=source.date_column,
            descending=True,
            limit=n,
            **options,
        )

    @classmethod
    def aggregated(
        cls,
        source: QuerySource,
        group_by: str,
        function: AggregateFunction | str = AggregateFunction.COUNT,
        column: str | None = None,
        columns: ColumnSpec | None = None,
        **options: Any,
    ) -> TableAggregation:
        columns = columns or {"group": group_by.replace("_", " ").title(), "value": "Value"}
        return cls(
            source,
            TableShape.AGGREGATED,
            columns=columns,
            group_by=group_by,
            function=function,
            column=column,
            **options,
        )

    @classmethod
    def custom(
        cls,
        source: QuerySource,
        query: CustomQuery,
        columns: ColumnSpec | None = None,
        **options: Any,
    ) -> TableAggregation:
        """
        Rows from a caller query.

        ``query(request, window)`` may be sync or async and returns mappings
        or plain objects; ``None`` renders an empty table. ``window`` is None
        for ALL or when ``windowed=False``.
        """
        return cls(source, TableShape.CUSTOM, columns=columns, query=query, **options)

    async def compute(self, request: MetricRequest, resolver: RangeResolver) -> TableResult:
        window = self.window_for(request, resolver) if self.windowed else None
        limit = request.limit if request.limit is not None else self.limit

        if self.shape is TableShape.AGGREGATED:
            rows = await self._aggregated_rows(request, window, limit)
        elif self.shape is TableShape.CUSTOM:
            rows = await self._custom_rows(request, window, limit)
        else:
            order_by = request.sort_by or self.order_by
            descending = request.sort_direction == "desc" if request.sort_by else self.descending
            rows = await self.source.fetch_records(window, order_by=order_by, descending=descending, limit=limit)

        result = TableResult(rows).columns(self.columns)
        if request.sort_by:
            result.sort_by(request.sort_by, request.sort_direction)
        elif self.shape is TableShape.AGGREGATED:
            result.sort_by("value", "desc")
        elif self.order_by:
            result.sort_by(self.order_by, "desc" if self.descending else "asc")
        return result

    async def _aggregated_rows(
        self, request: MetricRequest, window: DateWindow | None, limit: int | None
    ) -> list[dict[str, Any]]:
        grouped = await self.source.aggregate_by_column(self.function, self.column, self.group_by, window)
        rows = [
            {"group": UNKNOWN_CATEGORY if key is None else key, "value": value}
            for key, value in grouped.items()
        ]
        sort_key = request.sort_by if request.sort_by in ("group", "value") else "value"
        reverse = request.sort_direction == "desc" if request.sort_by else True
        if sort_key == "group":
            rows.sort(key=lambda row: str(row["group"]), reverse=reverse)
        else:
            rows.sort(key=lambda row: row["value"], reverse=reverse)
        return rows[:limit] if limit is not None else rows

    async def _custom_rows(
        self, request: MetricRequest, window: DateWindow | None, limit: int | None
    ) -> list[dict[str, Any]]:
        records = self.query(request, window)
        if inspect.isawaitable(records):
            records = await records
        rows = [_as_row(record) for record in records or ()]

        if request.sort_by:
            present = [row for row in rows if row.get(request.sort_by) is not None]
            missing = [row for row in rows if row.get(request.sort_by) is None]
            present.sort(key=lambda row: row[request.sort_by], reverse=request.sort_direction == "desc")
            rows = present + missing
        return rows[:limit] if limit is not None else rows

    def empty_result(self) -> TableResult:
        return TableResult([]).columns(self.columns)
