"""
Relational query source backed by SQLAlchemy (async).

Builds ``select(func.count()...)`` style aggregate statements over one table
and runs them on a fresh AsyncSession per call. Time buckets are rendered in
SQL by the dialect's bucketer so grouping happens in the database.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import Table, and_, func, select
from sqlalchemy.exc import NoSuchColumnError, NoSuchTableError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from dashmetrics.exceptions import QuerySourceError, QuerySourceUnavailableError
from dashmetrics.sources.base import AggregateFunction, Number, QuerySource
from dashmetrics.sources.sql_bucketing import get_bucketer
from dashmetrics.timeframes import BucketUnit, DateWindow

logger = structlog.get_logger(__name__)

_FUNCTIONS = {
    AggregateFunction.SUM: func.sum,
    AggregateFunction.AVG: func.avg,
    AggregateFunction.MAX: func.max,
    AggregateFunction.MIN: func.min,
}


def _number(value: Any) -> Number | None:
    # Numeric/Decimal columns come back as Decimal
    if value is None or isinstance(value, (int, float)):
        return value
    number = float(value)
    return int(number) if number.is_integer() else number


class SqlAlchemyQuerySource(QuerySource):
    """
    Query source over a single table.

    Args:
        session_factory: async_sessionmaker producing AsyncSession objects
        model: Declarative model class or Core Table
        date_column: Timestamp column windows and buckets apply to
        dialect: Dialect name for bucketing (defaults to the session bind's)

    Example:
        ```python
        source = SqlAlchemyQuerySource(async_session_maker, Order, date_column="created_at")
        total = await source.sum("total", window)
        ```
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: Any,
        date_column: str = "created_at",
        dialect: str | None = None,
    ):
        self._session_factory = session_factory
        self._table: Table = getattr(model, "__table__", model)
        self._date_column = date_column
        self._dialect = dialect

    @property
    def date_column(self) -> str:
        return self._date_column

    @property
    def table_name(self) -> str:
        return self._table.name

    def _column(self, name: str) -> ColumnElement[Any]:
        try:
            return self._table.c[name]
        except KeyError:
            raise QuerySourceUnavailableError(
                f"Column {name!r} not found on table {self._table.name!r}",
                details={"table": self._table.name, "column": name},
            ) from None

    def _aggregate_expression(self, function: AggregateFunction, column: str | None) -> ColumnElement[Any]:
        return self._aggregate_of(function, self._column(column) if column else None)

    @staticmethod
    def _aggregate_of(function: AggregateFunction, target: ColumnElement[Any] | None) -> ColumnElement[Any]:
        function = AggregateFunction(function)
        if function is AggregateFunction.COUNT:
            return func.count(target) if target is not None else func.count()
        if target is None:
            raise QuerySourceError(f"Aggregate {function.value} requires a column", details={"function": function.value})
        return _FUNCTIONS[function](target)

    def _bounds(self, window: DateWindow) -> tuple[Any, Any]:
        utc = window.to_utc()
        # Naive DateTime columns store UTC wall time
        if not getattr(self._column(self._date_column).type, "timezone", False):
            return utc.start.replace(tzinfo=None), utc.end.replace(tzinfo=None)
        return utc.start, utc.end

    def _apply_window(self, stmt: Select, window: DateWindow | None) -> Select:
        if window is None:
            return stmt
        start, end = self._bounds(window)
        date_column = self._column(self._date_column)
        return stmt.where(and_(date_column >= start, date_column <= end))

    async def _run(self, stmt: Select) -> list[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.all())
        except (NoSuchTableError, NoSuchColumnError, OperationalError, ProgrammingError) as e:
            raise QuerySourceUnavailableError(
                f"Table {self._table.name!r} is not queryable: {e}",
                details={"table": self._table.name},
            ) from e
        except SQLAlchemyError as e:
            raise QuerySourceError(
                f"Query on {self._table.name!r} failed: {e}",
                details={"table": self._table.name},
            ) from e

    async def _dialect_name(self) -> str:
        if self._dialect is None:
            async with self._session_factory() as session:
                self._dialect = session.bind.dialect.name
        return self._dialect

    async def aggregate(
        self,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
    ) -> Number | None:
        stmt = select(self._aggregate_expression(function, column)).select_from(self._table)
        rows = await self._run(self._apply_window(stmt, window))
        value = _number(rows[0][0]) if rows else None
        if AggregateFunction(function) in (AggregateFunction.COUNT, AggregateFunction.SUM):
            return value or 0
        return value

    async def aggregate_by_bucket(
        self,
        function: AggregateFunction,
        column: str | None,
        window: DateWindow | None,
        unit: BucketUnit,
        timezone: str,
    ) -> dict[str, Number]:
        bucketer = get_bucketer(await self._dialect_name())
        reference = window.start if window is not None else None
        date_column = self._column(self._date_column)
        projected = [bucketer.expression(date_column, unit, timezone, reference).label("bucket")]
        if column is not None:
            projected.append(self._column(column).label("target"))

        # Group over a subquery so the bucket expression is rendered once
        inner = self._apply_window(
            select(*projected).select_from(self._table).where(date_column.is_not(None)),
            window,
        ).subquery("bucketed")
        target = inner.c.target if column is not None else None
        stmt = (
            select(inner.c.bucket, self._aggregate_of(function, target).label("aggregate"))
            .group_by(inner.c.bucket)
            .order_by(inner.c.bucket)
        )

        rows = await self._run(stmt)
        logger.debug("bucket_query_completed", table=self._table.name, unit=BucketUnit(unit).value, buckets=len(rows))
        return {str(row.bucket): _number(row.aggregate) or 0 for row in rows}

    async def aggregate_by_column(
        self,
        function: AggregateFunction,
        column: str | None,
        group_by: str,
        window: DateWindow | None,
    ) -> dict[Any, Number]:
        group = self._column(group_by).label("group_key")
        stmt = select(group, self._aggregate_expression(function, column).label("aggregate")).select_from(
            self._table
        )
        stmt = self._apply_window(stmt, window).group_by(self._column(group_by))

        rows = await self._run(stmt)
        return {row.group_key: _number(row.aggregate) or 0 for row in rows}

    async def fetch_records(
        self,
        window: DateWindow | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        stmt = self._apply_window(select(self._table), window)
        if order_by is not None:
            order_column = self._column(order_by)
            stmt = stmt.order_by(order_column.desc() if descending else order_column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        rows = await self._run(stmt)
        return [dict(row._mapping) for row in rows]
