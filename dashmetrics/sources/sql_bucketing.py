"""
Dialect-specific SQL expressions for time bucket keys.

Each bucketer builds a SQLAlchemy expression that renders a timestamp
column as the canonical bucket key defined in
``dashmetrics.timeframes.bucketing``. The key text is the contract: a
bucketer is correct when it returns exactly what ``bucket_key`` returns for
the same instant, unit and timezone.

Timestamps are assumed to be stored in UTC. PostgreSQL and MySQL convert
to the target timezone natively. SQLite and SQL Server have no timezone
database, so they shift by the timezone's UTC offset at a reference instant
(the start of the queried window); buckets that straddle a DST transition
inside the window may be off by the DST delta on those backends.

SQL keys are plain wall-clock text, so the hour repeated by a DST fall-back
is one bucket in SQL where ``bucket_key`` marks the second pass
(``01b:30``). Only minute and hour trends that cross that hour differ.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, ClassVar

import structlog
from sqlalchemy import Integer, String, cast, func, literal, literal_column
from sqlalchemy.sql.elements import ColumnElement

from dashmetrics.timeframes import BucketUnit, resolve_timezone

logger = structlog.get_logger(__name__)


def utc_offset_minutes(timezone: str, reference: datetime | None = None) -> int:
    """UTC offset of ``timezone`` at ``reference`` (default: now), in minutes."""
    reference = reference or datetime.now(UTC)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=UTC)
    offset = reference.astimezone(resolve_timezone(timezone)).utcoffset()
    return int(offset.total_seconds() // 60) if offset else 0


class SqlBucketer(ABC):
    """Builds a bucket key expression for one SQL dialect."""

    dialect: ClassVar[str]

    @abstractmethod
    def expression(
        self,
        column: ColumnElement[Any],
        unit: BucketUnit,
        timezone: str,
        reference: datetime | None = None,
    ) -> ColumnElement[str]:
        """Expression rendering ``column`` as the canonical key for ``unit``."""


class PostgresBucketer(SqlBucketer):
    dialect = "postgresql"

    FORMATS: ClassVar[dict[BucketUnit, str]] = {
        BucketUnit.MINUTE: "YYYY-MM-DD HH24:MI",
        BucketUnit.HOUR: "YYYY-MM-DD HH24:00",
        BucketUnit.DAY: "YYYY-MM-DD",
        BucketUnit.WEEK: 'IYYY-"W"IW',
        BucketUnit.MONTH: "YYYY-MM",
        BucketUnit.YEAR: "YYYY",
    }

    def expression(self, column, unit, timezone, reference=None):
        # timestamp without time zone holds UTC wall time
        if not getattr(column.type, "timezone", False):
            column = func.timezone("UTC", column)
        local = func.timezone(timezone, column)
        return func.to_char(local, self.FORMATS[BucketUnit(unit)])


class MySqlBucketer(SqlBucketer):
    dialect = "mysql"

    FORMATS: ClassVar[dict[BucketUnit, str]] = {
        BucketUnit.MINUTE: "%Y-%m-%d %H:%i",
        BucketUnit.HOUR: "%Y-%m-%d %H:00",
        BucketUnit.DAY: "%Y-%m-%d",
        BucketUnit.WEEK: "%x-W%v",
        BucketUnit.MONTH: "%Y-%m",
        BucketUnit.YEAR: "%Y",
    }

    def expression(self, column, unit, timezone, reference=None):
        local = func.convert_tz(column, "+00:00", timezone)
        return func.date_format(local, self.FORMATS[BucketUnit(unit)])


class SqliteBucketer(SqlBucketer):
    dialect = "sqlite"

    FORMATS: ClassVar[dict[BucketUnit, str]] = {
        BucketUnit.MINUTE: "%Y-%m-%d %H:%M",
        BucketUnit.HOUR: "%Y-%m-%d %H:00",
        BucketUnit.DAY: "%Y-%m-%d",
        BucketUnit.MONTH: "%Y-%m",
        BucketUnit.YEAR: "%Y",
    }

    def expression(self, column, unit, timezone, reference=None):
        unit = BucketUnit(unit)
        shift = f"{utc_offset_minutes(timezone, reference):+d} minutes"

        if unit is BucketUnit.WEEK:
            # Thursday of the ISO week decides its year; week = day-of-year of that Thursday / 7
            thursday = func.date(column, shift, "-3 days", "weekday 4")
            day_of_year = cast(func.strftime("%j", thursday), Integer)
            week = (day_of_year - 1).self_group().op("/")(7) + 1
            return func.printf("%s-W%02d", func.strftime("%Y", thursday), week)

        return func.strftime(self.FORMATS[unit], column, shift)


class SqlServerBucketer(SqlBucketer):
    dialect = "mssql"

    FORMATS: ClassVar[dict[BucketUnit, str]] = {
        BucketUnit.MINUTE: "yyyy-MM-dd HH:mm",
        BucketUnit.HOUR: "yyyy-MM-dd HH:00",
        BucketUnit.DAY: "yyyy-MM-dd",
        BucketUnit.MONTH: "yyyy-MM",
        BucketUnit.YEAR: "yyyy",
    }

    def expression(self, column, unit, timezone, reference=None):
        unit = BucketUnit(unit)
        minute, day = literal_column("minute"), literal_column("day")
        local = func.dateadd(minute, utc_offset_minutes(timezone, reference), column)

        if unit is BucketUnit.WEEK:
            # 1900-01-01 (day 0) is a Monday
            weekday = func.datediff(day, 0, local) % 7
            thursday = func.dateadd(day, literal(3) - weekday, local)
            iso_week = cast(func.datepart(literal_column("iso_week"), local), String)
            return func.concat(
                cast(func.year(thursday), String),
                "-W",
                func.right(func.concat("0", iso_week), 2),
            )

        return func.format(local, self.FORMATS[unit])


BUCKETERS: dict[str, SqlBucketer] = {
    bucketer.dialect: bucketer
    for bucketer in (PostgresBucketer(), MySqlBucketer(), SqliteBucketer(), SqlServerBucketer())
}
BUCKETERS["mariadb"] = BUCKETERS["mysql"]


def get_bucketer(dialect: str) -> SqlBucketer:
    """Bucketer for a SQLAlchemy dialect name; unknown dialects use the SQLite strategy."""
    bucketer = BUCKETERS.get(dialect)
    if bucketer is None:
        logger.warning("sql_bucketer_fallback", dialect=dialect, fallback="sqlite")
        return BUCKETERS["sqlite"]
    return bucketer
