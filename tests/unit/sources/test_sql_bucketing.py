"""Unit tests for dialect bucket expressions (compiled, not executed)."""

from datetime import UTC, datetime

import pytest
from sqlalchemy import Column, DateTime, MetaData, Table
from sqlalchemy.dialects import mssql, mysql, postgresql, sqlite

from dashmetrics.sources.sql_bucketing import (
    MySqlBucketer,
    PostgresBucketer,
    SqliteBucketer,
    SqlServerBucketer,
    get_bucketer,
    utc_offset_minutes,
)

metadata = MetaData()
events = Table(
    "events",
    metadata,
    Column("created_at", DateTime()),
    Column("created_at_tz", DateTime(timezone=True)),
)


def compiled(expression, dialect) -> str:
    return str(expression.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


class TestUtcOffset:
    """Tests for utc_offset_minutes."""

    @pytest.mark.parametrize(
        "timezone, reference, expected",
        [
            ("UTC", datetime(2024, 1, 15, tzinfo=UTC), 0),
            ("America/New_York", datetime(2024, 1, 15, tzinfo=UTC), -300),
            ("America/New_York", datetime(2024, 7, 15, tzinfo=UTC), -240),
            ("Asia/Kolkata", datetime(2024, 7, 15, tzinfo=UTC), 330),
        ],
    )
    def test_offsets(self, timezone, reference, expected):
        assert utc_offset_minutes(timezone, reference) == expected

    def test_naive_reference_is_utc(self):
        assert utc_offset_minutes("Europe/Paris", datetime(2024, 1, 15)) == 60


class TestGetBucketer:
    """Tests for dialect lookup."""

    @pytest.mark.parametrize(
        "dialect, expected",
        [
            ("postgresql", PostgresBucketer),
            ("mysql", MySqlBucketer),
            ("mariadb", MySqlBucketer),
            ("sqlite", SqliteBucketer),
            ("mssql", SqlServerBucketer),
        ],
    )
    def test_known_dialects(self, dialect, expected):
        assert isinstance(get_bucketer(dialect), expected)

    def test_unknown_dialect_falls_back_to_sqlite(self):
        assert isinstance(get_bucketer("duckdb"), SqliteBucketer)


class TestCompiledExpressions:
    """Tests that each dialect renders its native date functions."""

    def test_postgres_converts_naive_columns_from_utc(self):
        sql = compiled(PostgresBucketer().expression(events.c.created_at, "day", "Europe/Paris"), postgresql.dialect())

        assert "to_char" in sql
        assert "timezone('UTC'" in sql
        assert "YYYY-MM-DD" in sql

    def test_postgres_aware_column_is_converted_once(self):
        sql = compiled(PostgresBucketer().expression(events.c.created_at_tz, "week", "UTC"), postgresql.dialect())

        assert sql.count("timezone(") == 1
        assert 'IYYY-"W"IW' in sql

    def test_mysql(self):
        sql = compiled(MySqlBucketer().expression(events.c.created_at, "week", "Europe/Paris"), mysql.dialect())

        assert "convert_tz" in sql
        assert "%%x-W%%v" in sql or "%x-W%v" in sql

    def test_sqlite_shifts_by_offset(self):
        reference = datetime(2024, 1, 15, tzinfo=UTC)
        sql = compiled(
            SqliteBucketer().expression(events.c.created_at, "hour", "America/New_York", reference),
            sqlite.dialect(),
        )

        assert "strftime" in sql
        assert "-300 minutes" in sql

    def test_sqlite_week_uses_thursday(self):
        sql = compiled(SqliteBucketer().expression(events.c.created_at, "week", "UTC"), sqlite.dialect())

        assert "weekday 4" in sql
        assert "printf" in sql
        assert "AS INTEGER) - 1) / 7 + 1" in sql

    def test_sql_server(self):
        sql = compiled(SqlServerBucketer().expression(events.c.created_at, "month", "UTC"), mssql.dialect())

        assert "format(" in sql.lower()
        assert "yyyy-MM" in sql
