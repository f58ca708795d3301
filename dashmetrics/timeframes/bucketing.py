"""
Time bucketing for trend aggregation.

Defines the canonical bucket key for an instant. Every storage backend
(see ``dashmetrics.sources.sql_bucketing``) must produce exactly these keys,
so a trend computed over SQLite, PostgreSQL or an in-memory list groups
records into identical buckets.

Canonical key formats:
----------------------
- minute: ``YYYY-MM-DD HH:MM``
- hour:   ``YYYY-MM-DD HH:00``
- day:    ``YYYY-MM-DD``
- week:   ``GGGG-Www`` (ISO 8601 week-numbering year and week, Monday start)
- month:  ``YYYY-MM``
- year:   ``YYYY``

All formats are zero padded, so lexical order equals chronological order.

When a DST fall-back repeats a local hour, minute and hour keys for the
second pass mark the hour with "b" (``2024-11-03 01b:30``). Since "b" sorts
after ":", the repeated hour keys fall between the first pass and the next
hour and never collide with it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from dashmetrics.timeframes.range_resolver import RangeToken, SymbolicRange, resolve_timezone


class BucketUnit(str, Enum):
    """Fixed-width time slice used to group time-series data."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


_KEY_FORMATS: dict[BucketUnit, str] = {
    BucketUnit.MINUTE: "%Y-%m-%d %H:%M",
    BucketUnit.HOUR: "%Y-%m-%d %H:00",
    BucketUnit.DAY: "%Y-%m-%d",
    BucketUnit.MONTH: "%Y-%m",
    BucketUnit.YEAR: "%Y",
}


def _localize(instant: datetime, timezone: str) -> datetime:
    # Naive instants are stored UTC by convention
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=resolve_timezone("UTC"))
    return instant.astimezone(resolve_timezone(timezone))


def bucket_key(instant: datetime, unit: BucketUnit | str, timezone: str = "UTC") -> str:
    """
    Canonical bucket key for an instant.

    Args:
        instant: Moment to bucket (naive values are treated as UTC)
        unit: Bucket width
        timezone: IANA timezone whose calendar defines bucket boundaries

    Returns:
        Zero-padded key string, e.g. ``"2024-01-15"`` or ``"2024-W03"``
    """
    unit = BucketUnit(unit)
    local = _localize(instant, timezone)

    if unit is BucketUnit.WEEK:
        iso_year, iso_week, _ = local.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"

    key_format = _KEY_FORMATS[unit]
    if local.fold and unit in (BucketUnit.MINUTE, BucketUnit.HOUR):
        key_format = key_format.replace("%H", "%Hb")
    return local.strftime(key_format)


def bucket_start(instant: datetime, unit: BucketUnit | str, timezone: str = "UTC") -> datetime:
    """First instant of the bucket containing ``instant``, in ``timezone``."""
    unit = BucketUnit(unit)
    local = _localize(instant, timezone)

    if unit is BucketUnit.MINUTE:
        return local.replace(second=0, microsecond=0)
    if unit is BucketUnit.HOUR:
        return local.replace(minute=0, second=0, microsecond=0)

    day = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit is BucketUnit.DAY:
        return day
    if unit is BucketUnit.WEEK:
        return day - timedelta(days=day.weekday())
    if unit is BucketUnit.MONTH:
        return day.replace(day=1)
    return day.replace(month=1, day=1)


def auto_unit(token: RangeToken | int | str) -> BucketUnit:
    """
    Pick a trend bucket width from the range token alone.

    Depends only on the token (never on "now"), so a given range always
    yields the same unit: TODAY or <=1 day -> hour, <=90 days/MTD/QTD -> day,
    <=366 days/YTD -> week, longer and ALL -> month.
    """
    token = RangeToken.parse(token)

    if token.days is not None:
        if token.days <= 1:
            return BucketUnit.HOUR
        if token.days <= 90:
            return BucketUnit.DAY
        if token.days <= 366:
            return BucketUnit.WEEK
        return BucketUnit.MONTH

    return {
        SymbolicRange.TODAY: BucketUnit.HOUR,
        SymbolicRange.MTD: BucketUnit.DAY,
        SymbolicRange.QTD: BucketUnit.DAY,
        SymbolicRange.YTD: BucketUnit.WEEK,
        SymbolicRange.ALL: BucketUnit.MONTH,
    }[token.symbol]
