"""
Range resolution for metric requests.

Turns a range token (a positive day count or one of TODAY/MTD/QTD/YTD/ALL)
plus a timezone into a concrete reporting window, and derives the
comparable previous window used for period-over-period comparison.

Window convention:
------------------
Windows are closed-inclusive with microsecond resolution. The end of a day
is 23:59:59.999999, and every previous window ends exactly one microsecond
before its current window starts, so the two are contiguous and never
overlap.

ALL has no window. Callers that accept it (partition metrics) must check
``RangeToken.is_unbounded`` and skip windowing instead of resolving it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dashmetrics.exceptions import InvalidRangeError, InvalidTimezoneError, UnboundedRangeError

ONE_MICROSECOND = timedelta(microseconds=1)


class SymbolicRange(str, Enum):
    """Calendar-relative range tokens."""

    TODAY = "TODAY"
    MTD = "MTD"
    QTD = "QTD"
    YTD = "YTD"
    ALL = "ALL"


# Ranges offered by a metric unless it declares its own
DEFAULT_RANGES: dict[int | str, str] = {
    30: "30 Days",
    60: "60 Days",
    365: "365 Days",
    "TODAY": "Today",
    "MTD": "Month To Date",
    "QTD": "Quarter To Date",
    "YTD": "Year To Date",
}

ALL_TIME_RANGE: dict[int | str, str] = {"ALL": "All Time"}


@dataclass(frozen=True)
class RangeToken:
    """
    Parsed range selector.

    Exactly one of ``days`` or ``symbol`` is set. Use ``RangeToken.parse``
    to build one from request input.
    """

    days: int | None = None
    symbol: SymbolicRange | None = None

    @classmethod
    def parse(cls, value: Any) -> RangeToken:
        """
        Parse request input into a range token.

        Accepts positive ints, numeric strings ("30") and symbolic tokens
        (case-insensitive). Anything else is a configuration error; there is
        no silent default.

        Raises:
            InvalidRangeError: If the value cannot be coerced
        """
        if isinstance(value, RangeToken):
            return value
        if isinstance(value, SymbolicRange):
            return cls(symbol=value)
        if isinstance(value, bool):
            raise InvalidRangeError(value)
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, int):
            if value <= 0:
                raise InvalidRangeError(value)
            return cls(days=value)
        if isinstance(value, str):
            text = value.strip().upper()
            if text in SymbolicRange.__members__:
                return cls(symbol=SymbolicRange(text))
            try:
                days = int(text)
            except ValueError:
                raise InvalidRangeError(value) from None
            return cls.parse(days)
        raise InvalidRangeError(value)

    @property
    def is_numeric(self) -> bool:
        return self.days is not None

    @property
    def is_unbounded(self) -> bool:
        return self.symbol is SymbolicRange.ALL

    @property
    def cache_segment(self) -> str:
        """Stable, lower-case representation used inside cache keys."""
        return str(self).lower()

    def __str__(self) -> str:
        if self.days is not None:
            return str(self.days)
        return self.symbol.value if self.symbol else ""


@dataclass(frozen=True)
class DateWindow:
    """Closed-inclusive reporting window. Invariant: start <= end."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def overlaps(self, other: DateWindow) -> bool:
        return self.start <= other.end and other.start <= self.end

    def to_utc(self) -> DateWindow:
        return DateWindow(start=self.start.astimezone(UTC), end=self.end.astimezone(UTC))


@lru_cache(maxsize=128)
def resolve_timezone(name: str) -> ZoneInfo:
    """
    Look up an IANA timezone.

    Raises:
        InvalidTimezoneError: If the zone is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(name) from e


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


def start_of_quarter(moment: datetime) -> datetime:
    first_month = 3 * ((moment.month - 1) // 3) + 1
    return start_of_day(moment).replace(month=first_month, day=1)


def start_of_year(moment: datetime) -> datetime:
    return start_of_day(moment).replace(month=1, day=1)


_PERIOD_STARTS: dict[SymbolicRange, Callable[[datetime], datetime]] = {
    SymbolicRange.TODAY: start_of_day,
    SymbolicRange.MTD: start_of_month,
    SymbolicRange.QTD: start_of_quarter,
    SymbolicRange.YTD: start_of_year,
}


class RangeResolver:
    """
    Resolves range tokens into windows relative to "now" in a timezone.

    The clock is injectable so tests can pin "now":

        resolver = RangeResolver(clock=lambda: datetime(2024, 3, 15, 12, tzinfo=UTC))
        window = resolver.resolve("MTD", "UTC")
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self, timezone: str) -> datetime:
        """Current instant expressed in the given timezone."""
        return self._clock().astimezone(resolve_timezone(timezone))

    def resolve(self, token: RangeToken | int | str, timezone: str) -> DateWindow:
        """
        Resolve the current window for a range token.

        Args:
            token: Range token or raw request value
            timezone: IANA timezone the calendar math happens in

        Returns:
            DateWindow with tz-aware bounds in ``timezone``

        Raises:
            InvalidRangeError: Token cannot be coerced
            InvalidTimezoneError: Timezone is unknown
            UnboundedRangeError: Token is ALL
        """
        token = RangeToken.parse(token)
        now = self.now(timezone)

        if token.days is not None:
            return DateWindow(start=now - timedelta(days=token.days), end=now)

        if token.is_unbounded:
            raise UnboundedRangeError()

        period_start = _PERIOD_STARTS[token.symbol]
        return DateWindow(start=period_start(now), end=end_of_day(now))

    def resolve_previous(self, token: RangeToken | int | str, timezone: str) -> DateWindow:
        """
        Resolve the comparable previous window for a range token.

        Numeric N gives [now - 2N days, now - N days) and symbolic tokens give
        the full prior calendar unit (yesterday, last month, last quarter,
        last year). The result always ends 1us before ``resolve`` starts.
        """
        token = RangeToken.parse(token)
        current = self.resolve(token, timezone)
        previous_end = current.start - ONE_MICROSECOND

        if token.days is not None:
            return DateWindow(start=current.start - timedelta(days=token.days), end=previous_end)

        period_start = _PERIOD_STARTS[token.symbol]
        return DateWindow(start=period_start(previous_end), end=previous_end)
