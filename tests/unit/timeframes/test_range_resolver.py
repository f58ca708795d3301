"""
Unit tests for range token parsing and window resolution.

The resolver clock is pinned to Friday 2024-03-15 12:00 UTC (see conftest).
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from dashmetrics.exceptions import InvalidRangeError, InvalidTimezoneError, UnboundedRangeError
from dashmetrics.timeframes import DateWindow, RangeToken, SymbolicRange

ONE_MICROSECOND = timedelta(microseconds=1)


class TestRangeTokenParse:
    """Tests for RangeToken.parse coercion."""

    @pytest.mark.parametrize("value", [30, "30", " 30 ", 30.0])
    def test_numeric_tokens(self, value):
        assert RangeToken.parse(value) == RangeToken(days=30)

    @pytest.mark.parametrize("value", ["mtd", "MTD", " Mtd "])
    def test_symbolic_tokens_are_case_insensitive(self, value):
        assert RangeToken.parse(value).symbol is SymbolicRange.MTD

    @pytest.mark.parametrize("value", [0, -5, "0", "abc", "", True, None, 1.5, [30]])
    def test_invalid_tokens_raise(self, value):
        with pytest.raises(InvalidRangeError):
            RangeToken.parse(value)

    def test_parse_is_idempotent(self):
        token = RangeToken.parse("QTD")

        assert RangeToken.parse(token) is token

    def test_string_and_cache_segment(self):
        assert str(RangeToken.parse(60)) == "60"
        assert str(RangeToken.parse("ytd")) == "YTD"
        assert RangeToken.parse("YTD").cache_segment == "ytd"

    def test_all_is_unbounded(self):
        token = RangeToken.parse("ALL")

        assert token.is_unbounded
        assert not token.is_numeric


class TestResolveCurrentWindow:
    """Tests for RangeResolver.resolve."""

    def test_numeric_window_ends_now(self, resolver, now):
        window = resolver.resolve(30, "UTC")

        assert window.end == now
        assert window.start == datetime(2024, 2, 14, 12, 0, tzinfo=UTC)

    def test_today_utc(self, resolver):
        window = resolver.resolve("TODAY", "UTC")

        assert window.start == datetime(2024, 3, 15, 0, 0, tzinfo=UTC)
        assert window.end == datetime(2024, 3, 15, 23, 59, 59, 999999, tzinfo=UTC)

    def test_today_follows_request_timezone(self, resolver):
        window = resolver.resolve("TODAY", "America/New_York")
        new_york = ZoneInfo("America/New_York")

        assert window.start == datetime(2024, 3, 15, 0, 0, tzinfo=new_york)
        # EDT is in effect, so local midnight is 04:00 UTC
        assert window.to_utc().start == datetime(2024, 3, 15, 4, 0, tzinfo=UTC)

    def test_month_quarter_year_to_date(self, resolver):
        assert resolver.resolve("MTD", "UTC").start == datetime(2024, 3, 1, tzinfo=UTC)
        assert resolver.resolve("QTD", "UTC").start == datetime(2024, 1, 1, tzinfo=UTC)
        assert resolver.resolve("YTD", "UTC").start == datetime(2024, 1, 1, tzinfo=UTC)

    def test_all_cannot_be_resolved(self, resolver):
        with pytest.raises(UnboundedRangeError):
            resolver.resolve("ALL", "UTC")

    def test_unknown_timezone(self, resolver):
        with pytest.raises(InvalidTimezoneError):
            resolver.resolve(30, "Mars/Olympus_Mons")


class TestResolvePreviousWindow:
    """Tests for RangeResolver.resolve_previous."""

    def test_numeric_previous_window(self, resolver):
        previous = resolver.resolve_previous(30, "UTC")

        assert previous.start == datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
        assert previous.end == datetime(2024, 2, 14, 12, 0, tzinfo=UTC) - ONE_MICROSECOND

    def test_previous_month_handles_leap_february(self, resolver):
        previous = resolver.resolve_previous("MTD", "UTC")

        assert previous.start == datetime(2024, 2, 1, tzinfo=UTC)
        assert previous.end == datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=UTC)

    def test_previous_quarter_and_year(self, resolver):
        quarter = resolver.resolve_previous("QTD", "UTC")
        year = resolver.resolve_previous("YTD", "UTC")

        assert quarter.start == datetime(2023, 10, 1, tzinfo=UTC)
        assert year.start == datetime(2023, 1, 1, tzinfo=UTC)
        assert year.end == datetime(2023, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)

    def test_previous_day(self, resolver):
        previous = resolver.resolve_previous("TODAY", "UTC")

        assert previous.start == datetime(2024, 3, 14, tzinfo=UTC)
        assert previous.end == datetime(2024, 3, 14, 23, 59, 59, 999999, tzinfo=UTC)

    @pytest.mark.parametrize("token", [1, 7, 30, 365, "TODAY", "MTD", "QTD", "YTD"])
    @pytest.mark.parametrize("timezone", ["UTC", "Europe/Paris", "Asia/Kolkata", "America/Los_Angeles"])
    def test_windows_are_contiguous_and_disjoint(self, resolver, token, timezone):
        current = resolver.resolve(token, timezone)
        previous = resolver.resolve_previous(token, timezone)

        assert current.start <= current.end
        assert previous.start <= previous.end
        assert previous.end == current.start - ONE_MICROSECOND
        assert not previous.overlaps(current)


class TestDateWindow:
    """Tests for the DateWindow value object."""

    def test_start_after_end_is_rejected(self):
        with pytest.raises(ValueError):
            DateWindow(start=datetime(2024, 1, 2, tzinfo=UTC), end=datetime(2024, 1, 1, tzinfo=UTC))

    def test_contains_is_inclusive(self):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        end = datetime(2024, 1, 31, tzinfo=UTC)
        window = DateWindow(start=start, end=end)

        assert window.contains(start)
        assert window.contains(end)
        assert not window.contains(end + ONE_MICROSECOND)
        assert window.duration == timedelta(days=30)
