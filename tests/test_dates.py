"""Tests for dashboard date boundaries and bucketing."""

from datetime import UTC, date, datetime, timedelta

import pytest
from freezegun import freeze_time

from ispadmin.backoffice.dashboard.dates import (
    DateFilter,
    DateRange,
    Granularity,
    bucket_key,
    compute_boundaries,
    end_of_day,
    granularity_for_range,
    is_future_day,
    iter_bucket_keys,
    month_bounds,
    start_of_day,
)

pytestmark = pytest.mark.unit


class TestComputeBoundaries:
    """Test range selector to window mapping."""

    def test_week_window(self):
        """Week is the trailing seven days ending on the reference day."""
        bounds = compute_boundaries(datetime(2025, 6, 15, 14, 30), "week")

        assert bounds.start_of_day == datetime(2025, 6, 9, 0, 0, 0)
        assert bounds.end_of_day == datetime(2025, 6, 15, 23, 59, 59, 999000)
        assert bounds.date_string == "2025-06-15"

    def test_today_window(self):
        bounds = compute_boundaries(date(2025, 6, 15), DateRange.TODAY)

        assert bounds.start_of_day == datetime(2025, 6, 15)
        assert bounds.end_of_day == datetime(2025, 6, 15, 23, 59, 59, 999000)

    def test_month_window(self):
        bounds = compute_boundaries(datetime(2025, 6, 15), DateRange.MONTH)
        assert bounds.start_of_day == datetime(2025, 6, 1)
        assert bounds.end_of_day.date() == date(2025, 6, 15)

    def test_year_window(self):
        bounds = compute_boundaries(datetime(2025, 6, 15), DateRange.YEAR)
        assert bounds.start_of_day == datetime(2025, 1, 1)

    def test_unknown_range_falls_back_to_week(self):
        bounds = compute_boundaries(datetime(2025, 6, 15), "fortnight")
        assert bounds.start_of_day == datetime(2025, 6, 9)

    def test_range_parsing_is_case_insensitive(self):
        assert DateRange.parse(" Month ") == DateRange.MONTH
        assert DateRange.parse(None) == DateRange.WEEK

    def test_aware_reference_is_converted_to_local(self):
        aware = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)
        local = aware.astimezone().replace(tzinfo=None)

        bounds = compute_boundaries(aware, DateRange.TODAY)

        assert bounds.start_of_day == start_of_day(local)
        assert bounds.end_of_day.tzinfo is None

    def test_contains_is_inclusive(self):
        bounds = compute_boundaries(datetime(2025, 6, 15), DateRange.WEEK)

        assert bounds.contains(datetime(2025, 6, 9))
        assert bounds.contains(datetime(2025, 6, 15, 23, 59, 59, 999000))
        assert not bounds.contains(datetime(2025, 6, 16))
        assert not bounds.contains(None)


class TestDayHelpers:
    """Test start/end of day and month helpers."""

    def test_end_of_day_uses_millisecond_precision(self):
        assert end_of_day(date(2025, 2, 28)) == datetime(2025, 2, 28, 23, 59, 59, 999000)

    def test_month_bounds_december(self):
        first, last = month_bounds(datetime(2024, 12, 20, 8, 0))
        assert first == datetime(2024, 12, 1)
        assert last == datetime(2024, 12, 31, 23, 59, 59, 999000)

    def test_month_bounds_leap_february(self):
        _, last = month_bounds(date(2024, 2, 10))
        assert last.date() == date(2024, 2, 29)

    @freeze_time("2025-06-15 10:00:00")
    def test_is_future_day(self):
        assert is_future_day(datetime(2025, 6, 16, 0, 0))
        assert not is_future_day(datetime(2025, 6, 15, 23, 59))
        assert not is_future_day(date(2025, 6, 1))

    def test_is_future_day_with_explicit_now(self):
        now = datetime(2025, 6, 15, 9, 0)
        assert is_future_day(now + timedelta(days=1), now=now)
        assert not is_future_day(now, now=now)


class TestBuckets:
    """Test time-series bucket keys."""

    def test_granularity_for_range(self):
        assert granularity_for_range("year") == Granularity.MONTH
        assert granularity_for_range("week") == Granularity.DAY
        assert granularity_for_range("month") == Granularity.DAY

    def test_bucket_key_formats(self):
        value = datetime(2025, 6, 5, 13, 0)
        assert bucket_key(value, Granularity.DAY) == "2025-06-05"
        assert bucket_key(value, Granularity.MONTH) == "2025-06"
        assert bucket_key(value, Granularity.YEAR) == "2025"

    def test_iter_daily_keys(self):
        keys = list(
            iter_bucket_keys(datetime(2025, 6, 9), datetime(2025, 6, 15, 23, 59), Granularity.DAY)
        )
        assert keys == [f"2025-06-{d:02d}" for d in range(9, 16)]

    def test_iter_monthly_keys(self):
        keys = list(
            iter_bucket_keys(datetime(2025, 1, 1), datetime(2025, 6, 15), Granularity.MONTH)
        )
        assert keys == ["2025-01", "2025-02", "2025-03", "2025-04", "2025-05", "2025-06"]

    def test_iter_single_bucket(self):
        keys = list(iter_bucket_keys(datetime(2025, 6, 15), datetime(2025, 6, 15), Granularity.DAY))
        assert keys == ["2025-06-15"]


class TestDateFilter:
    """Test dashboard date filters."""

    def test_for_day(self):
        date_filter = DateFilter.for_day(datetime(2025, 6, 15, 17, 45))

        assert date_filter.type == "custom"
        assert date_filter.start_date == datetime(2025, 6, 15)
        assert date_filter.end_date == datetime(2025, 6, 15, 23, 59, 59, 999000)
        assert date_filter.label == "Sun Jun 15 2025"
        assert date_filter.reference_day == datetime(2025, 6, 15)

    def test_for_range(self):
        date_filter = DateFilter.for_range(date(2025, 6, 15), "month")

        assert date_filter.type == "month"
        assert date_filter.start_date == datetime(2025, 6, 1)
        assert date_filter.label == "2025-06-01 to 2025-06-15"

    def test_is_immutable(self):
        date_filter = DateFilter.for_day(date(2025, 6, 15))
        with pytest.raises(AttributeError):
            date_filter.label = "changed"  # type: ignore[misc]
