"""
Date boundary calculation for dashboard windows.

All boundaries are naive local wall-clock datetimes, matching how date-only
strings are stored by the back-office screens.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from ispadmin.backoffice.records.models import format_date_key


class DateRange(str, Enum):
    """Charting window selector."""

    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, value: "str | DateRange | None") -> "DateRange":
        """Parse a range selector; unknown values fall back to the weekly window."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.WEEK


class Granularity(str, Enum):
    """Time-series bucket size."""

    DAY = "day"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class DateBoundaries:
    """Closed interval [start_of_day, end_of_day] plus the exact-match day key."""

    start_of_day: datetime
    end_of_day: datetime
    date_string: str

    def contains(self, value: datetime | None) -> bool:
        return value is not None and self.start_of_day <= value <= self.end_of_day


def _as_datetime(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


def start_of_day(value: datetime | date) -> datetime:
    return _as_datetime(value).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime | date) -> datetime:
    return _as_datetime(value).replace(hour=23, minute=59, second=59, microsecond=999000)


def compute_boundaries(
    reference: datetime | date, date_range: "DateRange | str" = DateRange.WEEK
) -> DateBoundaries:
    """
    Map a reference day and range selector to its dashboard window.

    Every window ends at the end of the reference day:
    - today: the reference day only
    - week: trailing seven days ending on the reference day
    - month: first day of the reference month
    - year: January 1 of the reference year
    """
    selected = DateRange.parse(date_range)
    day_start = start_of_day(reference)

    if selected == DateRange.WEEK:
        start = day_start - timedelta(days=6)
    elif selected == DateRange.MONTH:
        start = day_start.replace(day=1)
    elif selected == DateRange.YEAR:
        start = day_start.replace(month=1, day=1)
    else:
        start = day_start

    return DateBoundaries(
        start_of_day=start,
        end_of_day=end_of_day(reference),
        date_string=format_date_key(day_start),
    )


def month_bounds(value: datetime | date) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing ``value``."""
    first = start_of_day(value).replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first, end_of_day(next_first - timedelta(days=1))


def is_future_day(reference: datetime | date, now: datetime | None = None) -> bool:
    """True when the reference falls on a day after today."""
    today = start_of_day(now or datetime.now())
    return start_of_day(reference) > today


def granularity_for_range(date_range: "DateRange | str") -> Granularity:
    """Daily buckets for short windows, monthly buckets for the year view."""
    if DateRange.parse(date_range) == DateRange.YEAR:
        return Granularity.MONTH
    return Granularity.DAY


def bucket_key(value: datetime | date, granularity: Granularity) -> str:
    if granularity == Granularity.YEAR:
        return value.strftime("%Y")
    if granularity == Granularity.MONTH:
        return value.strftime("%Y-%m")
    return format_date_key(value)


def iter_bucket_keys(start: datetime, end: datetime, granularity: Granularity) -> Iterator[str]:
    """Yield every bucket key between start and end, in chronological order."""
    cursor = start_of_day(start)
    last = bucket_key(end, granularity)
    while True:
        key = bucket_key(cursor, granularity)
        yield key
        if key >= last:
            return
        if granularity == Granularity.DAY:
            cursor += timedelta(days=1)
        elif granularity == Granularity.MONTH:
            _, month_end = month_bounds(cursor)
            cursor = start_of_day(month_end + timedelta(days=1))
        else:
            cursor = cursor.replace(year=cursor.year + 1, month=1, day=1)


@dataclass(frozen=True)
class DateFilter:
    """Immutable dashboard date filter."""

    type: str
    start_date: datetime
    end_date: datetime
    label: str

    @classmethod
    def for_day(cls, value: datetime | date) -> "DateFilter":
        """Single-day filter, as built by the live dashboard for its selected date."""
        day = start_of_day(value)
        return cls(
            type="custom",
            start_date=day,
            end_date=end_of_day(day),
            label=day.strftime("%a %b %d %Y"),
        )

    @classmethod
    def for_range(cls, value: datetime | date, date_range: "DateRange | str") -> "DateFilter":
        selected = DateRange.parse(date_range)
        bounds = compute_boundaries(value, selected)
        return cls(
            type=selected.value,
            start_date=bounds.start_of_day,
            end_date=bounds.end_of_day,
            label=f"{format_date_key(bounds.start_of_day)} to {bounds.date_string}",
        )

    @property
    def reference_day(self) -> datetime:
        return start_of_day(self.end_date)
