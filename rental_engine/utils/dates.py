"""
Calendar-date helpers for rental periods.

Rental periods are counted in whole calendar days taken from the *local* date
components of each instant. A pickup chosen as "2025-02-13 10:00" must stay on
Feb 13 no matter which offset the datetime carries, so nothing here converts
through UTC before reading the date.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Union

DateLike = Union[date, datetime, str]

# Friday, Saturday, Sunday (date.weekday(): Monday == 0)
WEEKEND_WEEKDAYS = frozenset({4, 5, 6})


def local_date_of(value: DateLike) -> date:
    """Return the calendar date of a date, datetime or YYYY-MM-DD[...] string."""
    if isinstance(value, datetime):
        # Aware datetimes keep their own offset: the wall-clock date is what the customer picked.
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_local_date(value[:10])
    raise TypeError(f"Unsupported date value: {value!r}")


def format_local_date(value: DateLike) -> str:
    """Format to YYYY-MM-DD using local date components."""
    return local_date_of(value).strftime("%Y-%m-%d")


def parse_local_date(value: str) -> date:
    """Parse YYYY-MM-DD into a calendar date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def add_local_days(value: DateLike, days: int) -> str:
    return format_local_date(local_date_of(value) + timedelta(days=days))


def diff_local_days(start: DateLike, end: DateLike) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (local_date_of(end) - local_date_of(start)).days


def local_datetime_to_iso(date_str: str, time_str: str) -> str:
    """Combine a YYYY-MM-DD date and an HH:MM time into a local ISO timestamp."""
    hour, minute = (int(part) for part in time_str.split(":"))
    return datetime.combine(parse_local_date(date_str), time(hour, minute)).isoformat()


def is_weekend_day(value: DateLike) -> bool:
    return local_date_of(value).weekday() in WEEKEND_WEEKDAYS


def count_weekend_days(pickup_date: Optional[DateLike], rental_days: int) -> int:
    """
    Count Fri/Sat/Sun days among the rental days.

    The rental days are [pickup, pickup + rental_days - 1], one entry per
    charged day. A missing pickup date or a non-positive day count yields 0.
    """
    if pickup_date is None or rental_days <= 0:
        return 0
    start = local_date_of(pickup_date)
    return sum(1 for offset in range(rental_days) if (start + timedelta(days=offset)).weekday() in WEEKEND_WEEKDAYS)


def rental_days_between(start: DateLike, end: DateLike) -> int:
    """Charged rental days between two instants; same-day rentals count as 1."""
    return max(1, diff_local_days(start, end))


def to_aware(value: datetime) -> datetime:
    """Attach the local offset to naive datetimes so they compare with aware ones."""
    return value if value.tzinfo is not None else value.astimezone()


def ranges_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Inclusive overlap: windows that merely touch still conflict."""
    return to_aware(start_a) <= to_aware(end_b) and to_aware(end_a) >= to_aware(start_b)
