"""
Date utilities for analytics windows.
"""
from calendar import monthrange
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

PERIODS = ("week", "month", "quarter", "year")


def subtract_months(date: datetime, months: int) -> datetime:
    """
    Shift a datetime back by whole calendar months, clamping the day.

    Args:
        date: Reference datetime
        months: Number of months to go back

    Returns:
        datetime: e.g. 2024-03-31 minus 1 month -> 2024-02-29
    """
    month_index = date.year * 12 + (date.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    _, last_day_of_month = monthrange(year, month)
    return date.replace(year=year, month=month, day=min(date.day, last_day_of_month))


def get_month_start_date(date: datetime) -> datetime:
    """First day of the date's month at 00:00:00 (timezone preserved)"""
    return date.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def compute_period_range(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Window for an analytics period: from midnight N back until now.

    Args:
        period: One of week, month, quarter, year
        now: Reference time (defaults to current UTC time)

    Returns:
        tuple: (start, end)
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")
    end = now or datetime.now(timezone.utc)
    if period == "week":
        start = end - timedelta(days=7)
    elif period == "month":
        start = subtract_months(end, 1)
    elif period == "quarter":
        start = subtract_months(end, 3)
    else:
        start = subtract_months(end, 12)
    return start.replace(hour=0, minute=0, second=0, microsecond=0), end


def previous_range(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Equal-length window immediately before [start, end)"""
    return start - (end - start), start
