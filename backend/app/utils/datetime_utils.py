"""
Date and time utilities for the analytics engine.

Snapshots are keyed by calendar date: every timestamp entering the engine is
normalized to its day (start-of-day semantics) before comparison.
"""
import calendar
from datetime import datetime, date


def parse_ISO_date(v) -> date:
    """
    Normalize a str, date or datetime to a calendar date.

    A datetime is truncated to its day, which is how snapshot dates are
    normalized to start-of-day.

    Raises:
        ValueError: If a string is not an ISO date (YYYY-MM-DD)
        TypeError: For any other input type
    """
    # datetime first: it is a subclass of date
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        try:
            return date.fromisoformat(v.strip()[:10])
        except ValueError as e:
            raise ValueError(f"Input must be an ISO date string (YYYY-MM-DD). Error: {e}")
    raise TypeError(f"Input must be a str, date or datetime, got {type(v)}")


def days_between(start: date, end: date) -> int:
    """Calendar days from start to end (negative if end precedes start)."""
    return (parse_ISO_date(end) - parse_ISO_date(start)).days


def add_months(d: date, months: int) -> date:
    """
    Shift a date by a number of calendar months (negative to go back).

    The day is clamped to the last day of the target month, so
    add_months(date(2025, 3, 31), -1) == date(2025, 2, 28).
    """
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))
