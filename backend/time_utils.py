"""
Time utilities for the task management API.

This module provides a single source of truth for time operations,
ensuring consistency across the dashboard, overdue checks and timestamps.
"""

from datetime import date, datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a stored timestamp to aware UTC.

    SQLite hands back naive datetimes for values written in UTC, while
    PostgreSQL returns aware ones.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_overdue(due_date: Optional[datetime], status: str) -> bool:
    """
    Check if a task is overdue.

    A task is overdue if it has a due date in the past and is not done.

    Args:
        due_date: The task's due date
        status: The task's status

    Returns:
        True if task is overdue (due in past, not done), False otherwise
    """
    if not due_date or status == "DONE":
        return False
    return as_utc(due_date) < utc_now()


def last_n_days(days: int) -> list[date]:
    """
    Calendar days (UTC) ending today, oldest first.

    Args:
        days: Number of days in the window, today included

    Returns:
        List of dates of length `days`
    """
    today = utc_now().date()
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of `day`."""
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
