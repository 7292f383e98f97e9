"""
Time utilities for the Task Tracker application.

This module provides a single source of truth for time operations,
ensuring every timestamp the application stores or compares is UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to UTC.

    Naive datetimes are taken to already be in UTC.

    Args:
        value: datetime to normalize (may be None)

    Returns:
        timezone-aware datetime in UTC, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse an ISO 8601 date or datetime string into a UTC datetime.

    Accepts date-only strings ("2024-01-31", read as midnight UTC) and the
    "Z" suffix used by JavaScript clients.

    Raises:
        ValueError: if the string is not a valid ISO date
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def is_in_past(value: datetime) -> bool:
    """Check whether a datetime lies before the current UTC time."""
    return to_utc(value) < utc_now()
