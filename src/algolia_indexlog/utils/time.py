"""Time utility functions."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

__all__ = ["UtcDateTime", "ensure_utc", "utc_now"]


def utc_now() -> datetime:
    """
    Return current UTC time with timezone awareness.

    Returns
    -------
    datetime
        Current UTC timestamp with tzinfo=timezone.utc

    Examples
    --------
    >>> from datetime import timezone
    >>> now = utc_now()
    >>> now.tzinfo == timezone.utc
    True
    """
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Coerce a datetime to an aware UTC datetime.

    Naive values are taken to already be in UTC.

    Parameters
    ----------
    value : datetime
        Naive or aware datetime

    Returns
    -------
    datetime
        Aware datetime in UTC
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UtcDateTime(TypeDecorator):
    """Timestamp column stored as naive UTC, returned as aware UTC.

    SQLite has no timezone support and drops tzinfo on write, so every
    backend stores naive UTC and values are re-tagged on read. Comparisons
    against aware datetimes in queries go through the same conversion.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)
