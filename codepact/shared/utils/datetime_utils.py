"""Datetime utilities for timezone-aware operations.

Everything in the engine works on timezone-aware UTC datetimes; naive
values coming from the database or the API are normalised here.
"""

from datetime import datetime, timedelta, timezone

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Return current UTC time with timezone info.

    Only the outer layers (API handlers, the scheduler) call this; the
    engine itself always receives ``now`` as an argument.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime object is timezone-aware and in UTC.

    If the datetime is naive (no tzinfo), it's assumed to be UTC.
    If the datetime has a different timezone, it's converted to UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)



__all__ = [
    "ONE_DAY",
    "ensure_utc",
    "utcnow",
]
