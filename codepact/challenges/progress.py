"""Time & progress calculations for a challenge date range.

A challenge day is a 24 hour slot counted from ``start_date``: day ``k``
covers ``[start + k days, start + (k + 1) days)``, the last one cut short at
``end_date``. Nothing here reads a clock; ``now`` is always passed in.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from codepact.shared.utils.datetime_utils import ONE_DAY, ensure_utc

from .exceptions import InvalidRangeError
from .schemas import Challenge, ChallengeProgress


def _ceil_days(delta: timedelta) -> int:
    return -(-delta // ONE_DAY)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def total_days(start_date: datetime, end_date: datetime) -> int:
    """Number of (possibly partial) days in the range.

    Raises:
        InvalidRangeError: if the range does not end after it starts
    """
    days = _ceil_days(ensure_utc(end_date) - ensure_utc(start_date))
    if days <= 0:
        raise InvalidRangeError(start_date, end_date)
    return days


def calculate_progress(
    start_date: datetime,
    end_date: datetime,
    now: datetime,
) -> ChallengeProgress:
    """Remaining days, elapsed days and percent complete at ``now``.

    ``days_elapsed + days_remaining == total_days`` always holds and the
    percentage is rounded half-up into ``[0, 100]``.
    """
    total = total_days(start_date, end_date)
    remaining = _clamp(_ceil_days(ensure_utc(end_date) - ensure_utc(now)), 0, total)
    elapsed = total - remaining

    percent = (Decimal(elapsed * 100) / Decimal(total)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )

    return ChallengeProgress(
        total_days=total,
        days_remaining=remaining,
        days_elapsed=elapsed,
        progress_percent=_clamp(int(percent), 0, 100),
    )


def challenge_progress(challenge: Challenge, now: datetime) -> ChallengeProgress:
    return calculate_progress(challenge.start_date, challenge.end_date, now)


def day_index(start_date: datetime, at: datetime) -> int:
    """Zero-based challenge day that ``at`` falls into (negative before start)."""
    return (ensure_utc(at) - ensure_utc(start_date)) // ONE_DAY


def day_end(start_date: datetime, end_date: datetime, index: int) -> datetime:
    """End of challenge day ``index``, cut short at ``end_date``."""
    return min(ensure_utc(start_date) + (index + 1) * ONE_DAY, ensure_utc(end_date))


def tracked_days(
    start_date: datetime,
    end_date: datetime,
    window_start: datetime | None,
    window_end: datetime,
) -> list[int]:
    """Indices of the challenge days that finished while it was being tracked.

    A day counts when its end lies in ``(window_start, window_end]``: the day
    of activation counts, the day in progress at ``window_end`` does not.
    ``window_start`` of ``None`` means tracking never began.
    """
    if window_start is None:
        return []

    start = ensure_utc(start_date)
    end = ensure_utc(end_date)
    window_start = ensure_utc(window_start)
    window_end = min(ensure_utc(window_end), end)

    days = []
    for k in range(total_days(start, end)):
        if window_start < day_end(start, end, k) <= window_end:
            days.append(k)
    return days


__all__ = [
    "calculate_progress",
    "challenge_progress",
    "day_end",
    "day_index",
    "total_days",
    "tracked_days",
]
