"""Challenge leaderboard, ranked by accrued penalty.

The leaderboard is a view: it is rebuilt from memberships and raw
submission counts on every read and never patched incrementally. The
``total_penalty`` stored on a membership is only a cache that
``reconcile_penalties`` brings back in line with the rebuilt values.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from .progress import day_end, day_index
from .schemas import Challenge, LeaderboardEntry, Membership

# user id -> challenge day index -> number of submissions that day
SubmissionCounts = Mapping[UUID, Mapping[int, int]]


def bucket_submissions(
    start_date: datetime,
    submissions: Iterable[tuple[UUID, datetime]],
) -> dict[UUID, dict[int, int]]:
    """Count ``(user_id, submitted_at)`` pairs per user and challenge day."""
    counts: dict[UUID, dict[int, int]] = defaultdict(lambda: defaultdict(int))
    for user_id, submitted_at in submissions:
        index = day_index(start_date, submitted_at)
        if index >= 0:
            counts[user_id][index] += 1
    return {user_id: dict(days) for user_id, days in counts.items()}


def missed_days(
    challenge: Challenge,
    counts: Mapping[int, int],
    days: Sequence[int],
    joined_at: datetime | None = None,
) -> int:
    """Tracked days on which the member stayed below the daily target.

    Days that were already over when the member joined are not held against them.
    """
    missed = 0
    for day in days:
        ended = day_end(challenge.start_date, challenge.end_date, day)
        if joined_at is not None and ended <= joined_at:
            continue
        if counts.get(day, 0) < challenge.min_submissions_per_day:
            missed += 1
    return missed


def build_leaderboard(
    challenge: Challenge,
    memberships: Iterable[Membership],
    submission_counts: SubmissionCounts,
    days: Sequence[int],
    display_names: Mapping[UUID, str] | None = None,
) -> list[LeaderboardEntry]:
    """Rank members by total penalty.

    Each tracked day below ``min_submissions_per_day`` costs one flat
    ``penalty_amount``. Ordering is total: penalty ascending, then earliest
    ``joined_at``, then user id. Ranks are 1-based and never shared.
    """
    counts_by_user = {str(user_id): counts for user_id, counts in submission_counts.items()}
    names = {str(user_id): name for user_id, name in (display_names or {}).items()}

    scored = []
    for membership in memberships:
        key = str(membership.user_id)
        missed = missed_days(
            challenge, counts_by_user.get(key, {}), days, membership.joined_at
        )
        penalty = Decimal(challenge.penalty_amount) * missed
        scored.append((penalty, membership.joined_at, key, missed, membership))

    scored.sort(key=lambda row: (row[0], row[1], row[2]))

    return [
        LeaderboardEntry(
            rank=rank,
            user_id=membership.user_id,
            display_name=names.get(key) or key,
            total_penalty=penalty,
            missed_days=missed,
            joined_at=joined_at,
        )
        for rank, (penalty, joined_at, key, missed, membership) in enumerate(scored, 1)
    ]


def reconcile_penalties(
    memberships: Iterable[Membership],
    leaderboard: Iterable[LeaderboardEntry],
) -> list[Membership]:
    """Memberships whose cached penalty is stale, updated to the rebuilt value."""
    totals = {str(entry.user_id): entry.total_penalty for entry in leaderboard}
    stale = []
    for membership in memberships:
        total = totals.get(str(membership.user_id))
        if total is not None and total != membership.total_penalty:
            stale.append(membership.model_copy(update={"total_penalty": total}))
    return stale


__all__ = [
    "SubmissionCounts",
    "bucket_submissions",
    "build_leaderboard",
    "missed_days",
    "reconcile_penalties",
]
