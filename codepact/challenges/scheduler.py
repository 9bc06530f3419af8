"""Completion sweep for challenges whose end date has passed.

Registered with the periodic scheduler in ``codepact.main`` and run every
``CHALLENGE_SCHEDULER_INTERVAL_SECONDS``. Completion is never triggered by
a user; this tick is the only caller of ``complete_due_challenges``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from codepact.shared.utils.datetime_utils import utcnow
from codepact.shared.utils.logging import get_logger

from .exceptions import TransientError

if TYPE_CHECKING:
    from .service import ChallengeService

logger = get_logger(__name__)


async def challenge_scheduler_tick(
    service: ChallengeService,
    now: datetime | None = None,
) -> dict:
    """Complete every due challenge.

    A transient store failure is logged and left for the next tick.

    Returns:
        ``{"completed": [...]}`` with the ids completed by this tick.
    """
    now = now or utcnow()
    try:
        completed = await service.complete_due_challenges(now)
    except TransientError as e:
        logger.warning("challenge_sweep_deferred", error=e.message)
        return {"completed": []}

    if completed:
        logger.info(
            "challenge_sweep_finished",
            completed=[str(challenge_id) for challenge_id in completed],
        )
    return {"completed": [str(challenge_id) for challenge_id in completed]}


__all__ = [
    "challenge_scheduler_tick",
]
