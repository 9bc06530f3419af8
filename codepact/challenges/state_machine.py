"""Challenge lifecycle state machine.

States: PENDING → ACTIVE → COMPLETED
PENDING and ACTIVE can also → CANCELLED (owner abandons the challenge).
COMPLETED and CANCELLED are terminal.

Transitions return a copy of the challenge with only ``status`` and
``updated_at`` changed. This module is the single source of truth for which
actions are legal; the presentation layer only reflects ``available_actions``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from codepact.shared.utils.datetime_utils import ensure_utc

from .exceptions import InvalidStateTransitionError, UnauthorizedTransitionError
from .schemas import Challenge, ChallengeAction, ChallengeStatus, StatusChange

VALID_TRANSITIONS: dict[ChallengeStatus, list[ChallengeStatus]] = {
    ChallengeStatus.PENDING: [ChallengeStatus.ACTIVE, ChallengeStatus.CANCELLED],
    ChallengeStatus.ACTIVE: [ChallengeStatus.COMPLETED, ChallengeStatus.CANCELLED],
    ChallengeStatus.COMPLETED: [],    # terminal
    ChallengeStatus.CANCELLED: [],    # terminal
}


def can_transition(current: str | ChallengeStatus, target: str | ChallengeStatus) -> bool:
    """Check if a challenge state transition is valid."""
    return ChallengeStatus(target) in VALID_TRANSITIONS.get(ChallengeStatus(current), [])


def validate_transition(
    current: str | ChallengeStatus,
    target: str | ChallengeStatus,
) -> None:
    """Validate a challenge state transition, raising InvalidStateTransitionError if invalid."""
    if not can_transition(current, target):
        raise InvalidStateTransitionError(
            ChallengeStatus(current).value, ChallengeStatus(target).value
        )


def is_owner(challenge: Challenge, user_id: str | UUID | None) -> bool:
    return user_id is not None and str(user_id) == str(challenge.owner_id)


def _move(challenge: Challenge, target: ChallengeStatus, now: datetime) -> Challenge:
    return challenge.model_copy(update={"status": target.value, "updated_at": ensure_utc(now)})


def activate(challenge: Challenge, actor_id: str | UUID, now: datetime) -> Challenge:
    """Owner starts the challenge; daily tracking and penalties begin here."""
    if not is_owner(challenge, actor_id):
        raise UnauthorizedTransitionError(actor_id, ChallengeStatus.ACTIVE.value)
    validate_transition(challenge.status, ChallengeStatus.ACTIVE)
    return _move(challenge, ChallengeStatus.ACTIVE, now)


def complete(challenge: Challenge, now: datetime) -> Challenge:
    """System-triggered completion once ``end_date`` has passed.

    Completing an already completed challenge returns it unchanged.
    """
    current = ChallengeStatus(challenge.status)
    if current is ChallengeStatus.COMPLETED:
        return challenge

    validate_transition(current, ChallengeStatus.COMPLETED)
    if ensure_utc(now) < challenge.end_date:
        raise InvalidStateTransitionError(
            current.value,
            ChallengeStatus.COMPLETED.value,
            reason=f"challenge runs until {challenge.end_date.isoformat()}",
        )
    return _move(challenge, ChallengeStatus.COMPLETED, now)


def cancel(challenge: Challenge, actor_id: str | UUID, now: datetime) -> Challenge:
    """Owner abandons the challenge before or during its run."""
    if not is_owner(challenge, actor_id):
        raise UnauthorizedTransitionError(actor_id, ChallengeStatus.CANCELLED.value)
    validate_transition(challenge.status, ChallengeStatus.CANCELLED)
    return _move(challenge, ChallengeStatus.CANCELLED, now)


def record_change(
    before: Challenge,
    after: Challenge,
    actor_id: str | UUID | None = None,
) -> StatusChange:
    """Build the transition-log entry for ``before`` → ``after``."""
    return StatusChange(
        challenge_id=after.id,
        from_status=before.status,
        to_status=after.status,
        actor_id=actor_id,
        changed_at=after.updated_at,
    )


def active_window(
    changes: Iterable[StatusChange],
    now: datetime,
) -> tuple[datetime | None, datetime]:
    """The span during which the challenge was ACTIVE, read from its transition log.

    The start is the first move into ACTIVE (``None`` if it never happened);
    the end is the move out of ACTIVE, or ``now`` while it is still running.
    """
    start = None
    end = None
    for change in sorted(changes, key=lambda c: c.changed_at):
        if start is None and change.to_status == ChallengeStatus.ACTIVE:
            start = change.changed_at
        elif start is not None and change.from_status == ChallengeStatus.ACTIVE:
            end = change.changed_at
            break
    return start, end if end is not None else ensure_utc(now)


def available_actions(
    challenge: Challenge,
    viewer_id: str | UUID | None,
    is_member: bool = False,
) -> list[ChallengeAction]:
    """Actions the viewer may attempt right now, in display order."""
    if viewer_id is None:
        return []

    actions: list[ChallengeAction] = []
    owner = is_owner(challenge, viewer_id)

    if owner and can_transition(challenge.status, ChallengeStatus.ACTIVE):
        actions.append(ChallengeAction.ACTIVATE)
    if owner and challenge.is_private and not challenge.is_closed:
        actions.append(ChallengeAction.INVITE)
    if not is_member and not challenge.is_closed:
        actions.append(ChallengeAction.JOIN)
    if owner and can_transition(challenge.status, ChallengeStatus.CANCELLED):
        actions.append(ChallengeAction.CANCEL)
    return actions


__all__ = [
    "VALID_TRANSITIONS",
    "activate",
    "active_window",
    "available_actions",
    "can_transition",
    "cancel",
    "complete",
    "is_owner",
    "record_change",
    "validate_transition",
]
