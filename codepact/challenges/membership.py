"""Membership & invitation guard.

Decides who may join a challenge and whom its owner may still invite.
Every check either returns the record the caller should persist or raises a
typed error, so a caller cannot ignore a rejection. The checks are not
atomic on their own: the service runs them while holding the challenge row
lock.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from datetime import datetime
from typing import TypeVar
from uuid import UUID, uuid4

from codepact.shared.utils.datetime_utils import ensure_utc

from .exceptions import (
    AlreadyMemberError,
    ChallengeClosedError,
    ChallengeNotPrivateError,
    InvitationRequiredError,
    UnauthorizedInviteError,
)
from .schemas import Challenge, Invitation, Membership, UserSummary
from .state_machine import is_owner

T = TypeVar("T", bound=UserSummary)


def _member_keys(existing_member_ids: Iterable[str | UUID]) -> set[str]:
    return {str(member_id) for member_id in existing_member_ids}


def _invitation_is_valid(
    invitation: Invitation | None,
    challenge: Challenge,
    user_id: str | UUID,
) -> bool:
    return (
        invitation is not None
        and invitation.is_pending
        and str(invitation.challenge_id) == str(challenge.id)
        and str(invitation.user_id) == str(user_id)
    )


def authorize_join(
    challenge: Challenge,
    user_id: UUID,
    existing_member_ids: Collection[str | UUID],
    now: datetime,
    invitation: Invitation | None = None,
) -> Membership:
    """Check that ``user_id`` may join and return the new membership.

    Order matters: a private challenge without an invitation is always
    rejected with InvitationRequiredError, whatever its status.

    Raises:
        AlreadyMemberError: user already belongs to the challenge
        InvitationRequiredError: private challenge, no usable invitation
        ChallengeClosedError: challenge is completed or cancelled
    """
    if str(user_id) in _member_keys(existing_member_ids):
        raise AlreadyMemberError(challenge.id, user_id)

    invited_by = None
    if challenge.is_private:
        if not _invitation_is_valid(invitation, challenge, user_id):
            raise InvitationRequiredError(challenge.id, user_id)
        invited_by = invitation.invited_by

    if challenge.is_closed:
        raise ChallengeClosedError(challenge.id, challenge.status)

    return Membership(
        challenge_id=challenge.id,
        user_id=user_id,
        joined_at=ensure_utc(now),
        invited_by=invited_by,
    )


def check_inviter(challenge: Challenge, actor_id: str | UUID) -> None:
    """Only the owner of a private challenge may invite or browse candidates."""
    if not is_owner(challenge, actor_id):
        raise UnauthorizedInviteError(actor_id)
    if not challenge.is_private:
        raise ChallengeNotPrivateError(challenge.id)


def authorize_invite(
    challenge: Challenge,
    actor_id: str | UUID,
    candidate_id: UUID,
    existing_member_ids: Collection[str | UUID],
    now: datetime,
) -> Invitation:
    """Check that the owner may invite ``candidate_id`` and return the invitation.

    Raises:
        UnauthorizedInviteError: actor is not the owner
        ChallengeNotPrivateError: public challenges take no invitations
        AlreadyMemberError: candidate already belongs to the challenge
        ChallengeClosedError: challenge is completed or cancelled
    """
    check_inviter(challenge, actor_id)
    if str(candidate_id) in _member_keys(existing_member_ids):
        raise AlreadyMemberError(challenge.id, candidate_id)
    if challenge.is_closed:
        raise ChallengeClosedError(challenge.id, challenge.status)

    return Invitation(
        id=uuid4(),
        challenge_id=challenge.id,
        user_id=candidate_id,
        invited_by=challenge.owner_id,
        created_at=ensure_utc(now),
    )


def consume_invitation(invitation: Invitation, now: datetime) -> Invitation:
    return invitation.model_copy(update={"consumed_at": ensure_utc(now)})


def invite_candidates(
    candidates: Iterable[T],
    existing_member_ids: Iterable[str | UUID],
) -> list[T]:
    """Filter an inviter's candidate pool down to users who are not members yet."""
    members = _member_keys(existing_member_ids)
    return [candidate for candidate in candidates if str(candidate.id) not in members]


__all__ = [
    "authorize_invite",
    "check_inviter",
    "authorize_join",
    "consume_invitation",
    "invite_candidates",
]
