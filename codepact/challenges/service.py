"""Challenge service: runs the engine inside one unit of work per operation.

Each mutating operation locks the challenge row, runs the guards and the
state machine on frozen copies, persists the result and the rebuilt
leaderboard cache, then commits. Any error rolls the whole unit back.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.exc import InterfaceError, OperationalError

from codepact.repositories.exceptions import DuplicateEntityError, TransactionError
from codepact.repositories.unit_of_work import UnitOfWork
from codepact.shared.utils.datetime_utils import ONE_DAY, ensure_utc
from codepact.shared.utils.logging import get_logger

from . import state_machine
from .config import ChallengeSettings, get_challenge_settings
from .exceptions import (
    AlreadyMemberError,
    ChallengeNotActiveError,
    ChallengeNotFoundError,
    InvalidStateTransitionError,
    NotAMemberError,
    TransientError,
    UserNotFoundError,
)
from .leaderboard import bucket_submissions, build_leaderboard, reconcile_penalties
from .membership import (
    authorize_invite,
    authorize_join,
    check_inviter,
    consume_invitation,
    invite_candidates,
)
from .progress import challenge_progress, day_index, total_days, tracked_days
from .schemas import (
    Challenge,
    ChallengeStatus,
    ChallengeView,
    CreateChallengeRequest,
    Invitation,
    Membership,
    StatusChange,
    SubmissionResponse,
    UserSummary,
)

logger = get_logger(__name__)


class ChallengeService:
    """Orchestrates challenge lifecycle, membership and leaderboard reads."""

    def __init__(self, session_factory, settings: ChallengeSettings | None = None):
        self.session_factory = session_factory
        self.settings = settings or get_challenge_settings()

    # ===========================================
    # INTERNALS
    # ===========================================

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[UnitOfWork]:
        """Open a unit of work, turning store failures into TransientError."""
        try:
            async with UnitOfWork(self.session_factory) as uow:
                yield uow
        except TransactionError as e:
            logger.warning("challenge_commit_failed", error=str(e))
            raise TransientError("Failed to commit challenge changes", e.original_error or e) from e
        except (OperationalError, InterfaceError, asyncio.TimeoutError) as e:
            logger.warning("challenge_store_unavailable", error=str(e))
            raise TransientError("Challenge store is unavailable", e) from e

    async def _load(self, uow: UnitOfWork, challenge_id: UUID, lock: bool = True) -> Challenge:
        if lock:
            row = await uow.challenges.get_for_update(challenge_id)
        else:
            row = await uow.challenges.get_by_id(challenge_id)
        if row is None:
            raise ChallengeNotFoundError(challenge_id)
        return Challenge.model_validate(row)

    async def _memberships(self, uow: UnitOfWork, challenge_id: UUID) -> list[Membership]:
        rows = await uow.memberships.list_for_challenge(challenge_id)
        return [Membership.model_validate(row) for row in rows]

    async def _save_transition(
        self,
        uow: UnitOfWork,
        before: Challenge,
        after: Challenge,
        actor_id: UUID | None,
    ) -> None:
        await uow.challenges.save_status(after)
        await uow.status_changes.create(state_machine.record_change(before, after, actor_id))

    async def _build_view(
        self,
        uow: UnitOfWork,
        challenge: Challenge,
        now: datetime,
        viewer_id: UUID | None = None,
        invitation: Invitation | None = None,
    ) -> tuple[ChallengeView, int]:
        """Rebuild the leaderboard and write back stale penalty caches.

        Returns the view and the number of memberships whose cache changed.
        """
        memberships = await self._memberships(uow, challenge.id)

        changes = [
            StatusChange.model_validate(row)
            for row in await uow.status_changes.list_for_challenge(challenge.id)
        ]
        window_start, window_end = state_machine.active_window(changes, now)
        days = tracked_days(challenge.start_date, challenge.end_date, window_start, window_end)

        submissions = await uow.submissions.list_for_challenge(
            challenge.id, challenge.start_date, challenge.end_date
        )
        counts = bucket_submissions(challenge.start_date, submissions)
        names = await uow.users.display_names([m.user_id for m in memberships])

        leaderboard = build_leaderboard(challenge, memberships, counts, days, names)

        stale = reconcile_penalties(memberships, leaderboard)
        for membership in stale:
            await uow.memberships.update_penalty(
                membership.challenge_id, membership.user_id, membership.total_penalty
            )

        is_member = viewer_id is not None and any(
            str(m.user_id) == str(viewer_id) for m in memberships
        )
        view = ChallengeView(
            challenge=challenge,
            progress=challenge_progress(challenge, now),
            leaderboard=leaderboard,
            member_count=len(memberships),
            difficulty_label=challenge.difficulty_label,
            actions=state_machine.available_actions(challenge, viewer_id, is_member),
            invitation=invitation,
        )
        return view, len(stale)

    # ===========================================
    # READS
    # ===========================================

    async def get_challenge_with_leaderboard(
        self,
        challenge_id: UUID,
        now: datetime,
        viewer_id: UUID | None = None,
    ) -> ChallengeView:
        """Challenge, progress and a freshly computed leaderboard."""
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id, lock=False)
            view, stale = await self._build_view(uow, challenge, now, viewer_id)
            if stale:
                await uow.commit()
                logger.debug(
                    "penalty_cache_reconciled",
                    challenge_id=str(challenge_id),
                    memberships=stale,
                )
        return view

    async def list_invite_candidates(
        self,
        challenge_id: UUID,
        actor_id: UUID,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[UserSummary]:
        """Users the owner of a private challenge can still invite."""
        limit = limit or self.settings.candidate_search_limit
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id, lock=False)
            check_inviter(challenge, actor_id)

            member_ids = [m.user_id for m in await self._memberships(uow, challenge.id)]
            users = await uow.users.search(search, limit + len(member_ids))

        candidates = invite_candidates(
            [UserSummary.model_validate(user) for user in users], member_ids
        )
        return candidates[:limit]

    # ===========================================
    # LIFECYCLE
    # ===========================================

    async def create_challenge(
        self,
        owner_id: UUID,
        data: CreateChallengeRequest,
        now: datetime,
    ) -> ChallengeView:
        """Create a PENDING challenge with its owner as the first member."""
        total_days(data.start_date, data.end_date)
        now = ensure_utc(now)

        challenge = Challenge(
            id=uuid4(),
            owner_id=owner_id,
            status=ChallengeStatus.PENDING,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        owner = Membership(challenge_id=challenge.id, user_id=owner_id, joined_at=now)

        async with self._transaction() as uow:
            await uow.challenges.create(challenge)
            await uow.memberships.create(owner)
            view, _ = await self._build_view(uow, challenge, now, owner_id)
            await uow.commit()

        logger.info(
            "challenge_created",
            challenge_id=str(challenge.id),
            owner_id=str(owner_id),
            is_private=challenge.is_private,
        )
        return view

    async def activate(self, challenge_id: UUID, actor_id: UUID, now: datetime) -> ChallengeView:
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id)
            activated = state_machine.activate(challenge, actor_id, now)
            await self._save_transition(uow, challenge, activated, actor_id)
            view, _ = await self._build_view(uow, activated, now, actor_id)
            await uow.commit()

        logger.info("challenge_activated", challenge_id=str(challenge_id), actor_id=str(actor_id))
        return view

    async def cancel(self, challenge_id: UUID, actor_id: UUID, now: datetime) -> ChallengeView:
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id)
            cancelled = state_machine.cancel(challenge, actor_id, now)
            await self._save_transition(uow, challenge, cancelled, actor_id)
            view, _ = await self._build_view(uow, cancelled, now, actor_id)
            await uow.commit()

        logger.info(
            "challenge_cancelled",
            challenge_id=str(challenge_id),
            actor_id=str(actor_id),
            from_status=challenge.status,
        )
        return view

    async def complete(self, challenge_id: UUID, now: datetime) -> ChallengeView:
        """Complete an ACTIVE challenge whose end date has passed.

        Completing an already completed challenge writes nothing.
        """
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id)
            completed = state_machine.complete(challenge, now)
            if completed is challenge:
                view, _ = await self._build_view(uow, challenge, now)
                await uow.commit()
                return view

            await self._save_transition(uow, challenge, completed, None)
            view, _ = await self._build_view(uow, completed, now)
            await uow.commit()

        logger.info("challenge_completed", challenge_id=str(challenge_id))
        return view

    async def complete_due_challenges(self, now: datetime) -> list[UUID]:
        """Complete every ACTIVE challenge past its end date.

        Each challenge is completed in its own unit of work, so one failure
        does not hold back the rest of the batch.

        Returns:
            Ids of the challenges completed by this sweep.
        """
        async with self._transaction() as uow:
            due = await uow.challenges.list_due_for_completion(
                now, limit=self.settings.scheduler_batch_size
            )

        completed: list[UUID] = []
        for challenge_id in due:
            try:
                await self.complete(challenge_id, now)
            except (ChallengeNotFoundError, InvalidStateTransitionError) as e:
                # Cancelled or deleted since the batch was read.
                logger.info(
                    "challenge_completion_skipped",
                    challenge_id=str(challenge_id),
                    reason=e.error_type,
                )
                continue
            except TransientError as e:
                logger.warning(
                    "challenge_completion_deferred",
                    challenge_id=str(challenge_id),
                    error=e.message,
                )
                continue
            completed.append(challenge_id)
        return completed

    # ===========================================
    # MEMBERSHIP
    # ===========================================

    async def join(self, challenge_id: UUID, user_id: UUID, now: datetime) -> ChallengeView:
        """Add ``user_id`` to the challenge, consuming their invitation if private."""
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id)
            memberships = await self._memberships(uow, challenge.id)

            invitation = None
            if challenge.is_private:
                row = await uow.invitations.get_pending(challenge.id, user_id)
                invitation = Invitation.model_validate(row) if row is not None else None

            membership = authorize_join(
                challenge, user_id, [m.user_id for m in memberships], now, invitation
            )
            if not await uow.users.exists(user_id):
                raise UserNotFoundError(user_id)

            try:
                await uow.memberships.create(membership)
            except DuplicateEntityError as e:
                raise AlreadyMemberError(challenge.id, user_id) from e

            if invitation is not None:
                await uow.invitations.consume(consume_invitation(invitation, now))

            view, _ = await self._build_view(uow, challenge, now, user_id)
            await uow.commit()

        logger.info(
            "member_joined",
            challenge_id=str(challenge_id),
            user_id=str(user_id),
            invited=invitation is not None,
        )
        return view

    async def invite(
        self,
        challenge_id: UUID,
        actor_id: UUID,
        candidate_id: UUID,
        now: datetime,
    ) -> ChallengeView:
        """Invite a user to a private challenge.

        Inviting someone who already holds a pending invitation returns that
        invitation instead of creating a second one.
        """
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id)
            memberships = await self._memberships(uow, challenge.id)

            invitation = authorize_invite(
                challenge, actor_id, candidate_id, [m.user_id for m in memberships], now
            )
            if not await uow.users.exists(candidate_id):
                raise UserNotFoundError(candidate_id)

            pending = await uow.invitations.get_pending(challenge.id, candidate_id)
            if pending is not None:
                invitation = Invitation.model_validate(pending)
                logger.info(
                    "invitation_already_pending",
                    challenge_id=str(challenge_id),
                    user_id=str(candidate_id),
                )
            else:
                await uow.invitations.create(invitation)
                logger.info(
                    "invitation_created",
                    challenge_id=str(challenge_id),
                    user_id=str(candidate_id),
                    invited_by=str(actor_id),
                )

            view, _ = await self._build_view(uow, challenge, now, actor_id, invitation)
            await uow.commit()
        return view

    # ===========================================
    # SUBMISSIONS
    # ===========================================

    async def record_submission(
        self,
        challenge_id: UUID,
        user_id: UUID,
        now: datetime,
    ) -> SubmissionResponse:
        """Record one accepted submission for a member of an ACTIVE challenge.

        Only submissions between the start and end dates are accepted; a
        challenge activated early takes none before its first day.
        """
        now = ensure_utc(now)
        async with self._transaction() as uow:
            challenge = await self._load(uow, challenge_id)
            if (
                challenge.status != ChallengeStatus.ACTIVE
                or not challenge.start_date <= now < challenge.end_date
            ):
                raise ChallengeNotActiveError(challenge.id, challenge.status)

            memberships = await self._memberships(uow, challenge.id)
            if not any(str(m.user_id) == str(user_id) for m in memberships):
                raise NotAMemberError(challenge.id, user_id)

            await uow.submissions.create(challenge.id, user_id, now)

            day_start = challenge.start_date + day_index(challenge.start_date, now) * ONE_DAY
            day_end = min(day_start + ONE_DAY, challenge.end_date)
            day_count = await uow.submissions.count_for_user(
                challenge.id, user_id, day_start, day_end
            )
            await uow.commit()

        logger.debug(
            "submission_recorded",
            challenge_id=str(challenge_id),
            user_id=str(user_id),
            day_count=day_count,
        )
        return SubmissionResponse(
            challenge_id=challenge.id,
            user_id=user_id,
            submitted_at=now,
            day_count=day_count,
        )


__all__ = [
    "ChallengeService",
]
