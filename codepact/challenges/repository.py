"""Repository layer for Challenge database operations.

Repositories accept and return ORM rows; the service converts rows into
the frozen domain schemas before handing them to the engine.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from codepact.infrastructure.database.models import (
    Challenge,
    ChallengeInvitation,
    ChallengeMembership,
    ChallengeStatusChange,
    ChallengeSubmission,
    User,
)
from codepact.repositories.exceptions import DuplicateEntityError
from codepact.shared.utils.logging import get_logger

from .schemas import Challenge as ChallengeRecord
from .schemas import Invitation, Membership, StatusChange

logger = get_logger(__name__)

MEMBERSHIP_UNIQUE_CONSTRAINT = "uq_challenge_membership"


class ChallengeRepository:
    """Repository for challenge rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, challenge: ChallengeRecord) -> Challenge:
        row = Challenge(**challenge.model_dump())
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_by_id(self, challenge_id: str | UUID) -> Challenge | None:
        result = await self.session.execute(
            select(Challenge).where(Challenge.id == challenge_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, challenge_id: str | UUID) -> Challenge | None:
        """Load a challenge and hold its row lock until the transaction ends.

        Every mutating operation goes through here, which serializes joins,
        invitations and transitions per challenge.
        """
        result = await self.session.execute(
            select(Challenge).where(Challenge.id == challenge_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def save_status(self, challenge: ChallengeRecord) -> None:
        await self.session.execute(
            update(Challenge)
            .where(Challenge.id == challenge.id)
            .values(status=challenge.status, updated_at=challenge.updated_at)
        )
        await self.session.flush()

    async def list_due_for_completion(self, now: datetime, limit: int = 100) -> list[UUID]:
        """Ids of active challenges whose end date has passed."""
        result = await self.session.execute(
            select(Challenge.id)
            .where(Challenge.status == "ACTIVE", Challenge.end_date <= now)
            .order_by(Challenge.end_date)
            .limit(limit)
        )
        return list(result.scalars().all())


class MembershipRepository:
    """Repository for challenge memberships."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_challenge(self, challenge_id: str | UUID) -> list[ChallengeMembership]:
        result = await self.session.execute(
            select(ChallengeMembership)
            .where(ChallengeMembership.challenge_id == challenge_id)
            .order_by(ChallengeMembership.joined_at)
        )
        return list(result.scalars().all())

    async def create(self, membership: Membership) -> ChallengeMembership:
        row = ChallengeMembership(**membership.model_dump())
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            if MEMBERSHIP_UNIQUE_CONSTRAINT not in str(e.orig):
                raise
            logger.warning(
                "duplicate_membership_rejected",
                challenge_id=str(membership.challenge_id),
                user_id=str(membership.user_id),
            )
            raise DuplicateEntityError(
                "ChallengeMembership", "user_id", str(membership.user_id)
            ) from e
        return row

    async def update_penalty(
        self,
        challenge_id: str | UUID,
        user_id: str | UUID,
        total_penalty: Decimal,
    ) -> None:
        await self.session.execute(
            update(ChallengeMembership)
            .where(
                ChallengeMembership.challenge_id == challenge_id,
                ChallengeMembership.user_id == user_id,
            )
            .values(total_penalty=total_penalty)
        )


class InvitationRepository:
    """Repository for private-challenge invitations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_pending(
        self,
        challenge_id: str | UUID,
        user_id: str | UUID,
    ) -> ChallengeInvitation | None:
        result = await self.session.execute(
            select(ChallengeInvitation).where(
                ChallengeInvitation.challenge_id == challenge_id,
                ChallengeInvitation.user_id == user_id,
                ChallengeInvitation.consumed_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def create(self, invitation: Invitation) -> ChallengeInvitation:
        row = ChallengeInvitation(**invitation.model_dump())
        self.session.add(row)
        await self.session.flush()
        return row

    async def consume(self, invitation: Invitation) -> None:
        await self.session.execute(
            update(ChallengeInvitation)
            .where(ChallengeInvitation.id == invitation.id)
            .values(consumed_at=invitation.consumed_at)
        )


class StatusChangeRepository:
    """Repository for the challenge transition log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, change: StatusChange) -> ChallengeStatusChange:
        row = ChallengeStatusChange(**change.model_dump())
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_challenge(self, challenge_id: str | UUID) -> list[ChallengeStatusChange]:
        result = await self.session.execute(
            select(ChallengeStatusChange)
            .where(ChallengeStatusChange.challenge_id == challenge_id)
            .order_by(ChallengeStatusChange.changed_at)
        )
        return list(result.scalars().all())


class SubmissionRepository:
    """Repository for member submissions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        challenge_id: str | UUID,
        user_id: str | UUID,
        submitted_at: datetime,
    ) -> ChallengeSubmission:
        row = ChallengeSubmission(
            challenge_id=challenge_id,
            user_id=user_id,
            submitted_at=submitted_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_challenge(
        self,
        challenge_id: str | UUID,
        start: datetime,
        end: datetime,
    ) -> list[tuple[UUID, datetime]]:
        """``(user_id, submitted_at)`` pairs in ``[start, end)``."""
        result = await self.session.execute(
            select(ChallengeSubmission.user_id, ChallengeSubmission.submitted_at).where(
                ChallengeSubmission.challenge_id == challenge_id,
                ChallengeSubmission.submitted_at >= start,
                ChallengeSubmission.submitted_at < end,
            )
        )
        return [(row.user_id, row.submitted_at) for row in result.all()]

    async def count_for_user(
        self,
        challenge_id: str | UUID,
        user_id: str | UUID,
        start: datetime,
        end: datetime,
    ) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(ChallengeSubmission)
            .where(
                ChallengeSubmission.challenge_id == challenge_id,
                ChallengeSubmission.user_id == user_id,
                ChallengeSubmission.submitted_at >= start,
                ChallengeSubmission.submitted_at < end,
            )
        )
        return result.scalar_one()


class UserRepository:
    """Read-only access to user names."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, user_id: str | UUID) -> bool:
        result = await self.session.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None

    async def display_names(self, user_ids: list[UUID]) -> dict[UUID, str]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(User.id, User.username, User.display_name).where(User.id.in_(user_ids))
        )
        return {row.id: row.display_name or row.username for row in result.all()}

    async def search(self, search: str | None = None, limit: int = 20) -> list[User]:
        query = select(User)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(User.username.ilike(pattern), User.display_name.ilike(pattern)))
        query = query.order_by(User.username).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
