"""Unit of Work pattern implementation.

Provides transaction management and repository coordination
for atomic operations across multiple repositories.
"""

from __future__ import annotations

from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codepact.challenges.repository import (
    ChallengeRepository,
    InvitationRepository,
    MembershipRepository,
    StatusChangeRepository,
    SubmissionRepository,
    UserRepository,
)
from codepact.repositories.exceptions import TransactionError
from codepact.shared.utils.logging import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """Unit of Work pattern for coordinating repository operations.

    Provides a single transaction boundary for multiple repository operations,
    ensuring atomicity and consistency.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            row = await uow.challenges.get_for_update(challenge_id)
            await uow.memberships.create(membership)
            await uow.commit()

    If an exception occurs, the transaction is automatically rolled back.
    Leaving the block without ``commit()`` also rolls back.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession],
    ) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

        # Repository instances (lazy-loaded)
        self._challenges: ChallengeRepository | None = None
        self._memberships: MembershipRepository | None = None
        self._invitations: InvitationRepository | None = None
        self._status_changes: StatusChangeRepository | None = None
        self._submissions: SubmissionRepository | None = None
        self._users: UserRepository | None = None

    @property
    def session(self) -> AsyncSession:
        """Get the current database session.

        Raises:
            RuntimeError: If the Unit of Work has not been entered
        """
        if self._session is None:
            raise RuntimeError("Unit of Work not started. Use 'async with' context manager.")
        return self._session

    # ===========================================
    # REPOSITORY ACCESSORS (Lazy Loading)
    # ===========================================

    @property
    def challenges(self) -> ChallengeRepository:
        if self._challenges is None:
            self._challenges = ChallengeRepository(self.session)
        return self._challenges

    @property
    def memberships(self) -> MembershipRepository:
        if self._memberships is None:
            self._memberships = MembershipRepository(self.session)
        return self._memberships

    @property
    def invitations(self) -> InvitationRepository:
        if self._invitations is None:
            self._invitations = InvitationRepository(self.session)
        return self._invitations

    @property
    def status_changes(self) -> StatusChangeRepository:
        if self._status_changes is None:
            self._status_changes = StatusChangeRepository(self.session)
        return self._status_changes

    @property
    def submissions(self) -> SubmissionRepository:
        if self._submissions is None:
            self._submissions = SubmissionRepository(self.session)
        return self._submissions

    @property
    def users(self) -> UserRepository:
        if self._users is None:
            self._users = UserRepository(self.session)
        return self._users

    # ===========================================
    # TRANSACTION MANAGEMENT
    # ===========================================

    async def __aenter__(self) -> UnitOfWork:
        self._session = self._session_factory()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._session is None:
            return

        try:
            await self.rollback()
            if exc_type is not None:
                logger.debug("transaction_rolled_back", exception_type=exc_type.__name__)
        finally:
            await self._session.close()
            self._session = None
            self._reset_repositories()

    async def commit(self) -> None:
        """Commit the current transaction.

        Raises:
            TransactionError: If the commit fails
        """
        if self._session is None:
            raise RuntimeError("Unit of Work not started")

        try:
            await self._session.commit()
            logger.debug("transaction_committed")
        except Exception as e:
            await self.rollback()
            raise TransactionError("Failed to commit transaction", original_error=e) from e

    async def rollback(self) -> None:
        """Roll back the current transaction (a no-op after a successful commit)."""
        if self._session is not None:
            await self._session.rollback()

    def _reset_repositories(self) -> None:
        self._challenges = None
        self._memberships = None
        self._invitations = None
        self._status_changes = None
        self._submissions = None
        self._users = None


__all__ = [
    "UnitOfWork",
]
