"""Unit tests for ChallengeService with a mocked unit of work."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from codepact.challenges.exceptions import (
    AlreadyMemberError,
    ChallengeNotActiveError,
    ChallengeNotFoundError,
    InvitationRequiredError,
    NotAMemberError,
    TransientError,
    UnauthorizedInviteError,
    UnauthorizedTransitionError,
    UserNotFoundError,
)
from codepact.challenges.schemas import (
    ChallengeStatus,
    CreateChallengeRequest,
    UserSummary,
)
from codepact.repositories.exceptions import DuplicateEntityError, TransactionError
from tests.factories.challenge_factory import (
    T0,
    at,
    make_challenge,
    make_create_request_data,
    make_invitation,
    make_membership,
    make_status_change,
)


def _stored(mock_uow, challenge, memberships=(), changes=()):
    mock_uow.challenges.get_for_update.return_value = challenge
    mock_uow.challenges.get_by_id.return_value = challenge
    mock_uow.memberships.list_for_challenge.return_value = list(memberships)
    mock_uow.status_changes.list_for_challenge.return_value = list(changes)


class TestGetChallengeWithLeaderboard:
    @pytest.mark.asyncio
    async def test_not_found(self, challenge_service, mock_uow):
        with pytest.raises(ChallengeNotFoundError):
            await challenge_service.get_challenge_with_leaderboard(uuid4(), at(1))

    @pytest.mark.asyncio
    async def test_builds_view_and_reconciles_penalties(self, challenge_service, mock_uow):
        challenge = make_challenge(status=ChallengeStatus.ACTIVE, penalty_amount=Decimal("5"))
        diligent = make_membership(challenge, joined_at=at(-1))
        idle = make_membership(challenge, joined_at=at(-1))
        _stored(
            mock_uow,
            challenge,
            [diligent, idle],
            [make_status_change(challenge, ChallengeStatus.PENDING, ChallengeStatus.ACTIVE, T0)],
        )
        mock_uow.submissions.list_for_challenge.return_value = [
            (diligent.user_id, at(d, hours=9)) for d in range(5)
        ]

        view = await challenge_service.get_challenge_with_leaderboard(
            challenge.id, at(5, hours=12), viewer_id=idle.user_id
        )

        assert view.progress.days_elapsed == 5
        assert view.member_count == 2
        assert [e.user_id for e in view.leaderboard] == [diligent.user_id, idle.user_id]
        assert view.leaderboard[1].total_penalty == Decimal("25")
        assert view.actions == []
        mock_uow.memberships.update_penalty.assert_awaited_once_with(
            challenge.id, idle.user_id, Decimal("25")
        )
        mock_uow.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pending_challenge_accrues_nothing(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge, [make_membership(challenge)])

        view = await challenge_service.get_challenge_with_leaderboard(challenge.id, at(3))

        assert view.leaderboard[0].total_penalty == Decimal("0")
        mock_uow.memberships.update_penalty.assert_not_awaited()
        mock_uow.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_is_transient(self, challenge_service, mock_uow):
        mock_uow.challenges.get_by_id.side_effect = OperationalError(
            "SELECT", {}, Exception("connection refused")
        )
        with pytest.raises(TransientError) as exc_info:
            await challenge_service.get_challenge_with_leaderboard(uuid4(), at(1))
        assert exc_info.value.retryable is True


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_public(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge, [make_membership(challenge, user_id=challenge.owner_id)])
        user_id = uuid4()

        await challenge_service.join(challenge.id, user_id, at(0, hours=2))

        membership = mock_uow.memberships.create.await_args.args[0]
        assert membership.user_id == user_id
        assert membership.joined_at == at(0, hours=2)
        mock_uow.invitations.consume.assert_not_awaited()
        mock_uow.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_member_writes_nothing(self, challenge_service, mock_uow):
        challenge = make_challenge()
        member = make_membership(challenge)
        _stored(mock_uow, challenge, [member])

        with pytest.raises(AlreadyMemberError):
            await challenge_service.join(challenge.id, member.user_id, at(1))

        mock_uow.memberships.create.assert_not_awaited()
        mock_uow.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_surfaces_as_already_member(
        self, challenge_service, mock_uow
    ):
        challenge = make_challenge()
        _stored(mock_uow, challenge)
        mock_uow.memberships.create.side_effect = DuplicateEntityError(
            "ChallengeMembership", "user_id", "x"
        )

        with pytest.raises(AlreadyMemberError):
            await challenge_service.join(challenge.id, uuid4(), at(1))
        mock_uow.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user_cannot_join(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge)
        mock_uow.users.exists.return_value = False
        user_id = uuid4()

        with pytest.raises(UserNotFoundError):
            await challenge_service.join(challenge.id, user_id, at(1))

        mock_uow.users.exists.assert_awaited_once_with(user_id)
        mock_uow.memberships.create.assert_not_awaited()
        mock_uow.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_private_join_consumes_invitation(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        invitation = make_invitation(challenge)
        _stored(mock_uow, challenge)
        mock_uow.invitations.get_pending.return_value = invitation

        await challenge_service.join(challenge.id, invitation.user_id, at(1))

        assert mock_uow.memberships.create.await_args.args[0].invited_by == challenge.owner_id
        consumed = mock_uow.invitations.consume.await_args.args[0]
        assert consumed.id == invitation.id
        assert consumed.consumed_at == at(1)

    @pytest.mark.asyncio
    async def test_private_join_without_invitation(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        _stored(mock_uow, challenge)

        with pytest.raises(InvitationRequiredError):
            await challenge_service.join(challenge.id, uuid4(), at(1))
        mock_uow.memberships.create.assert_not_awaited()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_challenge_adds_owner_as_member(self, challenge_service, mock_uow):
        owner_id = uuid4()
        data = CreateChallengeRequest(**make_create_request_data(is_private=True))

        view = await challenge_service.create_challenge(owner_id, data, at(-1))

        created = mock_uow.challenges.create.await_args.args[0]
        assert created.owner_id == owner_id
        assert created.status == ChallengeStatus.PENDING
        assert created.is_private is True
        owner = mock_uow.memberships.create.await_args.args[0]
        assert owner.user_id == owner_id
        assert owner.challenge_id == created.id
        assert view.difficulty_label == "medium, hard"
        mock_uow.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_activate_records_transition(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge)

        view = await challenge_service.activate(challenge.id, challenge.owner_id, at(0))

        assert view.challenge.status == ChallengeStatus.ACTIVE
        saved = mock_uow.challenges.save_status.await_args.args[0]
        assert saved.status == ChallengeStatus.ACTIVE
        change = mock_uow.status_changes.create.await_args.args[0]
        assert change.to_status == ChallengeStatus.ACTIVE
        assert change.actor_id == challenge.owner_id
        mock_uow.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_activate_by_stranger_writes_nothing(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge)

        with pytest.raises(UnauthorizedTransitionError):
            await challenge_service.activate(challenge.id, uuid4(), at(0))
        mock_uow.challenges.save_status.assert_not_awaited()
        mock_uow.status_changes.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel(self, challenge_service, mock_uow):
        challenge = make_challenge(status=ChallengeStatus.ACTIVE)
        _stored(mock_uow, challenge)

        view = await challenge_service.cancel(challenge.id, challenge.owner_id, at(2))

        assert view.challenge.status == ChallengeStatus.CANCELLED
        assert view.actions == []
        change = mock_uow.status_changes.create.await_args.args[0]
        assert change.from_status == ChallengeStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_complete_is_idempotent(self, challenge_service, mock_uow):
        challenge = make_challenge(status=ChallengeStatus.COMPLETED)
        _stored(mock_uow, challenge)

        view = await challenge_service.complete(challenge.id, at(12))

        assert view.challenge.status == ChallengeStatus.COMPLETED
        mock_uow.challenges.save_status.assert_not_awaited()
        mock_uow.status_changes.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_commit_is_transient(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge)
        mock_uow.commit.side_effect = TransactionError("Failed to commit transaction")

        with pytest.raises(TransientError):
            await challenge_service.activate(challenge.id, challenge.owner_id, at(0))


class TestCompleteDueChallenges:
    @pytest.mark.asyncio
    async def test_completes_due_and_skips_cancelled(self, challenge_service, mock_uow):
        due = make_challenge(status=ChallengeStatus.ACTIVE)
        cancelled = make_challenge(status=ChallengeStatus.CANCELLED)
        rows = {due.id: due, cancelled.id: cancelled}
        mock_uow.challenges.list_due_for_completion.return_value = [due.id, cancelled.id]
        mock_uow.challenges.get_for_update.side_effect = lambda challenge_id: rows[challenge_id]

        completed = await challenge_service.complete_due_challenges(at(10))

        assert completed == [due.id]
        saved = mock_uow.challenges.save_status.await_args.args[0]
        assert saved.id == due.id
        assert saved.status == ChallengeStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_store_failure_defers_only_that_challenge(self, challenge_service, mock_uow):
        flaky = make_challenge(status=ChallengeStatus.ACTIVE)
        due = make_challenge(status=ChallengeStatus.ACTIVE)
        mock_uow.challenges.list_due_for_completion.return_value = [flaky.id, due.id]

        def load(challenge_id):
            if challenge_id == flaky.id:
                raise OperationalError("SELECT ... FOR UPDATE", {}, Exception("lock timeout"))
            return due

        mock_uow.challenges.get_for_update.side_effect = load

        completed = await challenge_service.complete_due_challenges(at(10))

        assert completed == [due.id]
        mock_uow.challenges.save_status.assert_awaited_once()
        assert mock_uow.challenges.save_status.await_args.args[0].id == due.id


class TestInvite:
    @pytest.mark.asyncio
    async def test_owner_invites(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        _stored(mock_uow, challenge, [make_membership(challenge, user_id=challenge.owner_id)])
        candidate = uuid4()

        view = await challenge_service.invite(challenge.id, challenge.owner_id, candidate, at(0))

        created = mock_uow.invitations.create.await_args.args[0]
        assert created.user_id == candidate
        assert view.invitation == created
        mock_uow.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reinvite_returns_pending_invitation(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        pending = make_invitation(challenge)
        _stored(mock_uow, challenge)
        mock_uow.invitations.get_pending.return_value = pending

        view = await challenge_service.invite(
            challenge.id, challenge.owner_id, pending.user_id, at(1)
        )

        assert view.invitation.id == pending.id
        mock_uow.invitations.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inviting_a_member_creates_nothing(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        member = make_membership(challenge)
        _stored(mock_uow, challenge, [member])

        with pytest.raises(AlreadyMemberError):
            await challenge_service.invite(challenge.id, challenge.owner_id, member.user_id, at(1))
        mock_uow.invitations.create.assert_not_awaited()
        mock_uow.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        _stored(mock_uow, challenge)
        mock_uow.users.exists.return_value = False

        with pytest.raises(UserNotFoundError):
            await challenge_service.invite(challenge.id, challenge.owner_id, uuid4(), at(1))


class TestListInviteCandidates:
    @pytest.mark.asyncio
    async def test_members_filtered_and_limited(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        owner = make_membership(challenge, user_id=challenge.owner_id)
        _stored(mock_uow, challenge, [owner])
        users = [UserSummary(id=challenge.owner_id, username="owner")] + [
            UserSummary(id=uuid4(), username=f"user{i}") for i in range(3)
        ]
        mock_uow.users.search.return_value = users

        candidates = await challenge_service.list_invite_candidates(
            challenge.id, challenge.owner_id, search="user", limit=2
        )

        assert [c.username for c in candidates] == ["user0", "user1"]
        mock_uow.users.search.assert_awaited_once_with("user", 3)

    @pytest.mark.asyncio
    async def test_only_owner(self, challenge_service, mock_uow):
        challenge = make_challenge(is_private=True)
        _stored(mock_uow, challenge)

        with pytest.raises(UnauthorizedInviteError):
            await challenge_service.list_invite_candidates(challenge.id, uuid4())


class TestRecordSubmission:
    @pytest.mark.asyncio
    async def test_member_of_active_challenge(self, challenge_service, mock_uow):
        challenge = make_challenge(status=ChallengeStatus.ACTIVE)
        member = make_membership(challenge)
        _stored(mock_uow, challenge, [member])
        mock_uow.submissions.count_for_user.return_value = 2

        result = await challenge_service.record_submission(
            challenge.id, member.user_id, at(3, hours=7)
        )

        assert result.day_count == 2
        mock_uow.submissions.create.assert_awaited_once_with(
            challenge.id, member.user_id, at(3, hours=7)
        )
        mock_uow.submissions.count_for_user.assert_awaited_once_with(
            challenge.id, member.user_id, at(3), at(4)
        )
        mock_uow.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pending_challenge_rejected(self, challenge_service, mock_uow):
        challenge = make_challenge()
        _stored(mock_uow, challenge, [make_membership(challenge)])

        with pytest.raises(ChallengeNotActiveError):
            await challenge_service.record_submission(challenge.id, uuid4(), at(1))
        mock_uow.submissions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_member_rejected(self, challenge_service, mock_uow):
        challenge = make_challenge(status=ChallengeStatus.ACTIVE)
        _stored(mock_uow, challenge)

        with pytest.raises(NotAMemberError):
            await challenge_service.record_submission(challenge.id, uuid4(), at(1))
        mock_uow.submissions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_before_start_date_rejected(self, challenge_service, mock_uow):
        challenge = make_challenge(status=ChallengeStatus.ACTIVE)
        member = make_membership(challenge)
        _stored(mock_uow, challenge, [member])

        with pytest.raises(ChallengeNotActiveError):
            await challenge_service.record_submission(
                challenge.id, member.user_id, at(0, hours=-3)
            )
        mock_uow.submissions.create.assert_not_awaited()
