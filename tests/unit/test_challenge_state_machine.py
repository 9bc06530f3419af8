"""Unit tests for challenge state machine transitions."""

from uuid import uuid4

import pytest

from codepact.challenges.exceptions import (
    InvalidStateTransitionError,
    UnauthorizedTransitionError,
)
from codepact.challenges.schemas import ChallengeAction, ChallengeStatus
from codepact.challenges.state_machine import (
    activate,
    active_window,
    available_actions,
    can_transition,
    cancel,
    complete,
    record_change,
    validate_transition,
)
from tests.factories.challenge_factory import at, make_challenge, make_status_change

PENDING = ChallengeStatus.PENDING
ACTIVE = ChallengeStatus.ACTIVE
COMPLETED = ChallengeStatus.COMPLETED
CANCELLED = ChallengeStatus.CANCELLED


class TestChallengeCanTransition:
    def test_pending_to_active(self):
        assert can_transition("PENDING", "ACTIVE") is True

    def test_active_to_completed(self):
        assert can_transition(ACTIVE, COMPLETED) is True

    def test_pending_to_completed_invalid(self):
        assert can_transition(PENDING, COMPLETED) is False

    def test_non_terminal_to_cancelled(self):
        for state in [PENDING, ACTIVE]:
            assert can_transition(state, CANCELLED) is True

    def test_terminal_states(self):
        for state in [COMPLETED, CANCELLED]:
            for target in ChallengeStatus:
                assert can_transition(state, target) is False

    def test_no_backward_transitions(self):
        assert can_transition(ACTIVE, PENDING) is False


class TestChallengeValidateTransition:
    def test_valid_passes(self):
        validate_transition(PENDING, ACTIVE)

    def test_invalid_raises(self):
        with pytest.raises(InvalidStateTransitionError, match="Invalid state transition"):
            validate_transition(COMPLETED, ACTIVE)


class TestActivate:
    def test_owner_activates_pending(self):
        challenge = make_challenge()
        activated = activate(challenge, challenge.owner_id, at(0, hours=2))

        assert activated.status == ACTIVE
        assert activated.updated_at == at(0, hours=2)
        assert challenge.status == PENDING

    def test_only_status_and_updated_at_change(self):
        challenge = make_challenge()
        activated = activate(challenge, challenge.owner_id, at(1))

        before = challenge.model_dump(exclude={"status", "updated_at"})
        after = activated.model_dump(exclude={"status", "updated_at"})
        assert before == after

    def test_non_owner_rejected(self):
        challenge = make_challenge()
        with pytest.raises(UnauthorizedTransitionError):
            activate(challenge, uuid4(), at(1))

    def test_actor_checked_before_state(self):
        challenge = make_challenge(status=COMPLETED)
        with pytest.raises(UnauthorizedTransitionError):
            activate(challenge, uuid4(), at(1))

    def test_active_cannot_be_activated_again(self):
        challenge = make_challenge(status=ACTIVE)
        with pytest.raises(InvalidStateTransitionError):
            activate(challenge, challenge.owner_id, at(1))


class TestComplete:
    def test_completes_after_end_date(self):
        challenge = make_challenge(status=ACTIVE)
        completed = complete(challenge, at(10))
        assert completed.status == COMPLETED

    def test_before_end_date_raises(self):
        challenge = make_challenge(status=ACTIVE)
        with pytest.raises(InvalidStateTransitionError, match="runs until"):
            complete(challenge, at(9, hours=23))

    def test_pending_cannot_complete(self):
        challenge = make_challenge()
        with pytest.raises(InvalidStateTransitionError):
            complete(challenge, at(20))

    def test_completing_twice_is_a_no_op(self):
        challenge = make_challenge(status=ACTIVE)
        completed = complete(challenge, at(10))
        again = complete(completed, at(12))

        assert again is completed
        assert again.updated_at == at(10)


class TestCancel:
    def test_owner_cancels_active(self):
        challenge = make_challenge(status=ACTIVE)
        assert cancel(challenge, challenge.owner_id, at(3)).status == CANCELLED

    def test_non_owner_rejected(self):
        challenge = make_challenge()
        with pytest.raises(UnauthorizedTransitionError):
            cancel(challenge, uuid4(), at(3))

    def test_completed_cannot_be_cancelled(self):
        challenge = make_challenge(status=COMPLETED)
        with pytest.raises(InvalidStateTransitionError):
            cancel(challenge, challenge.owner_id, at(3))


class TestRecordChange:
    def test_log_entry(self):
        challenge = make_challenge()
        activated = activate(challenge, challenge.owner_id, at(1))
        change = record_change(challenge, activated, challenge.owner_id)

        assert change.from_status == PENDING
        assert change.to_status == ACTIVE
        assert change.changed_at == at(1)
        assert change.actor_id == challenge.owner_id


class TestActiveWindow:
    def test_never_activated(self):
        assert active_window([], at(4)) == (None, at(4))

    def test_still_active_runs_until_now(self):
        challenge = make_challenge(status=ACTIVE)
        changes = [make_status_change(challenge, PENDING, ACTIVE, at(1))]
        assert active_window(changes, at(4)) == (at(1), at(4))

    def test_cancelled_window_ends_at_cancellation(self):
        challenge = make_challenge(status=CANCELLED)
        changes = [
            make_status_change(challenge, ACTIVE, CANCELLED, at(3)),
            make_status_change(challenge, PENDING, ACTIVE, at(1)),
        ]
        assert active_window(changes, at(8)) == (at(1), at(3))


class TestAvailableActions:
    def test_owner_of_pending_private(self):
        challenge = make_challenge(is_private=True)
        actions = available_actions(challenge, challenge.owner_id, is_member=True)
        assert actions == [ChallengeAction.ACTIVATE, ChallengeAction.INVITE, ChallengeAction.CANCEL]

    def test_visitor_can_join_open_challenge(self):
        challenge = make_challenge(status=ACTIVE)
        assert available_actions(challenge, uuid4()) == [ChallengeAction.JOIN]

    def test_member_of_active_challenge_has_nothing_to_do(self):
        challenge = make_challenge(status=ACTIVE)
        assert available_actions(challenge, uuid4(), is_member=True) == []

    def test_closed_challenge_offers_nothing(self):
        for status in [COMPLETED, CANCELLED]:
            challenge = make_challenge(status=status, is_private=True)
            assert available_actions(challenge, challenge.owner_id, is_member=True) == []

    def test_anonymous_viewer(self):
        assert available_actions(make_challenge(), None) == []
