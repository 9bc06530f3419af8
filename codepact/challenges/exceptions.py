"""Custom exceptions for the Challenge engine.

Every business-rule violation is a ``ChallengeServiceError`` subclass with a
stable ``error_type``. They are deterministic: retrying with the same input
and state raises the same error. ``TransientError`` is the only retryable
category and wraps persistence or transport failures.
"""

from uuid import UUID

from fastapi import HTTPException, status

from codepact.shared.schemas.base import ErrorDetail


class ChallengeServiceError(Exception):
    """Base exception for Challenge engine errors."""

    retryable = False

    def __init__(self, message: str, error_type: str = "challenge_service_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class InvalidRangeError(ChallengeServiceError):
    """Raised when a challenge range does not end after it starts."""

    def __init__(self, start_date, end_date):
        super().__init__(
            f"Invalid challenge range: end {end_date.isoformat()} "
            f"must be after start {start_date.isoformat()}",
            "invalid_range",
        )
        self.start_date = start_date
        self.end_date = end_date


class ChallengeNotFoundError(ChallengeServiceError):
    """Raised when a challenge is not found."""

    def __init__(self, challenge_id: str | UUID):
        super().__init__(
            f"Challenge '{challenge_id}' not found",
            "challenge_not_found",
        )
        self.challenge_id = challenge_id


class InvalidStateTransitionError(ChallengeServiceError):
    """Raised when a status transition is not allowed from the current status."""

    def __init__(self, current_status: str, target_status: str, reason: str | None = None):
        message = f"Invalid state transition: '{current_status}' → '{target_status}'"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, "invalid_state_transition")
        self.current_status = current_status
        self.target_status = target_status


class UnauthorizedTransitionError(ChallengeServiceError):
    """Raised when someone other than the owner triggers a transition."""

    def __init__(self, actor_id: str | UUID, target_status: str):
        super().__init__(
            f"User {actor_id} may not move this challenge to '{target_status}'",
            "unauthorized_transition",
        )
        self.actor_id = actor_id
        self.target_status = target_status


class UserNotFoundError(ChallengeServiceError):
    """Raised when an invitation names a user that does not exist."""

    def __init__(self, user_id: str | UUID):
        super().__init__(f"User '{user_id}' not found", "user_not_found")
        self.user_id = user_id


class AlreadyMemberError(ChallengeServiceError):
    """Raised when the user already holds a membership in the challenge."""

    def __init__(self, challenge_id: str | UUID, user_id: str | UUID):
        super().__init__(
            f"User {user_id} is already a member of challenge {challenge_id}",
            "already_member",
        )
        self.challenge_id = challenge_id
        self.user_id = user_id


class InvitationRequiredError(ChallengeServiceError):
    """Raised when joining a private challenge without a usable invitation."""

    def __init__(self, challenge_id: str | UUID, user_id: str | UUID):
        super().__init__(
            f"Challenge {challenge_id} is private; user {user_id} needs an invitation",
            "invitation_required",
        )
        self.challenge_id = challenge_id
        self.user_id = user_id


class ChallengeClosedError(ChallengeServiceError):
    """Raised when acting on a completed or cancelled challenge."""

    def __init__(self, challenge_id: str | UUID, current_status: str):
        current_status = getattr(current_status, "value", current_status)
        super().__init__(
            f"Challenge {challenge_id} is {current_status} and no longer accepts changes",
            "challenge_closed",
        )
        self.challenge_id = challenge_id
        self.current_status = current_status


class UnauthorizedInviteError(ChallengeServiceError):
    """Raised when a non-owner tries to invite."""

    def __init__(self, actor_id: str | UUID):
        super().__init__(
            f"User {actor_id} is not the owner and cannot invite members",
            "unauthorized_invite",
        )
        self.actor_id = actor_id


class ChallengeNotPrivateError(ChallengeServiceError):
    """Raised when inviting to a public challenge."""

    def __init__(self, challenge_id: str | UUID):
        super().__init__(
            f"Challenge {challenge_id} is public; anyone can join without an invitation",
            "challenge_not_private",
        )
        self.challenge_id = challenge_id


class ChallengeNotActiveError(ChallengeServiceError):
    """Raised when submissions are recorded outside the active phase."""

    def __init__(self, challenge_id: str | UUID, current_status: str):
        current_status = getattr(current_status, "value", current_status)
        super().__init__(
            f"Challenge {challenge_id} is not taking submissions (status {current_status})",
            "challenge_not_active",
        )
        self.challenge_id = challenge_id
        self.current_status = current_status


class NotAMemberError(ChallengeServiceError):
    """Raised when a non-member records a submission."""

    def __init__(self, challenge_id: str | UUID, user_id: str | UUID):
        super().__init__(
            f"User {user_id} is not a member of challenge {challenge_id}",
            "not_a_member",
        )
        self.challenge_id = challenge_id
        self.user_id = user_id


class TransientError(ChallengeServiceError):
    """Persistence or transport failure; safe to retry."""

    retryable = True

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message, "transient_error")
        self.original_error = original_error


STATUS_MAP = {
    "invalid_range": 422,
    "challenge_not_found": status.HTTP_404_NOT_FOUND,
    "user_not_found": status.HTTP_404_NOT_FOUND,
    "invalid_state_transition": status.HTTP_409_CONFLICT,
    "unauthorized_transition": status.HTTP_403_FORBIDDEN,
    "already_member": status.HTTP_409_CONFLICT,
    "invitation_required": status.HTTP_403_FORBIDDEN,
    "challenge_closed": status.HTTP_409_CONFLICT,
    "unauthorized_invite": status.HTTP_403_FORBIDDEN,
    "challenge_not_private": status.HTTP_400_BAD_REQUEST,
    "challenge_not_active": status.HTTP_409_CONFLICT,
    "not_a_member": status.HTTP_403_FORBIDDEN,
    "transient_error": status.HTTP_503_SERVICE_UNAVAILABLE,
    "challenge_service_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_http_exception(error: ChallengeServiceError) -> None:
    """Convert ChallengeServiceError to HTTPException."""
    status_code = STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail = ErrorDetail(
        type=f"https://api.codepact.dev/errors/{error.error_type}",
        title=error.error_type.replace("_", " ").title(),
        status=status_code,
        detail=error.message,
    )
    headers = {"Retry-After": "1"} if error.retryable else None

    raise HTTPException(
        status_code=status_code,
        detail=detail.model_dump(exclude_none=True),
        headers=headers,
    ) from error
