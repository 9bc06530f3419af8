"""Pydantic v2 schemas for the Challenge engine.

Domain records (``Challenge``, ``Membership``, ``Invitation``,
``StatusChange``) are frozen: engine functions return modified copies and
never mutate what they were given. Request/response models for the REST
surface live at the bottom of the module.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from codepact.shared.schemas.base import BaseSchema, FrozenSchema
from codepact.shared.utils.datetime_utils import ensure_utc


class ChallengeStatus(str, Enum):
    """Lifecycle status of a challenge."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def is_terminal(self) -> bool:
        return self in (ChallengeStatus.COMPLETED, ChallengeStatus.CANCELLED)


class Difficulty(str, Enum):
    """Problem difficulty tags a challenge can be restricted to."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ChallengeAction(str, Enum):
    """User-facing actions whose availability the engine decides."""

    ACTIVATE = "activate"
    CANCEL = "cancel"
    INVITE = "invite"
    JOIN = "join"


# ===========================================
# DOMAIN RECORDS
# ===========================================


class Challenge(FrozenSchema):
    """A time-boxed commitment with a daily submission target and penalty."""

    id: UUID
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    owner_id: UUID
    start_date: datetime
    end_date: datetime
    min_submissions_per_day: int = Field(ge=1)
    penalty_amount: Decimal = Field(ge=0)
    difficulty_filter: list[Difficulty] = Field(default_factory=list)
    is_private: bool = False
    status: ChallengeStatus = ChallengeStatus.PENDING
    created_at: datetime
    updated_at: datetime

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def is_closed(self) -> bool:
        return ChallengeStatus(self.status).is_terminal()

    @property
    def difficulty_label(self) -> str:
        """Comma-separated difficulty tags, or ``Any`` when unrestricted."""
        if not self.difficulty_filter:
            return "Any"
        return ", ".join(str(getattr(d, "value", d)) for d in self.difficulty_filter)


class Membership(FrozenSchema):
    """A user's participation record within a challenge."""

    challenge_id: UUID
    user_id: UUID
    joined_at: datetime
    invited_by: UUID | None = None
    total_penalty: Decimal = Decimal("0")

    @field_validator("joined_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Invitation(FrozenSchema):
    """Owner-issued permission for one user to join a private challenge."""

    id: UUID
    challenge_id: UUID
    user_id: UUID
    invited_by: UUID
    created_at: datetime
    consumed_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.consumed_at is None


class StatusChange(FrozenSchema):
    """One entry of a challenge's append-only transition log."""

    challenge_id: UUID
    from_status: ChallengeStatus
    to_status: ChallengeStatus
    actor_id: UUID | None = None
    changed_at: datetime

    @field_validator("changed_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class UserSummary(BaseSchema):
    """The user fields the engine needs for display."""

    id: UUID
    username: str
    display_name: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.username


# ===========================================
# DERIVED VIEWS
# ===========================================


class ChallengeProgress(BaseSchema):
    """Elapsed/remaining time of a challenge at a given instant."""

    total_days: int
    days_remaining: int
    days_elapsed: int
    progress_percent: int


class LeaderboardEntry(BaseSchema):
    """Single entry in a challenge leaderboard."""

    rank: int
    user_id: UUID
    display_name: str
    total_penalty: Decimal
    missed_days: int
    joined_at: datetime


class ChallengeView(BaseSchema):
    """What every orchestrator operation hands back to the presentation layer."""

    challenge: Challenge
    progress: ChallengeProgress
    leaderboard: list[LeaderboardEntry]
    member_count: int
    difficulty_label: str
    actions: list[ChallengeAction] = Field(default_factory=list)
    invitation: Invitation | None = None


# ===========================================
# REQUESTS / RESPONSES
# ===========================================


class CreateChallengeRequest(BaseSchema):
    """Request to create a new challenge."""

    name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    start_date: datetime
    end_date: datetime
    min_submissions_per_day: int = Field(default=1, ge=1, le=100)
    penalty_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    difficulty_filter: list[Difficulty] = Field(default_factory=list)
    is_private: bool = False

    @field_validator("name", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("difficulty_filter")
    @classmethod
    def _dedupe(cls, value: list[Difficulty]) -> list[Difficulty]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _check_range(self) -> "CreateChallengeRequest":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class InviteRequest(BaseSchema):
    """Request to invite a user to a private challenge."""

    candidate_id: UUID


class SubmissionResponse(BaseSchema):
    """Submission confirmation."""

    challenge_id: UUID
    user_id: UUID
    submitted_at: datetime
    day_count: int
