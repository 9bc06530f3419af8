"""SQLAlchemy ORM models for the challenge database."""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    ARRAY,
    DECIMAL,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        list[str]: ARRAY(String),
    }


# ===========================================
# USERS
# ===========================================


class User(Base):
    """Account the challenge engine reads names from; owned by the auth service."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ===========================================
# CHALLENGE TABLES
# ===========================================


class Challenge(Base):
    """A time-boxed daily-submission commitment."""

    __tablename__ = "challenges"

    id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    min_submissions_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    penalty_amount: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False, default=0)
    difficulty_filter: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_challenge_date_range"),
        CheckConstraint("min_submissions_per_day >= 1", name="ck_challenge_min_submissions"),
        CheckConstraint("penalty_amount >= 0", name="ck_challenge_penalty_amount"),
        CheckConstraint(
            "status IN ('PENDING','ACTIVE','COMPLETED','CANCELLED')",
            name="ck_challenge_status",
        ),
        Index("idx_challenges_status_end_date", "status", "end_date"),
        Index("idx_challenges_owner", "owner_id"),
    )


class ChallengeMembership(Base):
    """A user's participation in a challenge."""

    __tablename__ = "challenge_memberships"

    id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    invited_by: Mapped[UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    total_penalty: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_membership"),
        CheckConstraint("total_penalty >= 0", name="ck_membership_total_penalty"),
    )


class ChallengeInvitation(Base):
    """Owner-issued invitation to a private challenge."""

    __tablename__ = "challenge_invitations"

    id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    invited_by: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "uq_challenge_invitation_pending",
            "challenge_id",
            "user_id",
            unique=True,
            postgresql_where=text("consumed_at IS NULL"),
        ),
    )


class ChallengeStatusChange(Base):
    """Append-only log of challenge status transitions."""

    __tablename__ = "challenge_status_changes"

    id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    from_status: Mapped[str] = mapped_column(String(20), nullable=False)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_status_changes_challenge", "challenge_id", "changed_at"),
    )


class ChallengeSubmission(Base):
    """One accepted solution submission by a member."""

    __tablename__ = "challenge_submissions"

    id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_submissions_challenge_user", "challenge_id", "user_id", "submitted_at"),
    )
