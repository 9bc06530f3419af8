"""Create challenge engine tables.

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19 00:00:01.000000

Creates: users, challenges, challenge_memberships, challenge_invitations,
challenge_status_changes, challenge_submissions
"""

revision = "20261019_001"
down_revision = None

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, ARRAY


def upgrade() -> None:
    # ── users ──
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )

    # ── challenges ──
    op.create_table(
        "challenges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("owner_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("min_submissions_per_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("penalty_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("difficulty_filter", ARRAY(sa.String), nullable=False, server_default="{}"),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.CheckConstraint("end_date > start_date", name="ck_challenge_date_range"),
        sa.CheckConstraint("min_submissions_per_day >= 1", name="ck_challenge_min_submissions"),
        sa.CheckConstraint("penalty_amount >= 0", name="ck_challenge_penalty_amount"),
        sa.CheckConstraint(
            "status IN ('PENDING','ACTIVE','COMPLETED','CANCELLED')",
            name="ck_challenge_status",
        ),
    )
    op.create_index("idx_challenges_status_end_date", "challenges", ["status", "end_date"])
    op.create_index("idx_challenges_owner", "challenges", ["owner_id"])

    # ── challenge_memberships ──
    op.create_table(
        "challenge_memberships",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("invited_by", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("total_penalty", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_challenge_membership"),
        sa.CheckConstraint("total_penalty >= 0", name="ck_membership_total_penalty"),
    )

    # ── challenge_invitations ──
    op.create_table(
        "challenge_invitations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("invited_by", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_challenge_invitation_pending",
        "challenge_invitations",
        ["challenge_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("consumed_at IS NULL"),
    )

    # ── challenge_status_changes ──
    op.create_table(
        "challenge_status_changes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_status", sa.String(20), nullable=False),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_status_changes_challenge", "challenge_status_changes", ["challenge_id", "changed_at"])

    # ── challenge_submissions ──
    op.create_table(
        "challenge_submissions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_submissions_challenge_user",
        "challenge_submissions",
        ["challenge_id", "user_id", "submitted_at"],
    )


def downgrade() -> None:
    op.drop_table("challenge_submissions")
    op.drop_table("challenge_status_changes")
    op.drop_table("challenge_invitations")
    op.drop_table("challenge_memberships")
    op.drop_table("challenges")
    op.drop_table("users")
