"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
AMOUNT = sa.String(40)
TIMESTAMP = sa.DateTime(timezone=True)
OPEN_REQUEST_PREDICATE = "status IN ('pending', 'under_review')"


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("organization", sa.String(200), nullable=True),
        sa.Column("wallet_address", sa.String(42), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("verified_at", TIMESTAMP, nullable=True),
        sa.Column("verified_by", sa.Uuid(), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("rating", sa.Float(), nullable=False),
        sa.Column("rating_count", sa.Integer(), nullable=False),
        sa.Column("completed_projects", sa.Integer(), nullable=False),
        sa.Column("created_at", TIMESTAMP, nullable=False),
        sa.Column("updated_at", TIMESTAMP, nullable=False),
        sa.CheckConstraint(
            "role IN ('admin', 'verifier', 'contractor', 'public')",
            name="ck_user_valid_role",
        ),
        sa.CheckConstraint("rating >= 0 AND rating <= 5", name="ck_user_rating_bounds"),
    )
    op.create_index("idx_user_role", "users", ["role"])

    op.create_table(
        "tenders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("budget", AMOUNT, nullable=False),
        sa.Column("deadline", TIMESTAMP, nullable=False),
        sa.Column("min_qualification_score", sa.Integer(), nullable=False),
        sa.Column("max_bids", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("bid_count", sa.Integer(), nullable=False),
        sa.Column("winning_bid_id", sa.Uuid(), nullable=True),
        sa.Column("awarded_at", TIMESTAMP, nullable=True),
        sa.Column("payment_amount", AMOUNT, nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=True),
        sa.Column("payment_date", TIMESTAMP, nullable=True),
        sa.Column("settlement_reference", sa.String(128), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", TIMESTAMP, nullable=False),
        sa.Column("updated_at", TIMESTAMP, nullable=False),
        sa.CheckConstraint(
            "status IN ('Open', 'Closed', 'Awarded', 'Cancelled')",
            name="ck_tender_valid_status",
        ),
        sa.CheckConstraint(
            "payment_status IS NULL OR payment_status IN "
            "('Pending', 'Processing', 'Completed', 'Failed')",
            name="ck_tender_valid_payment_status",
        ),
        sa.CheckConstraint(
            "min_qualification_score >= 0 AND min_qualification_score <= 100",
            name="ck_tender_qualification_bounds",
        ),
        sa.CheckConstraint("max_bids >= 1", name="ck_tender_max_bids_positive"),
        sa.CheckConstraint("bid_count >= 0", name="ck_tender_bid_count_non_negative"),
    )
    op.create_index("idx_tender_status", "tenders", ["status"])
    op.create_index("idx_tender_created_at", "tenders", ["created_at"])
    op.create_index("idx_tender_payment_status", "tenders", ["payment_status"])

    op.create_table(
        "bids",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tender_id",
            sa.Uuid(),
            sa.ForeignKey("tenders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("bidder_id", sa.Uuid(), nullable=False),
        sa.Column("bidder_address", sa.String(42), nullable=True),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("estimated_duration_days", sa.Integer(), nullable=False),
        sa.Column("proposal", sa.Text(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("is_winner", sa.Boolean(), nullable=False),
        sa.Column("submitted_at", TIMESTAMP, nullable=False),
        sa.UniqueConstraint("tender_id", "bidder_id", name="uq_bid_tender_bidder"),
        sa.UniqueConstraint("tender_id", "sequence", name="uq_bid_tender_sequence"),
        sa.CheckConstraint("estimated_duration_days >= 1", name="ck_bid_duration_positive"),
    )
    op.create_index("idx_bid_bidder", "bids", ["bidder_id"])

    op.create_table(
        "verification_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "contractor_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "verifier_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("credentials", JSON_TYPE, nullable=False),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("verification_notes", sa.String(1000), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("submitted_at", TIMESTAMP, nullable=False),
        sa.Column("reviewed_at", TIMESTAMP, nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected')",
            name="ck_verification_valid_status",
        ),
    )
    op.create_index("idx_verification_contractor", "verification_requests", ["contractor_id"])
    op.create_index("idx_verification_submitted_at", "verification_requests", ["submitted_at"])
    op.create_index(
        "uq_verification_open_per_contractor",
        "verification_requests",
        ["contractor_id"],
        unique=True,
        sqlite_where=sa.text(OPEN_REQUEST_PREDICATE),
        postgresql_where=sa.text(OPEN_REQUEST_PREDICATE),
    )

    op.create_table(
        "contractor_feedback",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "contractor_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rating", sa.Float(), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=False),
        sa.Column("rated_by", sa.Uuid(), nullable=False),
        sa.Column("rated_at", TIMESTAMP, nullable=False),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedback_rating_bounds"),
    )
    op.create_index("idx_feedback_contractor", "contractor_feedback", ["contractor_id"])

    op.create_table(
        "tender_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tender_id",
            sa.Uuid(),
            sa.ForeignKey("tenders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("old_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("actor", sa.String(64), nullable=False),
        sa.Column("metadata", JSON_TYPE, nullable=True),
        sa.Column("created_at", TIMESTAMP, nullable=False),
    )
    op.create_index("idx_event_tender", "tender_events", ["tender_id"])
    op.create_index("idx_event_type", "tender_events", ["event_type"])
    op.create_index("idx_event_created_at", "tender_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("tender_events")
    op.drop_table("contractor_feedback")
    op.drop_index("uq_verification_open_per_contractor", table_name="verification_requests")
    op.drop_table("verification_requests")
    op.drop_table("bids")
    op.drop_table("tenders")
    op.drop_table("users")
