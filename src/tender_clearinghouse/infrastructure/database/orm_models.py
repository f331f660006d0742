"""SQLAlchemy 2.0 ORM models for the Tender Clearinghouse.

Six tables:
    1. users                 — Principals (admins, verifiers, contractors, public).
    2. tenders               — The tender aggregate, payment record embedded as columns.
    3. bids                  — Bids, owned by their tender (no writes outside a tender op).
    4. verification_requests — Contractor credential submissions.
    5. contractor_feedback   — Ratings left by verifiers/admins.
    6. tender_events         — Append-only audit log of tender and payment changes.

Design decisions:
    - UUIDs as primary keys (no sequential leakage of tender counts).
    - Amounts stored as canonical decimal strings (DecimalString).
    - Optimistic concurrency on tenders via version_id; every bid submission
      bumps bid_count so concurrent writers collide on the version check.
    - UNIQUE (tender_id, bidder_id) on bids and a partial unique index on open
      verification requests back the service-level duplicate checks.
    - CHECK constraints on status columns reject invalid values at DB level.
"""

from __future__ import annotations

import uuid
from datetime import datetime  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from tender_clearinghouse.infrastructure.database.types import (
    DecimalString,
    UTCDateTime,
    utcnow,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")

_OPEN_REQUEST_PREDICATE = "status IN ('pending', 'under_review')"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = utcnow()


# ---------------------------------------------------------------------------
# 1. users
# ---------------------------------------------------------------------------
class User(Base):
    """A principal known to the platform.

    Accounts are created by the identity subsystem; the core reads role and
    is_verified, and writes is_verified only through the VerificationGate.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Identity ---
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="contractor")
    organization: Mapped[str | None] = mapped_column(String(200), nullable=True)
    wallet_address: Mapped[str | None] = mapped_column(
        String(42),
        nullable=True,
        comment="External wallet reference used as the payee address",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # --- Verification gate ---
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    verified_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Track record ---
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_projects: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'verifier', 'contractor', 'public')",
            name="ck_user_valid_role",
        ),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_user_rating_bounds"),
        Index("idx_user_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role} verified={self.is_verified}>"


# ---------------------------------------------------------------------------
# 2. tenders
# ---------------------------------------------------------------------------
class Tender(Base):
    """A procurement opportunity and everything embedded in it."""

    __tablename__ = "tenders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Definition ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    budget: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    min_qualification_score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    max_bids: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )

    # --- Lifecycle (guarded by TenderStateMachine) ---
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Open")
    bid_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winning_bid_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        comment="Id of a row in bids belonging to this tender; immutable once set",
    )
    awarded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Payment record (guarded by PaymentStateMachine; NULL status = no record) ---
    payment_amount: Mapped[Decimal | None] = mapped_column(DecimalString, nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    settlement_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # --- Concurrency & timestamps ---
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # --- Relationships ---
    bids: Mapped[list[Bid]] = relationship(
        "Bid",
        back_populates="tender",
        cascade="all, delete-orphan",
        order_by="Bid.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint(
            "status IN ('Open', 'Closed', 'Awarded', 'Cancelled')",
            name="ck_tender_valid_status",
        ),
        CheckConstraint(
            "payment_status IS NULL OR payment_status IN "
            "('Pending', 'Processing', 'Completed', 'Failed')",
            name="ck_tender_valid_payment_status",
        ),
        CheckConstraint(
            "min_qualification_score >= 0 AND min_qualification_score <= 100",
            name="ck_tender_qualification_bounds",
        ),
        CheckConstraint("max_bids >= 1", name="ck_tender_max_bids_positive"),
        CheckConstraint("bid_count >= 0", name="ck_tender_bid_count_non_negative"),
        Index("idx_tender_status", "status"),
        Index("idx_tender_created_at", "created_at"),
        Index("idx_tender_payment_status", "payment_status"),
    )

    def winning_bid(self) -> Bid | None:
        """Return the embedded winning bid, if the tender is awarded."""
        if self.winning_bid_id is None:
            return None
        return next((bid for bid in self.bids if bid.id == self.winning_bid_id), None)

    def __repr__(self) -> str:
        return (
            f"<Tender id={self.id} status={self.status} bids={self.bid_count} "
            f"payment={self.payment_status}>"
        )


# ---------------------------------------------------------------------------
# 3. bids
# ---------------------------------------------------------------------------
class Bid(Base):
    """A contractor's proposal against a tender."""

    __tablename__ = "bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenders.id", ondelete="CASCADE"),
        nullable=False,
    )
    bidder_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Contractor id; kept as a historical reference, not a foreign key",
    )
    bidder_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    amount: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    estimated_duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    proposal: Mapped[str] = mapped_column(Text, nullable=False)
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Zero-based submission order within the tender",
    )
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    tender: Mapped[Tender] = relationship("Tender", back_populates="bids")

    __table_args__ = (
        UniqueConstraint("tender_id", "bidder_id", name="uq_bid_tender_bidder"),
        UniqueConstraint("tender_id", "sequence", name="uq_bid_tender_sequence"),
        CheckConstraint("estimated_duration_days >= 1", name="ck_bid_duration_positive"),
        Index("idx_bid_bidder", "bidder_id"),
    )

    def __repr__(self) -> str:
        return f"<Bid id={self.id} tender={self.tender_id} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 4. verification_requests
# ---------------------------------------------------------------------------
class VerificationRequest(Base):
    """A contractor's credential package awaiting (or after) review."""

    __tablename__ = "verification_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    verifier_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    credentials: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected')",
            name="ck_verification_valid_status",
        ),
        Index("idx_verification_contractor", "contractor_id"),
        Index("idx_verification_submitted_at", "submitted_at"),
        Index(
            "uq_verification_open_per_contractor",
            "contractor_id",
            unique=True,
            sqlite_where=text(_OPEN_REQUEST_PREDICATE),
            postgresql_where=text(_OPEN_REQUEST_PREDICATE),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<VerificationRequest id={self.id} contractor={self.contractor_id} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 5. contractor_feedback
# ---------------------------------------------------------------------------
class ContractorFeedback(Base):
    """A rating left for a contractor by a verifier or admin."""

    __tablename__ = "contractor_feedback"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    feedback: Mapped[str] = mapped_column(Text, nullable=False)
    rated_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    rated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedback_rating_bounds"),
        Index("idx_feedback_contractor", "contractor_id"),
    )


# ---------------------------------------------------------------------------
# 6. tender_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class TenderEvent(Base):
    """Immutable audit record of a tender or payment state change.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "tender_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenders.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor: Mapped[str] = mapped_column(String(64), nullable=False, default="SYSTEM")
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_event_tender", "tender_id"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TenderEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


event.listen(User, "before_update", _set_updated_at)
event.listen(Tender, "before_update", _set_updated_at)
