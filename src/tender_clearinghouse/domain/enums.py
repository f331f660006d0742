"""Domain enumerations for the Tender Clearinghouse.

These enums define the canonical states, roles and actions used throughout
the system. They are framework-agnostic (no SQLAlchemy, no FastAPI imports).

Status values are persisted verbatim, so their spelling is part of the
storage layout: tender and payment statuses are capitalised, verification
statuses are lower-case.
"""

import enum


class TenderStatus(enum.StrEnum):
    """Lifecycle states of a tender.

    Transitions are enforced by TenderStateMachine (domain/state_machine.py).
    Awarded and Cancelled are final; Closed may be reopened.
    """

    OPEN = "Open"
    CLOSED = "Closed"
    AWARDED = "Awarded"
    CANCELLED = "Cancelled"


class PaymentStatus(enum.StrEnum):
    """States of the payment record embedded in an awarded tender.

    A tender without a payment record stores NULL, which is distinct from
    PENDING ("owed but not yet attempted").
    """

    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class VerificationStatus(enum.StrEnum):
    """States of a contractor verification request."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def open_states(cls) -> tuple["VerificationStatus", ...]:
        """States that count as an outstanding request for a contractor."""
        return (cls.PENDING, cls.UNDER_REVIEW)


class ReviewDecision(enum.StrEnum):
    """Outcome chosen by a verifier when reviewing a request."""

    APPROVE = "approve"
    REJECT = "reject"


class Role(enum.StrEnum):
    """Roles an authenticated principal can hold."""

    ADMIN = "admin"
    VERIFIER = "verifier"
    CONTRACTOR = "contractor"
    PUBLIC = "public"


class Action(enum.StrEnum):
    """Operations gated by the RoleAuthorizer permission table."""

    # Tenders
    CREATE_TENDER = "create_tender"
    LIST_OPEN_TENDERS = "list_open_tenders"
    VIEW_TENDER = "view_tender"
    AWARD_TENDER = "award_tender"
    CLOSE_TENDER = "close_tender"
    REOPEN_TENDER = "reopen_tender"
    CANCEL_TENDER = "cancel_tender"
    VIEW_TENDER_EVENTS = "view_tender_events"

    # Bids
    SUBMIT_BID = "submit_bid"
    LIST_BIDS = "list_bids"
    LIST_CONTRACTOR_BIDS = "list_contractor_bids"

    # Payments
    PROCESS_PAYMENT = "process_payment"
    RECONCILE_PAYMENT = "reconcile_payment"
    CLEAR_PAYMENT_HISTORY = "clear_payment_history"
    LIST_ALL_PAYMENTS = "list_all_payments"
    LIST_CONTRACTOR_PAYMENTS = "list_contractor_payments"

    # Verification
    SUBMIT_VERIFICATION_REQUEST = "submit_verification_request"
    VIEW_OWN_VERIFICATION_REQUEST = "view_own_verification_request"
    LIST_VERIFICATION_REQUESTS = "list_verification_requests"
    REVIEW_VERIFICATION_REQUEST = "review_verification_request"
    SET_VERIFICATION_STATUS = "set_verification_status"

    # Contractor directory
    LIST_CONTRACTORS = "list_contractors"
    VIEW_VERIFICATION_OVERVIEW = "view_verification_overview"
    VIEW_CONTRACTOR = "view_contractor"
    UPDATE_CONTRACTOR = "update_contractor"
    DELETE_CONTRACTOR = "delete_contractor"
    RATE_CONTRACTOR = "rate_contractor"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the tender_events table.

    Every tender or payment state change produces exactly one event.
    """

    # Tender lifecycle
    TENDER_CREATED = "TENDER_CREATED"
    BID_SUBMITTED = "BID_SUBMITTED"
    TENDER_AWARDED = "TENDER_AWARDED"
    TENDER_CLOSED = "TENDER_CLOSED"
    TENDER_REOPENED = "TENDER_REOPENED"
    TENDER_CANCELLED = "TENDER_CANCELLED"

    # Payment
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_HISTORY_CLEARED = "PAYMENT_HISTORY_CLEARED"


class SettlementOutcome(enum.StrEnum):
    """Status reported by a settlement rail for a submitted transfer."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
