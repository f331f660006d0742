"""Domain exceptions for the Tender Clearinghouse.

These exceptions are framework-agnostic and represent business rule outcomes.
They are caught and translated to HTTP responses by the API layer's middleware.

Every exception carries a stable ``code`` (machine readable), a human-readable
``message`` and a ``kind`` from the error taxonomy:

    validation      malformed or missing input, correctable by the caller
    authentication  no principal could be established
    authorization   role or ownership mismatch
    not_found       unknown id
    conflict        business-rule outcome (duplicate bid, already awarded, ...)
    unavailable     a collaborator (database, settlement rail) is unreachable
"""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


class ClearinghouseError(Exception):
    """Base exception for all domain errors."""

    kind: ErrorKind = ErrorKind.CONFLICT
    retryable: bool = False

    def __init__(self, message: str, code: str = "CLEARINGHOUSE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize for API error bodies."""
        return {
            "error": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }


# --- Taxonomy roots ---


class ValidationError(ClearinghouseError):
    """Raised when input is malformed or missing."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class AuthenticationError(ClearinghouseError):
    """Raised when the request carries no usable principal."""

    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message=message, code="AUTHENTICATION_REQUIRED")


class AuthorizationError(ClearinghouseError):
    """Raised when the principal's role or ownership does not permit an action.

    Raised before any lookup of the target resource, so a caller without
    permission cannot tell whether the resource exists.
    """

    kind = ErrorKind.AUTHORIZATION

    def __init__(
        self,
        message: str = "Access denied. Insufficient permissions.",
        code: str = "ACCESS_DENIED",
    ) -> None:
        super().__init__(message=message, code=code)


class NotFoundError(ClearinghouseError):
    """Raised when an id does not resolve to a stored aggregate."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code)


class ConflictError(ClearinghouseError):
    """Raised when a business rule rejects an otherwise well-formed request."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, code: str = "CONFLICT") -> None:
        super().__init__(message=message, code=code)


class CollaboratorUnavailableError(ClearinghouseError):
    """Raised when a collaborator the operation depends on is unreachable."""

    kind = ErrorKind.UNAVAILABLE
    retryable = True

    def __init__(self, message: str, code: str = "COLLABORATOR_UNAVAILABLE") -> None:
        super().__init__(message=message, code=code)


# --- Authorization ---


class NotVerifiedError(AuthorizationError):
    """Raised when an unverified contractor tries to bid."""

    def __init__(self, contractor_id: str) -> None:
        super().__init__(
            message="Only verified contractors can submit bids",
            code="NOT_VERIFIED",
        )
        self.contractor_id = contractor_id


# --- Not found ---


class TenderNotFoundError(NotFoundError):
    def __init__(self, tender_id: str) -> None:
        super().__init__(message=f"Tender not found: {tender_id}", code="TENDER_NOT_FOUND")
        self.tender_id = tender_id


class BidNotFoundError(NotFoundError):
    def __init__(self, bid_id: str) -> None:
        super().__init__(message=f"Bid not found: {bid_id}", code="BID_NOT_FOUND")
        self.bid_id = bid_id


class ContractorNotFoundError(NotFoundError):
    def __init__(self, contractor_id: str) -> None:
        super().__init__(
            message=f"Contractor not found: {contractor_id}",
            code="CONTRACTOR_NOT_FOUND",
        )
        self.contractor_id = contractor_id


class VerificationRequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str) -> None:
        super().__init__(
            message=f"Verification request not found: {request_id}",
            code="VERIFICATION_REQUEST_NOT_FOUND",
        )
        self.request_id = request_id


# --- State machine ---


class InvalidStateTransitionError(ConflictError):
    """Raised when an attempted state transition is not allowed.

    Example: Awarded -> Open (awards are irreversible).
    """

    def __init__(self, current_state: str | None, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


# --- Bidding ---


class TenderNotOpenError(ConflictError):
    def __init__(self, tender_id: str, status: str) -> None:
        super().__init__(
            message=f"Tender is not open for bidding (status: {status})",
            code="TENDER_NOT_OPEN",
        )
        self.tender_id = tender_id
        self.status = status


class DuplicateBidError(ConflictError):
    def __init__(self, tender_id: str, contractor_id: str) -> None:
        super().__init__(
            message="You have already submitted a bid for this tender",
            code="DUPLICATE_BID",
        )
        self.tender_id = tender_id
        self.contractor_id = contractor_id


class BidTooLowError(ConflictError):
    def __init__(self, amount: str, minimum: str) -> None:
        super().__init__(
            message=f"Bid amount must be at least {minimum}; received {amount}",
            code="BID_TOO_LOW",
        )
        self.amount = amount
        self.minimum = minimum


class MaxBidsReachedError(ConflictError):
    def __init__(self, tender_id: str, max_bids: int) -> None:
        super().__init__(
            message=f"Tender has reached its maximum of {max_bids} bids",
            code="MAX_BIDS_REACHED",
        )
        self.tender_id = tender_id
        self.max_bids = max_bids


class BiddingDeadlinePassedError(ConflictError):
    def __init__(self, tender_id: str) -> None:
        super().__init__(
            message="Tender deadline has passed",
            code="BIDDING_DEADLINE_PASSED",
        )
        self.tender_id = tender_id


# --- Award & payment ---


class AlreadyAwardedError(ConflictError):
    def __init__(self, tender_id: str, status: str) -> None:
        super().__init__(
            message=f"Tender cannot be awarded (status: {status})",
            code="ALREADY_AWARDED",
        )
        self.tender_id = tender_id
        self.status = status


class TenderNotAwardedError(ConflictError):
    def __init__(self, tender_id: str) -> None:
        super().__init__(
            message="Tender must be awarded before its payment can be handled",
            code="TENDER_NOT_AWARDED",
        )
        self.tender_id = tender_id


class NoPaymentRecordError(ConflictError):
    def __init__(self, tender_id: str) -> None:
        super().__init__(
            message="Tender has no payment record",
            code="NO_PAYMENT_RECORD",
        )
        self.tender_id = tender_id


class AlreadyProcessedError(ConflictError):
    def __init__(self, tender_id: str) -> None:
        super().__init__(message="Payment already processed", code="ALREADY_PROCESSED")
        self.tender_id = tender_id


class PaymentNotInFlightError(ConflictError):
    """Raised when reconciling a payment that is not awaiting confirmation."""

    def __init__(
        self,
        tender_id: str,
        status: str | None,
        settlement_reference: str | None = None,
    ) -> None:
        if status == "Processing" and not settlement_reference:
            message = "Payment is Processing but has no settlement reference to reconcile"
        else:
            message = f"Payment is not awaiting settlement (status: {status})"
        super().__init__(message=message, code="PAYMENT_NOT_IN_FLIGHT")
        self.tender_id = tender_id


# --- Verification ---


class DuplicatePendingRequestError(ConflictError):
    def __init__(self, contractor_id: str) -> None:
        super().__init__(
            message="You already have a pending verification request",
            code="DUPLICATE_PENDING_REQUEST",
        )
        self.contractor_id = contractor_id


# --- Concurrency ---


class ConcurrentUpdateError(ConflictError):
    """Raised when optimistic-concurrency retries are exhausted."""

    retryable = True

    def __init__(self, aggregate: str) -> None:
        super().__init__(
            message=f"{aggregate} was modified concurrently; retry the request",
            code="CONCURRENT_UPDATE",
        )


# --- Collaborators and settlement ---


class PersistenceUnavailableError(CollaboratorUnavailableError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            message=f"Data store unavailable: {detail}",
            code="PERSISTENCE_UNAVAILABLE",
        )


class SettlementFailedError(ConflictError):
    """Raised when the settlement rail rejected or failed a transfer.

    The payment record has already been moved to Failed when this is raised,
    so it is a business outcome (409) and not retryable through process().
    """

    def __init__(self, message: str, settlement_reference: str | None = None) -> None:
        super().__init__(message=message, code="SETTLEMENT_FAILED")
        self.settlement_reference = settlement_reference


class SettlementRailError(Exception):
    """Raised by settlement rails; translated by the PaymentProcessor."""

    def __init__(self, message: str, settlement_reference: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.settlement_reference = settlement_reference
