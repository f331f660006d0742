"""State machine guards for tenders, payments and verification requests.

Uses python-statemachine to enforce legal state transitions at the domain
level. Whatever the API or a background job asks for, an illegal transition
(e.g. Awarded -> Open) raises before any column is written.

A machine is instantiated per aggregate at its persisted status, the event is
fired, and only then is the new status copied onto the ORM row.

Tender transition table:
    Open      -> Awarded     (award_bid)
    Open      -> Closed      (close_bidding)
    Closed    -> Open        (reopen_bidding)
    Open      -> Cancelled   (cancel_tender)
    Closed    -> Cancelled   (cancel_tender)

Payment transition table:
    Pending    -> Processing (begin_settlement)
    Processing -> Completed  (confirm_settlement)
    Processing -> Failed     (fail_settlement)

Verification transition table:
    pending      -> under_review (begin_review)
    pending      -> approved     (approve)
    under_review -> approved     (approve)
    pending      -> rejected     (reject)
    under_review -> rejected     (reject)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from tender_clearinghouse.domain.exceptions import InvalidStateTransitionError


class _PersistedStatusMixin:
    """Start a machine from a persisted status string instead of its initial state."""

    def __init__(self, current_status: str | None = None) -> None:
        if current_status is None:
            current_status = next(s.value for s in self.states if s.initial)
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        # 2.4+ exposes the identifier as ``id`` and a humanised ``name``
        return [getattr(event, "id", None) or event.name for event in self.allowed_events]


class TenderStateMachine(_PersistedStatusMixin, StateMachine):
    """Guards the tender lifecycle.

    Usage:
        sm = TenderStateMachine("Open")
        sm.award_bid()
        sm.status  # "Awarded"
    """

    # --- States ---
    OPEN = State("Open", value="Open", initial=True)
    CLOSED = State("Closed", value="Closed")
    AWARDED = State("Awarded", value="Awarded", final=True)
    CANCELLED = State("Cancelled", value="Cancelled", final=True)

    # --- Events / Transitions ---
    award_bid = OPEN.to(AWARDED)
    close_bidding = OPEN.to(CLOSED)
    reopen_bidding = CLOSED.to(OPEN)
    cancel_tender = OPEN.to(CANCELLED) | CLOSED.to(CANCELLED)


class PaymentStateMachine(_PersistedStatusMixin, StateMachine):
    """Guards the payment record of an awarded tender.

    Status only moves forward. Completed and Failed are final; the only way
    out of them is clearing the payment history, which deletes the record
    rather than transitioning it.
    """

    PENDING = State("Pending", value="Pending", initial=True)
    PROCESSING = State("Processing", value="Processing")
    COMPLETED = State("Completed", value="Completed", final=True)
    FAILED = State("Failed", value="Failed", final=True)

    begin_settlement = PENDING.to(PROCESSING)
    confirm_settlement = PROCESSING.to(COMPLETED)
    fail_settlement = PROCESSING.to(FAILED)


class VerificationStateMachine(_PersistedStatusMixin, StateMachine):
    """Guards a contractor's verification request.

    A request is decided exactly once: approved and rejected are final.
    """

    PENDING = State("pending", value="pending", initial=True)
    UNDER_REVIEW = State("under_review", value="under_review")
    APPROVED = State("approved", value="approved", final=True)
    REJECTED = State("rejected", value="rejected", final=True)

    begin_review = PENDING.to(UNDER_REVIEW)
    approve = PENDING.to(APPROVED) | UNDER_REVIEW.to(APPROVED)
    reject = PENDING.to(REJECTED) | UNDER_REVIEW.to(REJECTED)


def validate_transition(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine at ``current_status``, fires the named
    event, and returns the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = machine_cls(current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status


def advance(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Fire ``event_name`` from ``current_status``, raising a domain error if illegal."""
    try:
        return validate_transition(machine_cls, current_status, event_name)
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
