"""Domain layer — pure business logic with zero framework dependencies."""

from tender_clearinghouse.domain.authorization import (
    AuthorizationDecision,
    RoleAuthorizer,
    default_authorizer,
)
from tender_clearinghouse.domain.enums import (
    Action,
    EventType,
    PaymentStatus,
    ReviewDecision,
    Role,
    SettlementOutcome,
    TenderStatus,
    VerificationStatus,
)
from tender_clearinghouse.domain.exceptions import (
    AuthorizationError,
    ClearinghouseError,
    CollaboratorUnavailableError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from tender_clearinghouse.domain.models import Credential, PaymentRecord, Principal
from tender_clearinghouse.domain.settlement_protocol import (
    SettlementNotice,
    SettlementNotifier,
    SettlementRail,
    SettlementReceipt,
    SettlementRequest,
)
from tender_clearinghouse.domain.state_machine import (
    PaymentStateMachine,
    TenderStateMachine,
    VerificationStateMachine,
    advance,
    validate_transition,
)

__all__ = [
    "Action",
    "AuthorizationDecision",
    "AuthorizationError",
    "ClearinghouseError",
    "CollaboratorUnavailableError",
    "ConflictError",
    "Credential",
    "EventType",
    "InvalidStateTransitionError",
    "NotFoundError",
    "PaymentRecord",
    "PaymentStateMachine",
    "PaymentStatus",
    "Principal",
    "ReviewDecision",
    "Role",
    "RoleAuthorizer",
    "SettlementNotice",
    "SettlementNotifier",
    "SettlementOutcome",
    "SettlementRail",
    "SettlementReceipt",
    "SettlementRequest",
    "TenderStateMachine",
    "TenderStatus",
    "ValidationError",
    "VerificationStateMachine",
    "VerificationStatus",
    "advance",
    "default_authorizer",
    "validate_transition",
]
