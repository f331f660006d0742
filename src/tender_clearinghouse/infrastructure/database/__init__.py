"""Database infrastructure — engine, ORM models, and repositories."""

from tender_clearinghouse.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_schema,
    get_session_factory,
    init_db,
    session_scope,
)
from tender_clearinghouse.infrastructure.database.orm_models import (
    Base,
    Bid,
    ContractorFeedback,
    Tender,
    TenderEvent,
    User,
    VerificationRequest,
)
from tender_clearinghouse.infrastructure.database.repositories import (
    BidRepository,
    EventRepository,
    TenderRepository,
    UserRepository,
    VerificationRepository,
)

__all__ = [
    "Base",
    "Bid",
    "BidRepository",
    "ContractorFeedback",
    "EventRepository",
    "Tender",
    "TenderEvent",
    "TenderRepository",
    "User",
    "UserRepository",
    "VerificationRepository",
    "VerificationRequest",
    "build_engine",
    "build_session_factory",
    "close_db",
    "create_schema",
    "get_session_factory",
    "init_db",
    "session_scope",
]
