"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the session
factory, the authenticated principal, the settlement collaborators and the
application services.

The identity gateway in front of this service authenticates callers and
forwards the principal id in the ``X-Principal-Id`` header; the role and
verified flag are read from the users table, never from the request.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: TC002

from tender_clearinghouse.config import Settings, get_settings
from tender_clearinghouse.domain.enums import Role
from tender_clearinghouse.domain.exceptions import AuthenticationError
from tender_clearinghouse.domain.models import Principal
from tender_clearinghouse.domain.settlement_protocol import (  # noqa: TC001
    SettlementNotifier,
    SettlementRail,
)
from tender_clearinghouse.infrastructure.database.engine import get_session_factory, session_scope
from tender_clearinghouse.infrastructure.database.repositories import UserRepository
from tender_clearinghouse.logging_config import bind_principal
from tender_clearinghouse.services import (
    BidLedger,
    ContractorService,
    PaymentProcessor,
    TenderService,
    VerificationGate,
)


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    """Provide the process-wide session factory."""
    return get_session_factory()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_settlement_rail(request: Request) -> SettlementRail:
    """Provide the settlement rail selected at startup."""
    return request.app.state.settlement_rail


def get_notifier(request: Request) -> SettlementNotifier:
    """Provide the settlement notifier selected at startup."""
    return request.app.state.notifier


async def get_current_principal(
    x_principal_id: str | None = Header(default=None, alias="X-Principal-Id"),
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> Principal:
    """Resolve the caller. Unknown or inactive principals are unauthenticated."""
    if not x_principal_id:
        raise AuthenticationError()
    try:
        principal_id = uuid.UUID(x_principal_id)
    except ValueError as err:
        raise AuthenticationError("Malformed principal id") from err

    async with session_scope(factory) as session:
        user = await UserRepository(session).get_by_id(principal_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Unknown or inactive principal")

    principal = Principal(id=user.id, role=Role(user.role), is_verified=user.is_verified)
    bind_principal(str(principal.id), principal.role.value)
    return principal


# --- Services ---


def get_verification_gate(
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: Settings = Depends(get_app_settings),
) -> VerificationGate:
    return VerificationGate(factory, settings=settings)


def get_tender_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: Settings = Depends(get_app_settings),
    notifier: SettlementNotifier = Depends(get_notifier),
) -> TenderService:
    return TenderService(factory, settings=settings, notifier=notifier)


def get_bid_ledger(
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: Settings = Depends(get_app_settings),
) -> BidLedger:
    return BidLedger(factory, settings=settings)


def get_payment_processor(
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: Settings = Depends(get_app_settings),
    rail: SettlementRail = Depends(get_settlement_rail),
    notifier: SettlementNotifier = Depends(get_notifier),
) -> PaymentProcessor:
    return PaymentProcessor(factory, settings=settings, rail=rail, notifier=notifier)


def get_contractor_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: Settings = Depends(get_app_settings),
) -> ContractorService:
    return ContractorService(factory, settings=settings)
