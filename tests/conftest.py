"""Shared test fixtures for the Tender Clearinghouse test suite.

Provides:
    - A throwaway SQLite database per test (file-backed, so concurrent
      sessions see each other's commits)
    - The five services wired to that database with their own lock registry
    - Factory fixtures for principals and tenders
    - Async test support via pytest-asyncio (auto mode)
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from tender_clearinghouse.config import Settings
from tender_clearinghouse.domain.enums import Role
from tender_clearinghouse.domain.models import Principal
from tender_clearinghouse.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_schema,
)
from tender_clearinghouse.infrastructure.database.orm_models import User
from tender_clearinghouse.infrastructure.database.repositories import UserRepository
from tender_clearinghouse.services.base import AggregateLocks
from tender_clearinghouse.services.bid_ledger import BidLedger
from tender_clearinghouse.services.contractor_service import ContractorService
from tender_clearinghouse.services.payment_processor import PaymentProcessor
from tender_clearinghouse.services.settlement import SimulatedSettlementRail
from tender_clearinghouse.services.tender_service import TenderService
from tender_clearinghouse.services.verification_gate import VerificationGate

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:  # noqa: ANN001
    """Settings pointing at a per-test SQLite file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tenders.db'}",
        app_env="development",
        notifier_backend="none",
        settlement_mode="simulated",
        settlement_timeout_seconds=5.0,
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = build_engine(settings.database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def locks() -> AggregateLocks:
    return AggregateLocks()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def rail() -> SimulatedSettlementRail:
    return SimulatedSettlementRail()


@pytest.fixture
def gate(session_factory, settings, locks) -> VerificationGate:  # noqa: ANN001
    return VerificationGate(session_factory, settings=settings, locks=locks)


@pytest.fixture
def tenders(session_factory, settings, locks, gate) -> TenderService:  # noqa: ANN001
    return TenderService(session_factory, settings=settings, locks=locks, gate=gate)


@pytest.fixture
def ledger(session_factory, settings, locks, gate) -> BidLedger:  # noqa: ANN001
    return BidLedger(session_factory, settings=settings, locks=locks, gate=gate)


@pytest.fixture
def payments(session_factory, settings, locks, rail) -> PaymentProcessor:  # noqa: ANN001
    return PaymentProcessor(session_factory, settings=settings, locks=locks, rail=rail)


@pytest.fixture
def contractors(session_factory, settings, locks) -> ContractorService:  # noqa: ANN001
    return ContractorService(session_factory, settings=settings, locks=locks)


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


@pytest.fixture
def make_principal(session_factory):  # noqa: ANN001, ANN201
    """Return an async factory that stores a user and returns its Principal."""

    async def _make(
        role: Role = Role.CONTRACTOR,
        *,
        verified: bool = False,
        wallet_address: str | None = None,
        name: str | None = None,
        is_active: bool = True,
    ) -> Principal:
        user_id = uuid.uuid4()
        async with session_factory() as session:
            await UserRepository(session).create(User(
                id=user_id,
                name=name or f"{role.value}-{user_id.hex[:6]}",
                email=f"{user_id.hex}@example.test",
                role=role.value,
                wallet_address=wallet_address,
                is_active=is_active,
                is_verified=verified,
            ))
            await session.commit()
        return Principal(id=user_id, role=role, is_verified=verified)

    return _make


@pytest.fixture
async def admin(make_principal) -> Principal:  # noqa: ANN001
    return await make_principal(Role.ADMIN, name="Admin")


@pytest.fixture
async def verifier(make_principal) -> Principal:  # noqa: ANN001
    return await make_principal(Role.VERIFIER, name="Verifier")


@pytest.fixture
async def contractor(make_principal) -> Principal:  # noqa: ANN001
    """A verified contractor with a wallet."""
    return await make_principal(
        Role.CONTRACTOR,
        verified=True,
        wallet_address="0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18",
        name="Verified Builders",
    )


@pytest.fixture
async def unverified_contractor(make_principal) -> Principal:  # noqa: ANN001
    return await make_principal(Role.CONTRACTOR, name="New Builders")


@pytest.fixture
async def public_user(make_principal) -> Principal:  # noqa: ANN001
    return await make_principal(Role.PUBLIC, name="Citizen")


# ---------------------------------------------------------------------------
# Tenders
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_tender_data() -> dict:
    """Return a valid tender creation data dict."""
    return {
        "title": "Bridge",
        "description": "Replace the pedestrian bridge over the canal",
        "budget": "5000",
        "deadline": datetime.now(UTC) + timedelta(days=30),
        "min_qualification_score": 50,
        "max_bids": 5,
    }


@pytest.fixture
async def open_tender(tenders, admin, sample_tender_data):  # noqa: ANN001, ANN201
    return await tenders.create(admin, **sample_tender_data)
