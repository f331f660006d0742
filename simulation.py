#!/usr/bin/env python3
"""Tender Clearinghouse — End-to-End Simulation.

Walks a footbridge tender through its whole life with AdminBot, VerifierBot
and ContractorBot actors:

    Scenario 1: Verification Gate
        - Admin publishes "Bridge" (budget 50, max 5 bids)
        - Unverified contractor C1 bids 60 -> NotVerified
        - Verifier approves C1's request -> C1 bids again -> accepted

    Scenario 2: Duplicate Bid
        - C1 bids a second time on the same tender -> DuplicateBid

    Scenario 3: Award
        - Admin awards C1's bid -> Awarded, payment record Pending (60)
        - Admin awards again -> AlreadyAwarded

    Scenario 4: Settlement
        - Admin processes the payment -> Completed
        - Admin processes again -> AlreadyProcessed

    Scenario 5: Duplicate Verification Request
        - Contractor C2 submits a second request while one is pending

    Scenario 6: Clear Payment History
        - Admin clears the payment record; the award stands

Usage:
    # Option A: Against the configured DATABASE_URL (e.g. PostgreSQL):
    uv run python simulation.py

    # Option B: Without a database server (throwaway SQLite file):
    uv run python simulation.py --sqlite

    # Run a specific scenario (earlier steps it depends on run silently):
    uv run python simulation.py --sqlite --scenario 4
"""

from __future__ import annotations

import argparse
import asyncio
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from tender_clearinghouse.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from tender_clearinghouse.config import get_settings  # noqa: E402
from tender_clearinghouse.domain.enums import ReviewDecision, Role  # noqa: E402
from tender_clearinghouse.domain.exceptions import ClearinghouseError  # noqa: E402
from tender_clearinghouse.domain.models import Principal  # noqa: E402
from tender_clearinghouse.infrastructure.database.engine import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_schema,
    session_scope,
)
from tender_clearinghouse.infrastructure.database.orm_models import User  # noqa: E402
from tender_clearinghouse.infrastructure.database.repositories import (  # noqa: E402
    UserRepository,
)
from tender_clearinghouse.services import (  # noqa: E402
    AggregateLocks,
    BidLedger,
    PaymentProcessor,
    SimulatedSettlementRail,
    TenderService,
    VerificationGate,
)

LICENSE = {"type": "license", "title": "Civil Works Licence", "issuer": "City Council"}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------
@dataclass
class Clearinghouse:
    """The services of one simulation run, sharing a database and lock registry."""

    session_factory: Any
    gate: VerificationGate
    tenders: TenderService
    ledger: BidLedger
    payments: PaymentProcessor

    @classmethod
    def wire(cls, session_factory: Any) -> Clearinghouse:
        settings = get_settings()
        locks = AggregateLocks()
        gate = VerificationGate(session_factory, settings=settings, locks=locks)
        return cls(
            session_factory=session_factory,
            gate=gate,
            tenders=TenderService(session_factory, settings=settings, locks=locks, gate=gate),
            ledger=BidLedger(session_factory, settings=settings, locks=locks, gate=gate),
            payments=PaymentProcessor(
                session_factory,
                settings=settings,
                locks=locks,
                rail=SimulatedSettlementRail(),
            ),
        )

    async def register(self, role: Role, name: str, wallet: str | None = None) -> Principal:
        """Store a user the identity gateway would normally provision."""
        user_id = uuid.uuid4()
        async with session_scope(self.session_factory) as session:
            await UserRepository(session).create(User(
                id=user_id,
                name=name,
                email=f"{name.lower().replace(' ', '.')}.{user_id.hex[:6]}@example.test",
                role=role.value,
                wallet_address=wallet,
            ))
        return Principal(id=user_id, role=role)


# ---------------------------------------------------------------------------
# Bot Actors
# ---------------------------------------------------------------------------
@dataclass
class AdminBot:
    """Simulated procurement officer: publishes, awards and settles."""

    house: Clearinghouse
    principal: Principal

    async def publish(self, title: str, budget: str, max_bids: int = 5) -> Any:
        tender = await self.house.tenders.create(
            self.principal,
            title=title,
            description=f"{title}: design and build, including site clearance.",
            budget=budget,
            deadline=datetime.now(UTC) + timedelta(days=30),
            min_qualification_score=60,
            max_bids=max_bids,
        )
        logger.info("🔵 ADMIN: Tender published", tender_id=str(tender.id), budget=budget)
        return tender

    async def award(self, tender_id: uuid.UUID, bid_id: uuid.UUID) -> Any:
        tender = await self.house.tenders.award(tender_id, bid_id, self.principal)
        logger.info(
            "🔵 ADMIN: Tender awarded",
            tender_id=str(tender_id),
            amount=str(tender.payment_amount),
            payment=tender.payment_status,
        )
        return tender

    async def settle(self, tender_id: uuid.UUID) -> Any:
        record = await self.house.payments.process(tender_id, self.principal)
        logger.info(
            "🔵 ADMIN: Payment processed",
            tender_id=str(tender_id),
            status=record.status,
            reference=record.settlement_reference,
        )
        return record

    async def clear_payment(self, tender_id: uuid.UUID) -> Any:
        tender = await self.house.payments.clear_history(tender_id, self.principal)
        logger.info("🔵 ADMIN: Payment history cleared", tender_id=str(tender_id))
        return tender


@dataclass
class VerifierBot:
    """Simulated credential reviewer."""

    house: Clearinghouse
    principal: Principal

    async def approve(self, request_id: uuid.UUID) -> None:
        await self.house.gate.review(
            request_id, self.principal, ReviewDecision.APPROVE, "Licence checked with the council"
        )
        logger.info("🟣 VERIFIER: Request approved", request_id=str(request_id))


@dataclass
class ContractorBot:
    """Simulated contractor: asks for verification and bids."""

    house: Clearinghouse
    principal: Principal
    name: str
    bids: list = field(default_factory=list)

    async def request_verification(self) -> uuid.UUID:
        request = await self.house.gate.submit(self.principal, [LICENSE])
        logger.info("🟢 CONTRACTOR: Verification requested", contractor=self.name)
        return request.id

    async def bid(self, tender_id: uuid.UUID, amount: str) -> Any:
        bid = await self.house.ledger.submit_bid(
            tender_id, self.principal, amount, 45, f"{self.name}: prefabricated steel span"
        )
        self.bids.append(bid)
        logger.info("🟢 CONTRACTOR: Bid accepted", contractor=self.name, amount=amount)
        return bid


@dataclass
class Stage:
    """State carried from one scenario into the next."""

    house: Clearinghouse
    admin: AdminBot
    verifier: VerifierBot
    c1: ContractorBot
    tender: Any = None
    request_id: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def expect_failure(label: str, exc: ClearinghouseError) -> None:
    print(f"  ✅ {label} rejected: [{exc.code}] {exc.message}")


async def expect_error(label: str, error_type: type[ClearinghouseError], call: Any) -> None:
    """Await ``call`` and insist it fails with ``error_type``."""
    try:
        await call
    except error_type as exc:
        expect_failure(label, exc)
        return
    raise AssertionError(f"{label} was expected to fail with {error_type.__name__}")


async def print_audit_trail(stage: Stage) -> None:
    """Print the full audit trail for the tender."""
    events = await stage.house.tenders.get_events(stage.tender.id, stage.admin.principal)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "—"
        print(f"    {i}. [{evt.event_type}] {old} → {evt.new_status} (by {evt.actor})")
    print()


# ===========================================================================
# Scenarios
# ===========================================================================
async def scenario_1_verification_gate(stage: Stage) -> None:
    """An unverified contractor is turned away until a verifier approves them."""
    from tender_clearinghouse.domain.exceptions import NotVerifiedError

    banner("SCENARIO 1: Verification Gate")

    section("Step 1: Admin publishes the tender; C1 asks for verification")
    stage.tender = await stage.admin.publish("Bridge", budget="50", max_bids=5)
    stage.request_id = await stage.c1.request_verification()

    section("Step 2: C1 bids before being verified")
    await expect_error("Unverified bid", NotVerifiedError, stage.c1.bid(stage.tender.id, "60"))

    section("Step 3: Verifier approves, C1 bids again")
    await stage.verifier.approve(stage.request_id)
    bid = await stage.c1.bid(stage.tender.id, "60")
    print(f"  Bid #{bid.sequence} by {stage.c1.name}: {bid.amount} (winner: {bid.is_winner})")


async def scenario_2_duplicate_bid(stage: Stage) -> None:
    """One bid per contractor per tender."""
    from tender_clearinghouse.domain.exceptions import DuplicateBidError

    banner("SCENARIO 2: Duplicate Bid")
    await expect_error("Second bid", DuplicateBidError, stage.c1.bid(stage.tender.id, "55"))


async def scenario_3_award(stage: Stage) -> None:
    """Awarding picks exactly one winner and opens a Pending payment."""
    from tender_clearinghouse.domain.exceptions import AlreadyAwardedError

    banner("SCENARIO 3: Award")
    winning = stage.c1.bids[-1]
    tender = await stage.admin.award(stage.tender.id, winning.id)
    print(f"  Status: {tender.status}  Winner: {tender.winning_bid_id}")
    print(f"  Payment: {tender.payment_amount} ({tender.payment_status})")

    await expect_error(
        "Second award", AlreadyAwardedError, stage.admin.award(stage.tender.id, winning.id)
    )


async def scenario_4_settlement(stage: Stage) -> None:
    """The payment is settled exactly once."""
    from tender_clearinghouse.domain.exceptions import AlreadyProcessedError

    banner("SCENARIO 4: Settlement")
    record = await stage.admin.settle(stage.tender.id)
    print(f"  Status: {record.status}  Date: {record.date}")

    await expect_error(
        "Second settlement", AlreadyProcessedError, stage.admin.settle(stage.tender.id)
    )
    await print_audit_trail(stage)


async def scenario_5_duplicate_request(stage: Stage) -> None:
    """A contractor may have only one open verification request."""
    from tender_clearinghouse.domain.exceptions import DuplicatePendingRequestError

    banner("SCENARIO 5: Duplicate Verification Request")
    principal = await stage.house.register(Role.CONTRACTOR, "C2 Civil Works")
    c2 = ContractorBot(stage.house, principal, "C2")
    await c2.request_verification()
    await expect_error(
        "Second open request", DuplicatePendingRequestError, c2.request_verification()
    )


async def scenario_6_clear_history(stage: Stage) -> None:
    """Clearing the payment record leaves the award untouched."""
    banner("SCENARIO 6: Clear Payment History")
    tender = await stage.admin.clear_payment(stage.tender.id)
    print(f"  Status: {tender.status}  Winner: {tender.winning_bid_id}")
    print(f"  Payment: {tender.payment_status}")
    await print_audit_trail(stage)


SCENARIOS = {
    1: scenario_1_verification_gate,
    2: scenario_2_duplicate_bid,
    3: scenario_3_award,
    4: scenario_4_settlement,
    5: scenario_5_duplicate_request,
    6: scenario_6_clear_history,
}

# Scenarios that need earlier ones to have run first.
PREREQUISITES = {
    2: [1],
    3: [1],
    4: [1, 3],
    6: [1, 3, 4],
}


# ===========================================================================
# Main
# ===========================================================================
async def build_stage(database_url: str) -> tuple[Stage, Any]:
    engine = build_engine(database_url)
    await create_schema(engine)
    house = Clearinghouse.wire(build_session_factory(engine))

    admin = AdminBot(house, await house.register(Role.ADMIN, "Procurement Office"))
    verifier = VerifierBot(house, await house.register(Role.VERIFIER, "Licensing Desk"))
    c1 = ContractorBot(
        house,
        await house.register(
            Role.CONTRACTOR, "C1 Bridgeworks", wallet="0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
        ),
        "C1",
    )
    return Stage(house=house, admin=admin, verifier=verifier, c1=c1), engine


async def run(database_url: str, only: int = 0) -> None:
    """Run all scenarios, or one scenario after its prerequisites."""
    stage, engine = await build_stage(database_url)
    try:
        print("\n" + "🏗️ " * 35)
        print("  THE TENDER CLEARINGHOUSE — SIMULATION")
        print(f"  Database: {database_url.split('://', 1)[0]}")
        print("🏗️ " * 35 + "\n")

        if only:
            for step in PREREQUISITES.get(only, []):
                await SCENARIOS[step](stage)
            await SCENARIOS[only](stage)
        else:
            for scenario in SCENARIOS.values():
                await scenario(stage)

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Tender Clearinghouse Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        choices=[0, *SCENARIOS],
        help="Run a specific scenario (1-6). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use a throwaway SQLite file instead of DATABASE_URL (no server needed).",
    )
    args = parser.parse_args()

    if args.sqlite:
        with tempfile.TemporaryDirectory() as tmp:
            url = f"sqlite+aiosqlite:///{Path(tmp) / 'simulation.db'}"
            asyncio.run(run(url, only=args.scenario))
    else:
        asyncio.run(run(get_settings().database_url, only=args.scenario))
