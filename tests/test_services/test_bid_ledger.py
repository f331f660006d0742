"""Tests for BidLedger: admission order, boundaries, policies and races."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from tender_clearinghouse.domain.enums import Role, TenderStatus
from tender_clearinghouse.domain.exceptions import (
    AuthorizationError,
    BiddingDeadlinePassedError,
    BidTooLowError,
    DuplicateBidError,
    MaxBidsReachedError,
    NotVerifiedError,
    TenderNotFoundError,
    TenderNotOpenError,
    ValidationError,
)
from tender_clearinghouse.infrastructure.database.orm_models import Bid
from tender_clearinghouse.infrastructure.database.repositories import TenderRepository
from tender_clearinghouse.services.bid_ledger import BidLedger


async def _bid(ledger, tender_id, contractor, amount="60"):  # noqa: ANN001, ANN202
    return await ledger.submit_bid(
        tender_id=tender_id,
        contractor=contractor,
        amount=amount,
        estimated_duration_days=30,
        proposal="Steel truss replacement with local crew",
    )


class TestSubmitBid:
    async def test_accepted_bid_is_appended(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        bid = await _bid(ledger, open_tender.id, contractor)

        assert bid.is_winner is False
        assert bid.bidder_id == contractor.id
        assert bid.amount == Decimal("60")
        assert bid.sequence == 0
        assert bid.bidder_address == "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"

    async def test_bids_keep_submission_order(
        self, ledger, open_tender, contractor, make_principal, admin  # noqa: ANN001
    ) -> None:
        second = await make_principal(Role.CONTRACTOR, verified=True)
        await _bid(ledger, open_tender.id, contractor, "70")
        await _bid(ledger, open_tender.id, second, "65")

        bids = await ledger.list_bids(open_tender.id, admin)
        assert [b.bidder_id for b in bids] == [contractor.id, second.id]
        assert [b.sequence for b in bids] == [0, 1]

    async def test_only_contractors_may_bid(self, ledger, open_tender, admin) -> None:  # noqa: ANN001
        with pytest.raises(AuthorizationError):
            await _bid(ledger, open_tender.id, admin)

    @pytest.mark.parametrize("amount", ["abc", "NaN"])
    async def test_malformed_amount(self, ledger, open_tender, contractor, amount) -> None:  # noqa: ANN001
        with pytest.raises(ValidationError) as exc_info:
            await _bid(ledger, open_tender.id, contractor, amount)
        assert exc_info.value.code == "INVALID_AMOUNT"

    async def test_proposal_required(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        with pytest.raises(ValidationError, match="Proposal"):
            await ledger.submit_bid(open_tender.id, contractor, "60", 30, "   ")


class TestAdmissionOrder:
    """The first failing precondition decides the error."""

    async def test_unknown_tender(self, ledger, unverified_contractor) -> None:  # noqa: ANN001
        # Unverified and too low as well, but the tender lookup comes first
        with pytest.raises(TenderNotFoundError):
            await _bid(ledger, uuid.uuid4(), unverified_contractor, "1")

    async def test_not_open_before_not_verified(
        self, ledger, tenders, open_tender, admin, unverified_contractor  # noqa: ANN001
    ) -> None:
        await tenders.close(open_tender.id, admin)
        with pytest.raises(TenderNotOpenError):
            await _bid(ledger, open_tender.id, unverified_contractor, "1")

    async def test_not_verified_before_too_low(
        self, ledger, open_tender, unverified_contractor  # noqa: ANN001
    ) -> None:
        with pytest.raises(NotVerifiedError) as exc_info:
            await _bid(ledger, open_tender.id, unverified_contractor, "1")
        assert exc_info.value.code == "NOT_VERIFIED"

    async def test_duplicate_before_too_low(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        await _bid(ledger, open_tender.id, contractor)
        with pytest.raises(DuplicateBidError):
            await _bid(ledger, open_tender.id, contractor, "1")

    async def test_gate_reads_stored_flag(
        self, ledger, gate, open_tender, contractor, verifier  # noqa: ANN001
    ) -> None:
        # The principal snapshot still says verified; the stored flag wins
        await gate.set_verification_status(contractor.id, False, verifier)
        with pytest.raises(NotVerifiedError):
            await _bid(ledger, open_tender.id, contractor)

    async def test_inactive_contractor_cannot_bid(
        self, ledger, open_tender, make_principal  # noqa: ANN001
    ) -> None:
        dormant = await make_principal(Role.CONTRACTOR, verified=True, is_active=False)
        with pytest.raises(NotVerifiedError):
            await _bid(ledger, open_tender.id, dormant)


class TestMinimumAmount:
    async def test_exactly_minimum_is_accepted(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        bid = await _bid(ledger, open_tender.id, contractor, "50")
        assert bid.amount == Decimal("50")

    async def test_just_below_minimum_is_rejected(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        with pytest.raises(BidTooLowError) as exc_info:
            await _bid(ledger, open_tender.id, contractor, "49.999")
        assert exc_info.value.minimum == "50"

    async def test_amount_kept_exact(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        bid = await _bid(ledger, open_tender.id, contractor, "1234567.89")
        assert bid.amount == Decimal("1234567.89")


class TestDeadlinePolicy:
    async def test_past_deadline_accepted_by_default(
        self, ledger, tenders, admin, contractor, sample_tender_data  # noqa: ANN001
    ) -> None:
        sample_tender_data["deadline"] = datetime.now(UTC) - timedelta(days=1)
        tender = await tenders.create(admin, **sample_tender_data)

        bid = await _bid(ledger, tender.id, contractor)
        assert bid.tender_id == tender.id

    async def test_past_deadline_rejected_when_enforced(
        self, session_factory, settings, gate, tenders, admin, contractor, sample_tender_data  # noqa: ANN001
    ) -> None:
        strict = BidLedger(
            session_factory,
            settings=settings.model_copy(update={"enforce_bid_deadline": True}),
            gate=gate,
        )
        sample_tender_data["deadline"] = datetime.now(UTC) - timedelta(days=1)
        tender = await tenders.create(admin, **sample_tender_data)

        with pytest.raises(BiddingDeadlinePassedError):
            await _bid(strict, tender.id, contractor)


class TestMaxBidsPolicy:
    async def _fill(self, ledger, tender, make_principal, count):  # noqa: ANN001, ANN202
        for _ in range(count):
            bidder = await make_principal(Role.CONTRACTOR, verified=True)
            await _bid(ledger, tender.id, bidder)

    async def test_advisory_by_default(
        self, ledger, tenders, admin, make_principal, sample_tender_data  # noqa: ANN001
    ) -> None:
        sample_tender_data["max_bids"] = 1
        tender = await tenders.create(admin, **sample_tender_data)

        await self._fill(ledger, tender, make_principal, 2)
        assert len(await ledger.list_bids(tender.id, admin)) == 2

    async def test_enforced(
        self, session_factory, settings, gate, tenders, admin, make_principal, sample_tender_data  # noqa: ANN001
    ) -> None:
        strict = BidLedger(
            session_factory,
            settings=settings.model_copy(update={"enforce_max_bids": True}),
            gate=gate,
        )
        sample_tender_data["max_bids"] = 1
        tender = await tenders.create(admin, **sample_tender_data)
        await self._fill(strict, tender, make_principal, 1)

        late = await make_principal(Role.CONTRACTOR, verified=True)
        with pytest.raises(MaxBidsReachedError):
            await _bid(strict, tender.id, late)


class TestConcurrency:
    async def test_concurrent_duplicates_admit_exactly_one(
        self, ledger, open_tender, contractor, admin  # noqa: ANN001
    ) -> None:
        results = await asyncio.gather(
            *(_bid(ledger, open_tender.id, contractor, str(60 + i)) for i in range(5)),
            return_exceptions=True,
        )

        accepted = [r for r in results if isinstance(r, Bid)]
        rejected = [r for r in results if isinstance(r, DuplicateBidError)]
        assert len(accepted) == 1
        assert len(rejected) == 4
        assert len(await ledger.list_bids(open_tender.id, admin)) == 1

    async def test_concurrent_bidders_get_distinct_sequences(
        self, ledger, open_tender, make_principal, admin  # noqa: ANN001
    ) -> None:
        bidders = [await make_principal(Role.CONTRACTOR, verified=True) for _ in range(4)]
        await asyncio.gather(*(_bid(ledger, open_tender.id, b) for b in bidders))

        tender_bids = await ledger.list_bids(open_tender.id, admin)
        assert sorted(b.sequence for b in tender_bids) == [0, 1, 2, 3]

    async def test_unique_constraint_backstop(
        self, ledger, session_factory, open_tender, contractor  # noqa: ANN001
    ) -> None:
        """A writer that bypasses the ledger still cannot store a second bid."""
        await _bid(ledger, open_tender.id, contractor)

        async with session_factory() as session:
            tender = await TenderRepository(session).get_by_id(open_tender.id)
            session.add(Bid(
                tender_id=tender.id,
                bidder_id=contractor.id,
                amount=Decimal("75"),
                estimated_duration_days=10,
                proposal="sneaky second bid",
                sequence=1,
            ))
            with pytest.raises(IntegrityError):
                await session.flush()


class TestQueries:
    async def test_contractor_sees_only_own_bids(
        self, ledger, open_tender, contractor, make_principal  # noqa: ANN001
    ) -> None:
        rival = await make_principal(Role.CONTRACTOR, verified=True)
        await _bid(ledger, open_tender.id, contractor)
        await _bid(ledger, open_tender.id, rival)

        visible = await ledger.list_bids(open_tender.id, contractor)
        assert [b.bidder_id for b in visible] == [contractor.id]

    async def test_list_bids_unknown_tender(self, ledger, admin) -> None:  # noqa: ANN001
        with pytest.raises(TenderNotFoundError):
            await ledger.list_bids(uuid.uuid4(), admin)

    async def test_list_by_contractor(self, ledger, open_tender, contractor) -> None:  # noqa: ANN001
        await _bid(ledger, open_tender.id, contractor)

        pairs = await ledger.list_bids_by_contractor(contractor.id, contractor)
        assert len(pairs) == 1
        bid, tender = pairs[0]
        assert tender.id == open_tender.id
        assert tender.status == TenderStatus.OPEN

    async def test_list_by_contractor_is_owner_scoped(
        self, ledger, contractor, unverified_contractor  # noqa: ANN001
    ) -> None:
        with pytest.raises(AuthorizationError):
            await ledger.list_bids_by_contractor(contractor.id, unverified_contractor)
