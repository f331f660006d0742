"""End-to-end procurement walkthrough across all five services.

One tender, two contractors: verification, bidding, award, settlement and
clearing the payment record, checked step by step.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from tender_clearinghouse.domain.enums import (
    PaymentStatus,
    ReviewDecision,
    Role,
    TenderStatus,
)
from tender_clearinghouse.domain.exceptions import (
    AlreadyAwardedError,
    AlreadyProcessedError,
    DuplicateBidError,
    DuplicatePendingRequestError,
    NotVerifiedError,
)

CREDENTIALS = [{"type": "license", "title": "Civil works licence", "issuer": "City Council"}]


@pytest.fixture
async def bridge(tenders, admin):  # noqa: ANN001, ANN201
    return await tenders.create(
        admin,
        title="Bridge",
        description="Footbridge over the railway cutting",
        budget="50",
        deadline=datetime.now(UTC) + timedelta(days=14),
        min_qualification_score=60,
        max_bids=5,
    )


@pytest.fixture
async def c1(make_principal):  # noqa: ANN001, ANN201
    return await make_principal(
        Role.CONTRACTOR,
        name="C1",
        wallet_address="0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18",
    )


async def _verified_bid(gate, ledger, verifier, tender, contractor):  # noqa: ANN001, ANN202
    request = await gate.submit(contractor, CREDENTIALS)
    await gate.review(request.id, verifier, ReviewDecision.APPROVE, "Licence checked")
    return await ledger.submit_bid(tender.id, contractor, "60", 21, "Prefab steel span")


class TestProcurementWalkthrough:
    async def test_unverified_bid_then_approval(
        self, gate, ledger, verifier, bridge, c1  # noqa: ANN001
    ) -> None:
        request = await gate.submit(c1, CREDENTIALS)

        with pytest.raises(NotVerifiedError):
            await ledger.submit_bid(bridge.id, c1, "60", 21, "Prefab steel span")

        await gate.review(request.id, verifier, ReviewDecision.APPROVE, "Licence checked")
        assert await gate.can_bid(c1.id) is True

        bid = await ledger.submit_bid(bridge.id, c1, "60", 21, "Prefab steel span")
        assert bid.is_winner is False
        assert [b.id for b in await ledger.list_bids(bridge.id, c1)] == [bid.id]

    async def test_second_bid_is_duplicate(
        self, gate, ledger, verifier, bridge, c1  # noqa: ANN001
    ) -> None:
        await _verified_bid(gate, ledger, verifier, bridge, c1)

        with pytest.raises(DuplicateBidError):
            await ledger.submit_bid(bridge.id, c1, "75", 14, "Revised offer")

    async def test_award_once(
        self, gate, ledger, tenders, verifier, admin, bridge, c1  # noqa: ANN001
    ) -> None:
        bid = await _verified_bid(gate, ledger, verifier, bridge, c1)

        awarded = await tenders.award(bridge.id, bid.id, admin)
        assert awarded.status == TenderStatus.AWARDED
        assert awarded.winning_bid_id == bid.id
        assert awarded.payment_amount == Decimal("60")
        assert awarded.payment_status == PaymentStatus.PENDING

        with pytest.raises(AlreadyAwardedError):
            await tenders.award(bridge.id, bid.id, admin)

    async def test_process_once(
        self, gate, ledger, tenders, payments, verifier, admin, bridge, c1  # noqa: ANN001
    ) -> None:
        bid = await _verified_bid(gate, ledger, verifier, bridge, c1)
        await tenders.award(bridge.id, bid.id, admin)

        record = await payments.process(bridge.id, admin)
        assert record.status is PaymentStatus.COMPLETED
        assert record.date is not None

        with pytest.raises(AlreadyProcessedError):
            await payments.process(bridge.id, admin)

    async def test_duplicate_pending_request(self, gate, make_principal) -> None:  # noqa: ANN001
        c2 = await make_principal(Role.CONTRACTOR, name="C2")
        await gate.submit(c2, CREDENTIALS)

        with pytest.raises(DuplicatePendingRequestError):
            await gate.submit(c2, CREDENTIALS)

    async def test_clear_history_keeps_award(
        self, gate, ledger, tenders, payments, verifier, admin, bridge, c1  # noqa: ANN001
    ) -> None:
        bid = await _verified_bid(gate, ledger, verifier, bridge, c1)
        await tenders.award(bridge.id, bid.id, admin)
        await payments.process(bridge.id, admin)

        cleared = await payments.clear_history(bridge.id, admin)

        assert cleared.status == TenderStatus.AWARDED
        assert cleared.winning_bid_id == bid.id
        assert cleared.payment_status is None
        assert cleared.payment_amount is None
        assert cleared.payment_date is None
