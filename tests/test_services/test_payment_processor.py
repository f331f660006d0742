"""Tests for PaymentProcessor: settlement outcomes, timeouts and reconciliation."""

from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal

import pytest

from tender_clearinghouse.domain.enums import (
    EventType,
    PaymentStatus,
    Role,
    SettlementOutcome,
    TenderStatus,
)
from tender_clearinghouse.domain.exceptions import (
    AlreadyProcessedError,
    AuthorizationError,
    ErrorKind,
    InvalidStateTransitionError,
    NoPaymentRecordError,
    PaymentNotInFlightError,
    SettlementFailedError,
    SettlementRailError,
    TenderNotAwardedError,
    TenderNotFoundError,
    ValidationError,
)
from tender_clearinghouse.domain.settlement_protocol import SettlementReceipt
from tender_clearinghouse.services.payment_processor import PaymentProcessor
from tender_clearinghouse.services.settlement import SimulatedSettlementRail


@pytest.fixture
async def awarded_tender(tenders, ledger, open_tender, admin, contractor):  # noqa: ANN001, ANN201
    bid = await ledger.submit_bid(open_tender.id, contractor, "60", 30, "Deck and railings")
    return await tenders.award(open_tender.id, bid.id, admin)


@pytest.fixture
def make_processor(session_factory, settings, locks):  # noqa: ANN001, ANN201
    def _make(rail, notifier=None, **overrides) -> PaymentProcessor:  # noqa: ANN001
        return PaymentProcessor(
            session_factory,
            settings=settings.model_copy(update=overrides) if overrides else settings,
            locks=locks,
            rail=rail,
            notifier=notifier,
        )

    return _make


class ExplodingRail:
    """Rail whose transport fails outright."""

    requires_payee_address = False

    async def submit(self, request) -> SettlementReceipt:  # noqa: ANN001
        raise SettlementRailError("RPC endpoint refused the transfer", "0xdead")

    async def wait_for_confirmation(self, reference: str) -> SettlementReceipt:
        raise AssertionError("not reached")

    async def poll(self, reference: str) -> SettlementReceipt:
        raise AssertionError("not reached")


class HangingRail:
    """Rail whose submit never returns a receipt."""

    requires_payee_address = False

    async def submit(self, request) -> SettlementReceipt:  # noqa: ANN001
        await asyncio.sleep(60)
        raise AssertionError("not reached")

    async def wait_for_confirmation(self, reference: str) -> SettlementReceipt:
        raise AssertionError("not reached")

    async def poll(self, reference: str) -> SettlementReceipt:
        raise AssertionError("not reached")


class AddressRequiredRail(SimulatedSettlementRail):
    requires_payee_address = True


class RecordingNotifier:
    def __init__(self) -> None:
        self.notices = []

    async def notify(self, notice) -> None:  # noqa: ANN001
        self.notices.append(notice)


class TestProcess:
    async def test_synchronous_rail_completes(self, payments, awarded_tender, admin) -> None:  # noqa: ANN001
        record = await payments.process(awarded_tender.id, admin)

        assert record.status is PaymentStatus.COMPLETED
        assert record.amount == Decimal("60")
        assert record.date is not None
        assert record.settlement_reference.startswith("0x")

    async def test_process_twice_fails(self, payments, awarded_tender, admin) -> None:  # noqa: ANN001
        first = await payments.process(awarded_tender.id, admin)

        with pytest.raises(AlreadyProcessedError):
            await payments.process(awarded_tender.id, admin)

        assert await payments.get_payment(awarded_tender.id, admin) == first

    async def test_transitions_are_audited(self, payments, tenders, awarded_tender, admin) -> None:  # noqa: ANN001
        await payments.process(awarded_tender.id, admin)

        events = [e.event_type for e in await tenders.get_events(awarded_tender.id, admin)]
        assert events[-2:] == [EventType.PAYMENT_PROCESSING, EventType.PAYMENT_COMPLETED]

    async def test_requires_award(self, payments, open_tender, admin) -> None:  # noqa: ANN001
        with pytest.raises(TenderNotAwardedError):
            await payments.process(open_tender.id, admin)

    async def test_unknown_tender(self, payments, admin) -> None:  # noqa: ANN001
        with pytest.raises(TenderNotFoundError):
            await payments.process(uuid.uuid4(), admin)

    async def test_only_admin(self, payments, awarded_tender, verifier) -> None:  # noqa: ANN001
        with pytest.raises(AuthorizationError):
            await payments.process(awarded_tender.id, verifier)

    async def test_cleared_history_has_nothing_to_process(
        self, payments, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        await payments.clear_history(awarded_tender.id, admin)
        with pytest.raises(NoPaymentRecordError):
            await payments.process(awarded_tender.id, admin)

    async def test_publishes_completion_notice(
        self, make_processor, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        notifier = RecordingNotifier()
        processor = make_processor(SimulatedSettlementRail(), notifier)

        await processor.process(awarded_tender.id, admin)

        assert [n.event for n in notifier.notices] == [EventType.PAYMENT_COMPLETED]


class TestSettlementFailures:
    async def test_rejected_transfer_marks_failed(
        self, make_processor, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        processor = make_processor(SimulatedSettlementRail(should_succeed=False))

        with pytest.raises(SettlementFailedError) as exc_info:
            await processor.process(awarded_tender.id, admin)
        assert exc_info.value.retryable is False
        assert exc_info.value.kind is ErrorKind.CONFLICT

        record = await processor.get_payment(awarded_tender.id, admin)
        assert record.status is PaymentStatus.FAILED
        assert record.date is None
        assert record.settlement_reference == exc_info.value.settlement_reference

    async def test_rail_error_marks_failed(self, make_processor, awarded_tender, admin) -> None:  # noqa: ANN001
        processor = make_processor(ExplodingRail())

        with pytest.raises(SettlementFailedError, match="refused"):
            await processor.process(awarded_tender.id, admin)

        record = await processor.get_payment(awarded_tender.id, admin)
        assert record.status is PaymentStatus.FAILED
        assert record.settlement_reference == "0xdead"

    async def test_failed_is_final(self, make_processor, awarded_tender, admin) -> None:  # noqa: ANN001
        processor = make_processor(SimulatedSettlementRail(should_succeed=False))
        with pytest.raises(SettlementFailedError):
            await processor.process(awarded_tender.id, admin)

        with pytest.raises(InvalidStateTransitionError):
            await processor.process(awarded_tender.id, admin)

    async def test_missing_payee_address(
        self, make_processor, tenders, ledger, open_tender, admin, make_principal  # noqa: ANN001
    ) -> None:
        walletless = await make_principal(Role.CONTRACTOR, verified=True)
        bid = await ledger.submit_bid(open_tender.id, walletless, "80", 20, "Quick fix")
        await tenders.award(open_tender.id, bid.id, admin)
        processor = make_processor(AddressRequiredRail())

        with pytest.raises(ValidationError) as exc_info:
            await processor.process(open_tender.id, admin)
        assert exc_info.value.code == "PAYEE_ADDRESS_REQUIRED"

        # Nothing was applied
        record = await processor.get_payment(open_tender.id, admin)
        assert record.status is PaymentStatus.PENDING


class TestAsynchronousRail:
    async def test_confirmation_within_timeout(
        self, make_processor, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        processor = make_processor(SimulatedSettlementRail(confirmation_delay_seconds=0.05))

        record = await processor.process(awarded_tender.id, admin)
        assert record.status is PaymentStatus.COMPLETED

    async def test_timeout_leaves_processing_then_reconcile_completes(
        self, make_processor, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        rail = SimulatedSettlementRail(confirmation_delay_seconds=60)
        processor = make_processor(rail, settlement_timeout_seconds=0.05)

        in_flight = await processor.process(awarded_tender.id, admin)
        assert in_flight.status is PaymentStatus.PROCESSING
        assert in_flight.settlement_reference is not None
        assert in_flight.date is None

        # Still pending on the rail
        unchanged = await processor.reconcile(awarded_tender.id, admin)
        assert unchanged.status is PaymentStatus.PROCESSING

        rail.release(in_flight.settlement_reference)
        settled = await processor.reconcile(awarded_tender.id, admin)
        assert settled.status is PaymentStatus.COMPLETED
        assert settled.settlement_reference == in_flight.settlement_reference
        assert settled.date is not None

    async def test_in_flight_payment_cannot_be_processed_again(
        self, make_processor, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        rail = SimulatedSettlementRail(confirmation_delay_seconds=60)
        processor = make_processor(rail, settlement_timeout_seconds=0.05)
        await processor.process(awarded_tender.id, admin)

        with pytest.raises(InvalidStateTransitionError):
            await processor.process(awarded_tender.id, admin)

    async def test_reconcile_requires_in_flight_payment(
        self, payments, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        with pytest.raises(PaymentNotInFlightError):
            await payments.reconcile(awarded_tender.id, admin)

    async def test_timeout_before_reference_marks_failed(
        self, make_processor, awarded_tender, admin  # noqa: ANN001
    ) -> None:
        processor = make_processor(HangingRail(), settlement_timeout_seconds=0.05)

        with pytest.raises(SettlementFailedError, match="before the rail returned a reference"):
            await processor.process(awarded_tender.id, admin)

        record = await processor.get_payment(awarded_tender.id, admin)
        assert record.status is PaymentStatus.FAILED
        assert record.settlement_reference is None
        assert record.date is None

        with pytest.raises(PaymentNotInFlightError):
            await processor.reconcile(awarded_tender.id, admin)

    def test_missing_reference_is_named(self) -> None:
        exc = PaymentNotInFlightError("t-1", PaymentStatus.PROCESSING.value, None)
        assert "no settlement reference" in exc.message

        exc = PaymentNotInFlightError("t-1", PaymentStatus.PENDING.value)
        assert exc.message == "Payment is not awaiting settlement (status: Pending)"


class TestClearHistory:
    async def test_unsets_payment_but_keeps_award(self, payments, awarded_tender, admin) -> None:  # noqa: ANN001
        await payments.process(awarded_tender.id, admin)

        tender = await payments.clear_history(awarded_tender.id, admin)

        assert tender.status == TenderStatus.AWARDED
        assert tender.winning_bid_id == awarded_tender.winning_bid_id
        assert tender.awarded_at == awarded_tender.awarded_at
        assert tender.payment_status is None
        assert tender.payment_amount is None
        assert tender.payment_date is None
        assert tender.settlement_reference is None

        record = await payments.get_payment(awarded_tender.id, admin)
        assert record.exists is False

    async def test_requires_award(self, payments, open_tender, admin) -> None:  # noqa: ANN001
        with pytest.raises(TenderNotAwardedError):
            await payments.clear_history(open_tender.id, admin)

    async def test_only_admin(self, payments, awarded_tender, contractor) -> None:  # noqa: ANN001
        with pytest.raises(AuthorizationError):
            await payments.clear_history(awarded_tender.id, contractor)


class TestListings:
    async def test_list_payments(self, payments, awarded_tender, admin) -> None:  # noqa: ANN001
        records = await payments.list_payments(admin)
        assert [r.tender_id for r in records] == [awarded_tender.id]
        assert records[0].status is PaymentStatus.PENDING

    async def test_contractor_sees_own_payments(
        self, payments, awarded_tender, contractor, unverified_contractor  # noqa: ANN001
    ) -> None:
        own = await payments.list_contractor_payments(contractor.id, contractor)
        assert [r.tender_id for r in own] == [awarded_tender.id]

        with pytest.raises(AuthorizationError):
            await payments.list_contractor_payments(contractor.id, unverified_contractor)


class TestReceipt:
    def test_finality(self) -> None:
        assert not SettlementReceipt(SettlementOutcome.PENDING, "0x1").is_final
        assert SettlementReceipt(SettlementOutcome.REJECTED, "0x1").is_final
