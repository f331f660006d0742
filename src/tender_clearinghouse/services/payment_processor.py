"""PaymentProcessor — the payment record of an awarded tender.

    (no record) -> Pending -> Processing -> Completed | Failed

``process`` works in three steps so no database transaction is held open
while money moves:

    1. Pending -> Processing, committed under the tender lock.
    2. The settlement rail is called, bounded by settlement_timeout_seconds.
       Synchronous rails answer with a confirmed receipt; asynchronous rails
       answer PENDING and are awaited for confirmation.
    3. The outcome is committed: Completed (date and reference stamped) or
       Failed. On timeout the record stays Processing with its reference, for
       ``reconcile`` to pick up later. A timeout before the rail has handed
       back any reference leaves nothing to reconcile, so the record is Failed.

A rail failure always leaves the record Failed, which is distinct from
Pending ("not attempted yet"). Failed is final.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from tender_clearinghouse.domain.enums import (
    Action,
    EventType,
    PaymentStatus,
    SettlementOutcome,
    TenderStatus,
)
from tender_clearinghouse.domain.exceptions import (
    AlreadyProcessedError,
    NoPaymentRecordError,
    PaymentNotInFlightError,
    SettlementFailedError,
    SettlementRailError,
    TenderNotAwardedError,
    TenderNotFoundError,
    ValidationError,
)
from tender_clearinghouse.domain.models import PaymentRecord
from tender_clearinghouse.domain.settlement_protocol import SettlementNotice, SettlementRequest
from tender_clearinghouse.domain.state_machine import PaymentStateMachine, advance
from tender_clearinghouse.infrastructure.database.repositories import (
    EventRepository,
    TenderRepository,
    UserRepository,
)
from tender_clearinghouse.infrastructure.database.types import utcnow
from tender_clearinghouse.logging_config import get_logger
from tender_clearinghouse.services.base import ServiceBase, tender_key
from tender_clearinghouse.services.notifier import NullSettlementNotifier, publish
from tender_clearinghouse.services.settlement import SimulatedSettlementRail

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tender_clearinghouse.domain.models import Principal
    from tender_clearinghouse.domain.settlement_protocol import (
        SettlementNotifier,
        SettlementRail,
        SettlementReceipt,
    )
    from tender_clearinghouse.infrastructure.database.orm_models import Tender

logger = get_logger(__name__)


class PaymentProcessor(ServiceBase):
    """Tracks payments through settlement."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        rail: SettlementRail | None = None,
        notifier: SettlementNotifier | None = None,
        **kwargs,
    ) -> None:
        super().__init__(session_factory, **kwargs)
        self._rail = rail or SimulatedSettlementRail()
        self._notifier = notifier or NullSettlementNotifier()

    # ------------------------------------------------------------------
    # Process
    # ------------------------------------------------------------------

    async def process(self, tender_id: uuid.UUID, admin: Principal) -> PaymentRecord:
        """Settle the payment of an awarded tender.

        Raises:
            TenderNotAwardedError: The tender is not Awarded.
            NoPaymentRecordError: The payment history was cleared.
            AlreadyProcessedError: The payment is already Completed.
            InvalidStateTransitionError: The payment is Processing or Failed.
            SettlementFailedError: The rail rejected or failed the transfer;
                the record is Failed.
        """
        self._authorizer.require(admin, Action.PROCESS_PAYMENT)
        request = await self._begin_settlement(tender_id, admin)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.settlement_timeout_seconds
        reference: str | None = None
        try:
            receipt = await asyncio.wait_for(
                self._rail.submit(request),
                timeout=self._settings.settlement_timeout_seconds,
            )
            reference = receipt.reference
            if not receipt.is_final:
                logger.info("payment.awaiting_confirmation", tender_id=str(tender_id), reference=reference)
                receipt = await asyncio.wait_for(
                    self._rail.wait_for_confirmation(reference),
                    timeout=max(0.0, deadline - loop.time()),
                )
        except TimeoutError:
            logger.warning("payment.settlement_timeout", tender_id=str(tender_id), reference=reference)
            if reference is None:
                # Nothing to reconcile against without a reference
                failure = SettlementRailError(
                    "Settlement timed out before the rail returned a reference; "
                    "the transfer must be checked on the rail by hand"
                )
                await self._finish(tender_id, admin, None, failure=failure)
                raise SettlementFailedError(failure.message) from None
            return await self._leave_in_flight(tender_id, reference)
        except SettlementRailError as exc:
            await self._finish(tender_id, admin, None, failure=exc)
            raise SettlementFailedError(exc.message, exc.settlement_reference) from exc

        return await self._finish(tender_id, admin, receipt)

    async def _begin_settlement(self, tender_id: uuid.UUID, admin: Principal) -> SettlementRequest:
        async def work(session: AsyncSession) -> SettlementRequest:
            repo = TenderRepository(session)
            tender = await self._get_awarded_or_raise(repo, tender_id)
            if tender.payment_status is None:
                raise NoPaymentRecordError(str(tender_id))
            if tender.payment_status == PaymentStatus.COMPLETED.value:
                raise AlreadyProcessedError(str(tender_id))

            new_status = advance(PaymentStateMachine, tender.payment_status, "begin_settlement")
            request = await self._settlement_request(session, tender)

            old_status = tender.payment_status
            tender.payment_status = new_status
            await repo.save(tender)
            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=EventType.PAYMENT_PROCESSING,
                old_status=old_status,
                new_status=new_status,
                actor=str(admin.id),
                metadata={"amount": str(tender.payment_amount)},
            )
            return request

        request = await self._run(work, lock_key=tender_key(tender_id))
        logger.info("payment.processing", tender_id=str(tender_id), amount=str(request.amount))
        return request

    async def _settlement_request(self, session: AsyncSession, tender: Tender) -> SettlementRequest:
        bid = tender.winning_bid()
        payee_address = bid.bidder_address
        if payee_address is None:
            payee = await UserRepository(session).get_by_id(bid.bidder_id)
            payee_address = payee.wallet_address if payee else None
        if self._rail.requires_payee_address and not payee_address:
            raise ValidationError(
                "The winning contractor has no wallet address to pay",
                code="PAYEE_ADDRESS_REQUIRED",
            )
        return SettlementRequest(
            tender_id=str(tender.id),
            bid_id=str(bid.id),
            payee_id=str(bid.bidder_id),
            payee_address=payee_address,
            amount=tender.payment_amount,
        )

    async def _leave_in_flight(self, tender_id: uuid.UUID, reference: str | None) -> PaymentRecord:
        """Keep the record Processing, remembering the reference for reconcile."""

        async def work(session: AsyncSession) -> PaymentRecord:
            repo = TenderRepository(session)
            tender = await self._get_awarded_or_raise(repo, tender_id)
            if reference and tender.payment_status == PaymentStatus.PROCESSING.value:
                tender.settlement_reference = reference
                await repo.save(tender)
            return PaymentRecord.from_tender(tender)

        return await self._run(work, lock_key=tender_key(tender_id))

    async def _finish(
        self,
        tender_id: uuid.UUID,
        actor: Principal,
        receipt: SettlementReceipt | None,
        failure: SettlementRailError | None = None,
    ) -> PaymentRecord:
        """Commit a final outcome; raises SettlementFailedError on a rejected receipt."""
        succeeded = failure is None and receipt.outcome is SettlementOutcome.CONFIRMED
        if failure is not None:
            reference, detail = failure.settlement_reference, failure.message
        else:
            reference, detail = receipt.reference, receipt.detail

        async def work(session: AsyncSession) -> PaymentRecord:
            repo = TenderRepository(session)
            tender = await self._get_awarded_or_raise(repo, tender_id)
            if tender.payment_status != PaymentStatus.PROCESSING.value:
                raise PaymentNotInFlightError(str(tender_id), tender.payment_status)

            old_status = tender.payment_status
            event_name = "confirm_settlement" if succeeded else "fail_settlement"
            tender.payment_status = advance(PaymentStateMachine, old_status, event_name)
            tender.settlement_reference = reference or tender.settlement_reference
            if succeeded:
                tender.payment_date = (receipt.settled_at if receipt else None) or utcnow()
            await repo.save(tender)
            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=EventType.PAYMENT_COMPLETED if succeeded else EventType.PAYMENT_FAILED,
                old_status=old_status,
                new_status=tender.payment_status,
                actor=str(actor.id),
                metadata={"reference": reference, "detail": detail or None},
            )
            return PaymentRecord.from_tender(tender)

        record = await self._run(work, lock_key=tender_key(tender_id))
        event = EventType.PAYMENT_COMPLETED if succeeded else EventType.PAYMENT_FAILED
        if succeeded:
            logger.info("payment.completed", tender_id=str(tender_id), reference=reference)
        else:
            logger.error("payment.failed", tender_id=str(tender_id), reference=reference, detail=detail)

        await publish(
            self._notifier,
            SettlementNotice(
                event=event.value,
                tender_id=str(tender_id),
                payload={"amount": record.amount, "reference": reference or ""},
            ),
            timeout=self._settings.notifier_timeout_seconds,
        )
        if not succeeded and failure is None:
            raise SettlementFailedError(detail or "Settlement rejected", reference)
        return record

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    async def reconcile(self, tender_id: uuid.UUID, admin: Principal) -> PaymentRecord:
        """Poll the rail for a payment left Processing and apply the outcome.

        Returns the record unchanged while the rail still reports PENDING.
        """
        self._authorizer.require(admin, Action.RECONCILE_PAYMENT)
        async with self._read_scope() as session:
            tender = await self._get_awarded_or_raise(TenderRepository(session), tender_id)
            record = PaymentRecord.from_tender(tender)
        if record.status is not PaymentStatus.PROCESSING or not record.settlement_reference:
            raise PaymentNotInFlightError(
                str(tender_id), tender.payment_status, record.settlement_reference
            )

        try:
            receipt = await asyncio.wait_for(
                self._rail.poll(record.settlement_reference),
                timeout=self._settings.settlement_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("payment.reconcile_timeout", tender_id=str(tender_id))
            return record
        except SettlementRailError as exc:
            await self._finish(tender_id, admin, None, failure=exc)
            raise SettlementFailedError(exc.message, exc.settlement_reference) from exc

        if not receipt.is_final:
            logger.info("payment.still_pending", tender_id=str(tender_id))
            return record
        return await self._finish(tender_id, admin, receipt)

    # ------------------------------------------------------------------
    # Clear history
    # ------------------------------------------------------------------

    async def clear_history(self, tender_id: uuid.UUID, admin: Principal) -> Tender:
        """Unset every payment field of an awarded tender.

        The award itself (winning bid, awarded_at, status) is untouched.
        """
        self._authorizer.require(admin, Action.CLEAR_PAYMENT_HISTORY)

        async def work(session: AsyncSession) -> Tender:
            repo = TenderRepository(session)
            tender = await self._get_awarded_or_raise(repo, tender_id)
            old_status = tender.payment_status
            tender.payment_amount = None
            tender.payment_status = None
            tender.payment_date = None
            tender.settlement_reference = None
            await repo.save(tender)
            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=EventType.PAYMENT_HISTORY_CLEARED,
                old_status=old_status,
                new_status=None,
                actor=str(admin.id),
            )
            return tender

        tender = await self._run(work, lock_key=tender_key(tender_id))
        logger.info("payment.history_cleared", tender_id=str(tender_id))
        return tender

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_payment(self, tender_id: uuid.UUID, viewer: Principal) -> PaymentRecord:
        self._authorizer.require(viewer, Action.LIST_ALL_PAYMENTS)
        async with self._read_scope() as session:
            tender = await TenderRepository(session).get_by_id(tender_id)
            if tender is None:
                raise TenderNotFoundError(str(tender_id))
            return PaymentRecord.from_tender(tender)

    async def list_payments(self, admin: Principal) -> list[PaymentRecord]:
        """Every existing payment record, most recent first."""
        self._authorizer.require(admin, Action.LIST_ALL_PAYMENTS)
        async with self._read_scope() as session:
            tenders = await TenderRepository(session).get_with_payment_records()
        return [PaymentRecord.from_tender(t) for t in tenders]

    async def list_contractor_payments(
        self,
        contractor_id: uuid.UUID,
        viewer: Principal,
    ) -> list[PaymentRecord]:
        """Payments owed to or received by one contractor."""
        self._authorizer.require(viewer, Action.LIST_CONTRACTOR_PAYMENTS, owner_id=contractor_id)
        async with self._read_scope() as session:
            tenders = await TenderRepository(session).get_won_by(contractor_id)
        return [PaymentRecord.from_tender(t) for t in tenders if t.payment_status is not None]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _get_awarded_or_raise(repo: TenderRepository, tender_id: uuid.UUID) -> Tender:
        tender = await repo.get_by_id(tender_id)
        if tender is None:
            raise TenderNotFoundError(str(tender_id))
        if tender.status != TenderStatus.AWARDED.value:
            raise TenderNotAwardedError(str(tender_id))
        return tender
