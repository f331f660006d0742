"""Tender Service — the tender lifecycle.

This is the application layer that coordinates between:
    - RoleAuthorizer (who may do what)
    - TenderStateMachine (transition guard)
    - Repositories (data access)
    - Event log (audit trail)
    - SettlementNotifier (best-effort award notices)

Both the REST routes and the simulation call into this service, so every
lifecycle rule lives here and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from tender_clearinghouse.domain.enums import (
    Action,
    EventType,
    PaymentStatus,
    Role,
    TenderStatus,
)
from tender_clearinghouse.domain.exceptions import (
    AlreadyAwardedError,
    BidNotFoundError,
    TenderNotFoundError,
    ValidationError,
)
from tender_clearinghouse.domain.settlement_protocol import SettlementNotice
from tender_clearinghouse.domain.state_machine import TenderStateMachine, advance
from tender_clearinghouse.infrastructure.database.orm_models import Tender
from tender_clearinghouse.infrastructure.database.repositories import (
    EventRepository,
    TenderRepository,
    UserRepository,
)
from tender_clearinghouse.infrastructure.database.types import utcnow
from tender_clearinghouse.logging_config import get_logger
from tender_clearinghouse.services.base import ServiceBase, tender_key
from tender_clearinghouse.services.notifier import NullSettlementNotifier, publish
from tender_clearinghouse.services.verification_gate import VerificationGate

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tender_clearinghouse.domain.models import Principal
    from tender_clearinghouse.domain.settlement_protocol import SettlementNotifier
    from tender_clearinghouse.infrastructure.database.orm_models import TenderEvent

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000


@dataclass(frozen=True)
class OpenTenderListing:
    """Open tenders as seen by one viewer.

    ``can_bid`` and ``message`` are only meaningful for contractors.
    """

    tenders: list[Tender]
    can_bid: bool
    message: str | None = None


class TenderService(ServiceBase):
    """Creates tenders and moves them through their lifecycle."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        notifier: SettlementNotifier | None = None,
        gate: VerificationGate | None = None,
        **kwargs,
    ) -> None:
        super().__init__(session_factory, **kwargs)
        self._notifier = notifier or NullSettlementNotifier()
        self._gate = gate or VerificationGate(session_factory, **kwargs)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        admin: Principal,
        title: str,
        description: str,
        budget: Decimal | str,
        deadline: datetime,
        min_qualification_score: int = 50,
        max_bids: int = 5,
    ) -> Tender:
        """Publish a new tender in Open state."""
        self._authorizer.require(admin, Action.CREATE_TENDER)
        budget = self._validate_definition(
            title, description, budget, min_qualification_score, max_bids
        )
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=UTC)

        async def work(session: AsyncSession) -> Tender:
            tender = await TenderRepository(session).create(Tender(
                title=title.strip(),
                description=description.strip(),
                budget=budget,
                deadline=deadline,
                min_qualification_score=min_qualification_score,
                max_bids=max_bids,
                creator_id=admin.id,
                status=TenderStatus.OPEN.value,
                bid_count=0,
            ))
            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=EventType.TENDER_CREATED,
                old_status=None,
                new_status=TenderStatus.OPEN,
                actor=str(admin.id),
                metadata={"title": tender.title, "budget": str(budget)},
            )
            return tender

        tender = await self._run(work)
        logger.info("tender.created", tender_id=str(tender.id), budget=str(budget))
        return tender

    @staticmethod
    def _validate_definition(
        title: str,
        description: str,
        budget: Decimal | str,
        min_qualification_score: int,
        max_bids: int,
    ) -> Decimal:
        if not title or not title.strip() or len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Title is required and must be at most {TITLE_MAX_LENGTH} characters",
                code="INVALID_TITLE",
            )
        if not description or not description.strip() or len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description is required and must be at most {DESCRIPTION_MAX_LENGTH} characters",
                code="INVALID_DESCRIPTION",
            )
        try:
            amount = budget if isinstance(budget, Decimal) else Decimal(str(budget))
        except InvalidOperation as err:
            raise ValidationError(f"Not a valid budget: {budget!r}", code="INVALID_BUDGET") from err
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Budget must be a positive amount", code="INVALID_BUDGET")
        if not 0 <= min_qualification_score <= 100:
            raise ValidationError(
                "Minimum qualification score must be between 0 and 100",
                code="INVALID_QUALIFICATION_SCORE",
            )
        if max_bids < 1:
            raise ValidationError("max_bids must be at least 1", code="INVALID_MAX_BIDS")
        return amount

    # ------------------------------------------------------------------
    # Award
    # ------------------------------------------------------------------

    async def award(
        self,
        tender_id: uuid.UUID,
        bid_id: uuid.UUID,
        admin: Principal,
    ) -> Tender:
        """Select the winning bid. Irreversible.

        Opens the payment record at the winning amount with status Pending and
        credits the winner with a completed project.
        """
        self._authorizer.require(admin, Action.AWARD_TENDER)

        async def work(session: AsyncSession) -> Tender:
            repo = TenderRepository(session)
            tender = await self._get_tender_or_raise(repo, tender_id)
            if tender.status != TenderStatus.OPEN.value:
                raise AlreadyAwardedError(str(tender_id), tender.status)

            bid = next((b for b in tender.bids if b.id == bid_id), None)
            if bid is None:
                raise BidNotFoundError(str(bid_id))

            old_status = tender.status
            now = utcnow()
            tender.status = advance(TenderStateMachine, tender.status, "award_bid")
            tender.winning_bid_id = bid.id
            tender.awarded_at = now
            bid.is_winner = True

            tender.payment_amount = bid.amount
            tender.payment_status = PaymentStatus.PENDING.value
            tender.payment_date = None
            tender.settlement_reference = None
            await repo.save(tender)

            winner = await UserRepository(session).get_by_id(bid.bidder_id)
            if winner is not None:
                winner.completed_projects += 1

            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=EventType.TENDER_AWARDED,
                old_status=old_status,
                new_status=tender.status,
                actor=str(admin.id),
                metadata={
                    "bid_id": str(bid.id),
                    "bidder_id": str(bid.bidder_id),
                    "amount": str(bid.amount),
                },
            )
            return tender

        tender = await self._run(work, lock_key=tender_key(tender_id))
        logger.info(
            "tender.awarded",
            tender_id=str(tender_id),
            bid_id=str(bid_id),
            amount=str(tender.payment_amount),
        )
        await publish(
            self._notifier,
            SettlementNotice(
                event=EventType.TENDER_AWARDED.value,
                tender_id=str(tender_id),
                payload={"bid_id": bid_id, "amount": tender.payment_amount},
            ),
            timeout=self._settings.notifier_timeout_seconds,
        )
        return tender

    # ------------------------------------------------------------------
    # Close / reopen / cancel
    # ------------------------------------------------------------------

    async def close(self, tender_id: uuid.UUID, admin: Principal) -> Tender:
        """Stop accepting bids without awarding (Open -> Closed)."""
        self._authorizer.require(admin, Action.CLOSE_TENDER)
        return await self._transition(tender_id, admin, "close_bidding", EventType.TENDER_CLOSED)

    async def reopen(self, tender_id: uuid.UUID, admin: Principal) -> Tender:
        """Resume bidding on a closed tender (Closed -> Open)."""
        self._authorizer.require(admin, Action.REOPEN_TENDER)
        return await self._transition(
            tender_id, admin, "reopen_bidding", EventType.TENDER_REOPENED
        )

    async def cancel(self, tender_id: uuid.UUID, admin: Principal) -> Tender:
        """Withdraw a tender that has not been awarded."""
        self._authorizer.require(admin, Action.CANCEL_TENDER)
        return await self._transition(
            tender_id, admin, "cancel_tender", EventType.TENDER_CANCELLED
        )

    async def _transition(
        self,
        tender_id: uuid.UUID,
        admin: Principal,
        event_name: str,
        event_type: EventType,
    ) -> Tender:
        async def work(session: AsyncSession) -> Tender:
            repo = TenderRepository(session)
            tender = await self._get_tender_or_raise(repo, tender_id)
            old_status = tender.status
            tender.status = advance(TenderStateMachine, tender.status, event_name)
            await repo.save(tender)
            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=event_type,
                old_status=old_status,
                new_status=tender.status,
                actor=str(admin.id),
            )
            return tender

        tender = await self._run(work, lock_key=tender_key(tender_id))
        logger.info("tender.status_changed", tender_id=str(tender_id), status=tender.status)
        return tender

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def list_open(self, viewer: Principal) -> OpenTenderListing:
        """Open tenders, newest first, with the viewer's bidding eligibility."""
        self._authorizer.require(viewer, Action.LIST_OPEN_TENDERS)
        async with self._read_scope() as session:
            tenders = await TenderRepository(session).get_by_status(TenderStatus.OPEN)
            if viewer.role is not Role.CONTRACTOR:
                return OpenTenderListing(tenders=tenders, can_bid=False)
            can_bid = await self._gate.can_bid(viewer.id, session=session)

        message = None if can_bid else (
            "Your account must be verified before you can submit bids. "
            "Submit a verification request to get started."
        )
        return OpenTenderListing(tenders=tenders, can_bid=can_bid, message=message)

    async def get(self, tender_id: uuid.UUID, viewer: Principal) -> Tender:
        self._authorizer.require(viewer, Action.VIEW_TENDER)
        async with self._read_scope() as session:
            return await self._get_tender_or_raise(TenderRepository(session), tender_id)

    async def get_status(self, tender_id: uuid.UUID, viewer: Principal) -> dict:
        """Get tender status with the lifecycle events that may fire next."""
        tender = await self.get(tender_id, viewer)
        sm = TenderStateMachine(current_status=tender.status)
        return {
            "tender_id": tender.id,
            "status": tender.status,
            "payment_status": tender.payment_status,
            "allowed_events": sm.get_allowed_events(),
        }

    async def get_events(self, tender_id: uuid.UUID, admin: Principal) -> list[TenderEvent]:
        """Audit trail of a tender, oldest first."""
        self._authorizer.require(admin, Action.VIEW_TENDER_EVENTS)
        async with self._read_scope() as session:
            await self._get_tender_or_raise(TenderRepository(session), tender_id)
            return await EventRepository(session).get_by_tender(tender_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _get_tender_or_raise(repo: TenderRepository, tender_id: uuid.UUID) -> Tender:
        tender = await repo.get_by_id(tender_id)
        if tender is None:
            raise TenderNotFoundError(str(tender_id))
        return tender
