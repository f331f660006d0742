"""BidLedger — admission and storage of bids against a tender.

Admission checks run in a fixed order and the first failure wins:

    1. tender exists                 TenderNotFoundError
    2. tender is Open                TenderNotOpenError
    3. contractor may bid            NotVerifiedError
    4. no earlier bid from them      DuplicateBidError
    5. amount >= minimum             BidTooLowError
    6. deadline (if enforced)        BiddingDeadlinePassedError
    7. max_bids (if enforced)        MaxBidsReachedError

Checks and append happen inside one transaction under the tender's lock,
and the append bumps the tender's version, so two submissions for the same
tender can never interleave. The (tender_id, bidder_id) unique constraint
is the last line of defence across processes.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from tender_clearinghouse.domain.enums import Action, EventType, Role, TenderStatus
from tender_clearinghouse.domain.exceptions import (
    BiddingDeadlinePassedError,
    BidTooLowError,
    ConcurrentUpdateError,
    DuplicateBidError,
    MaxBidsReachedError,
    NotVerifiedError,
    TenderNotFoundError,
    TenderNotOpenError,
    ValidationError,
)
from tender_clearinghouse.infrastructure.database.orm_models import Bid, Tender
from tender_clearinghouse.infrastructure.database.repositories import (
    BidRepository,
    EventRepository,
    TenderRepository,
    UserRepository,
)
from tender_clearinghouse.infrastructure.database.types import utcnow
from tender_clearinghouse.logging_config import get_logger
from tender_clearinghouse.services.base import ServiceBase, tender_key
from tender_clearinghouse.services.verification_gate import VerificationGate

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tender_clearinghouse.domain.models import Principal

logger = get_logger(__name__)


def _as_amount(value: Decimal | str | int) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as err:
        raise ValidationError(f"Not a valid amount: {value!r}", code="INVALID_AMOUNT") from err
    if not amount.is_finite():
        raise ValidationError(f"Not a valid amount: {value!r}", code="INVALID_AMOUNT")
    return amount


def _is_duplicate_bidder_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return "uq_bid_tender_bidder" in text or "bids.bidder_id" in text


class BidLedger(ServiceBase):
    """Owns the bids embedded in each tender."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        gate: VerificationGate | None = None,
        **kwargs,
    ) -> None:
        super().__init__(session_factory, **kwargs)
        self._gate = gate or VerificationGate(session_factory, **kwargs)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_bid(
        self,
        tender_id: uuid.UUID,
        contractor: Principal,
        amount: Decimal | str | int,
        estimated_duration_days: int,
        proposal: str,
    ) -> Bid:
        """Admit a bid and append it to the tender."""
        self._authorizer.require(contractor, Action.SUBMIT_BID)
        amount = _as_amount(amount)
        if estimated_duration_days < 1:
            raise ValidationError(
                "Estimated duration must be at least one day", code="INVALID_DURATION"
            )
        if not proposal or not proposal.strip():
            raise ValidationError("Proposal is required", code="PROPOSAL_REQUIRED")

        async def work(session: AsyncSession) -> Bid:
            tender = await TenderRepository(session).get_by_id(tender_id)
            await self._check_admission(session, tender, tender_id, contractor, amount)

            bidder = await UserRepository(session).get_by_id(contractor.id)
            bid = Bid(
                bidder_id=contractor.id,
                bidder_address=bidder.wallet_address if bidder else None,
                amount=amount,
                estimated_duration_days=estimated_duration_days,
                proposal=proposal,
                sequence=tender.bid_count,
                is_winner=False,
                submitted_at=utcnow(),
            )
            tender.bids.append(bid)
            tender.bid_count += 1
            await TenderRepository(session).save(tender)

            await EventRepository(session).record(
                tender_id=tender.id,
                event_type=EventType.BID_SUBMITTED,
                old_status=tender.status,
                new_status=tender.status,
                actor=str(contractor.id),
                metadata={"bid_id": str(bid.id), "amount": str(amount)},
            )
            return bid

        try:
            bid = await self._run(work, lock_key=tender_key(tender_id))
        except IntegrityError as exc:
            if _is_duplicate_bidder_violation(exc):
                raise DuplicateBidError(str(tender_id), str(contractor.id)) from exc
            logger.warning("bid.integrity_conflict", tender_id=str(tender_id), error=str(exc.orig))
            raise ConcurrentUpdateError("Tender") from exc

        logger.info(
            "bid.submitted",
            tender_id=str(tender_id),
            bid_id=str(bid.id),
            contractor_id=str(contractor.id),
            amount=str(amount),
            sequence=bid.sequence,
        )
        return bid

    async def _check_admission(
        self,
        session: AsyncSession,
        tender: Tender | None,
        tender_id: uuid.UUID,
        contractor: Principal,
        amount: Decimal,
    ) -> None:
        if tender is None:
            raise TenderNotFoundError(str(tender_id))
        if tender.status != TenderStatus.OPEN.value:
            raise TenderNotOpenError(str(tender_id), tender.status)
        if not await self._gate.can_bid(contractor.id, session=session):
            raise NotVerifiedError(str(contractor.id))
        if any(bid.bidder_id == contractor.id for bid in tender.bids):
            raise DuplicateBidError(str(tender_id), str(contractor.id))

        minimum = self._settings.min_bid_amount
        if amount < minimum:
            raise BidTooLowError(str(amount), str(minimum))

        if self._settings.enforce_bid_deadline and utcnow() > tender.deadline:
            raise BiddingDeadlinePassedError(str(tender_id))
        if self._settings.enforce_max_bids and tender.bid_count >= tender.max_bids:
            raise MaxBidsReachedError(str(tender_id), tender.max_bids)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_bids(self, tender_id: uuid.UUID, viewer: Principal) -> list[Bid]:
        """Bids of a tender in submission order. Contractors see only their own."""
        self._authorizer.require(viewer, Action.LIST_BIDS)
        async with self._read_scope() as session:
            tender = await TenderRepository(session).get_by_id(tender_id)
            if tender is None:
                raise TenderNotFoundError(str(tender_id))
            bids = list(tender.bids)

        if viewer.role is Role.CONTRACTOR:
            return [bid for bid in bids if bid.bidder_id == viewer.id]
        return bids

    async def list_bids_by_contractor(
        self,
        contractor_id: uuid.UUID,
        viewer: Principal,
    ) -> list[tuple[Bid, Tender]]:
        """Every bid a contractor has placed, with its tender, newest first."""
        self._authorizer.require(viewer, Action.LIST_CONTRACTOR_BIDS, owner_id=contractor_id)
        async with self._read_scope() as session:
            return await BidRepository(session).get_by_bidder(contractor_id)
