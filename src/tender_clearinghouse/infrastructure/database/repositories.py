"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from tender_clearinghouse.domain.enums import Role, TenderStatus, VerificationStatus
from tender_clearinghouse.infrastructure.database.orm_models import (
    Bid,
    ContractorFeedback,
    Tender,
    TenderEvent,
    User,
    VerificationRequest,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from tender_clearinghouse.domain.enums import EventType


class UserRepository:
    """Data access for principals and the contractor directory."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: User) -> User:
        """Insert a new user (used by the identity subsystem, seeds and tests)."""
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_contractor(self, contractor_id: uuid.UUID) -> User | None:
        """Fetch a user only if it is a contractor."""
        result = await self._session.execute(
            select(User).where(User.id == contractor_id, User.role == Role.CONTRACTOR.value)
        )
        return result.scalar_one_or_none()

    async def list_contractors(self) -> list[User]:
        """All contractors, newest first."""
        result = await self._session.execute(
            select(User)
            .where(User.role == Role.CONTRACTOR.value)
            .order_by(User.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_contractors(self, verified: bool | None = None) -> int:
        query = select(func.count()).select_from(User).where(User.role == Role.CONTRACTOR.value)
        if verified is not None:
            query = query.where(User.is_verified.is_(verified))
        result = await self._session.execute(query)
        return int(result.scalar_one())

    async def delete_contractor(self, contractor: User) -> None:
        """Delete a contractor with the records that only make sense with it.

        Bids are historical parts of their tenders and stay untouched.
        """
        await self._session.execute(
            delete(VerificationRequest).where(VerificationRequest.contractor_id == contractor.id)
        )
        await self._session.execute(
            delete(ContractorFeedback).where(ContractorFeedback.contractor_id == contractor.id)
        )
        await self._session.delete(contractor)
        await self._session.flush()

    async def add_feedback(self, feedback: ContractorFeedback) -> ContractorFeedback:
        self._session.add(feedback)
        await self._session.flush()
        return feedback

    async def get_feedback(self, contractor_id: uuid.UUID) -> list[ContractorFeedback]:
        result = await self._session.execute(
            select(ContractorFeedback)
            .where(ContractorFeedback.contractor_id == contractor_id)
            .order_by(ContractorFeedback.rated_at.asc())
        )
        return list(result.scalars().all())

    async def flush(self) -> None:
        await self._session.flush()


class TenderRepository:
    """Data access for the tender aggregate (bids load with it)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, tender: Tender) -> Tender:
        """Insert a new tender."""
        self._session.add(tender)
        await self._session.flush()
        return tender

    async def get_by_id(self, tender_id: uuid.UUID) -> Tender | None:
        """Fetch a tender (and its bids) by its UUID."""
        result = await self._session.execute(select(Tender).where(Tender.id == tender_id))
        return result.scalar_one_or_none()

    async def get_by_status(self, status: TenderStatus) -> list[Tender]:
        """Fetch all tenders with a given status, newest first."""
        result = await self._session.execute(
            select(Tender)
            .where(Tender.status == status.value)
            .order_by(Tender.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_with_payment_records(self) -> list[Tender]:
        """Awarded tenders that still carry a payment record, latest payment first."""
        result = await self._session.execute(
            select(Tender)
            .where(
                Tender.status == TenderStatus.AWARDED.value,
                Tender.payment_status.is_not(None),
            )
            .order_by(Tender.payment_date.desc(), Tender.awarded_at.desc())
        )
        return list(result.scalars().all())

    async def get_won_by(self, contractor_id: uuid.UUID) -> list[Tender]:
        """Awarded tenders whose winning bid belongs to ``contractor_id``."""
        result = await self._session.execute(
            select(Tender)
            .join(Bid, Bid.id == Tender.winning_bid_id)
            .where(
                Tender.status == TenderStatus.AWARDED.value,
                Bid.bidder_id == contractor_id,
            )
            .order_by(Tender.awarded_at.desc())
        )
        return list(result.scalars().all())

    async def save(self, tender: Tender) -> Tender:
        """Flush pending changes; the version check fires here."""
        await self._session.flush()
        return tender


class BidRepository:
    """Read-only queries across tenders (writes go through TenderRepository)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_bidder(self, bidder_id: uuid.UUID) -> list[tuple[Bid, Tender]]:
        """All bids placed by a contractor with their tender, newest first."""
        result = await self._session.execute(
            select(Bid, Tender)
            .join(Tender, Tender.id == Bid.tender_id)
            .where(Bid.bidder_id == bidder_id)
            .order_by(Bid.submitted_at.desc())
        )
        return [(bid, tender) for bid, tender in result.all()]


class VerificationRepository:
    """Data access for verification requests."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, request: VerificationRequest) -> VerificationRequest:
        self._session.add(request)
        await self._session.flush()
        return request

    async def get_by_id(self, request_id: uuid.UUID) -> VerificationRequest | None:
        result = await self._session.execute(
            select(VerificationRequest).where(VerificationRequest.id == request_id)
        )
        return result.scalar_one_or_none()

    async def get_open_for_contractor(
        self, contractor_id: uuid.UUID
    ) -> VerificationRequest | None:
        """The contractor's pending or under-review request, if any."""
        open_values = [s.value for s in VerificationStatus.open_states()]
        result = await self._session.execute(
            select(VerificationRequest).where(
                VerificationRequest.contractor_id == contractor_id,
                VerificationRequest.status.in_(open_values),
            )
        )
        return result.scalars().first()

    async def get_latest_for_contractor(
        self, contractor_id: uuid.UUID
    ) -> VerificationRequest | None:
        result = await self._session.execute(
            select(VerificationRequest)
            .where(VerificationRequest.contractor_id == contractor_id)
            .order_by(VerificationRequest.submitted_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[VerificationRequest]:
        """All requests from existing contractors, newest first."""
        result = await self._session.execute(
            select(VerificationRequest)
            .join(User, User.id == VerificationRequest.contractor_id)
            .order_by(VerificationRequest.submitted_at.desc())
        )
        return list(result.scalars().all())

    async def save(self, request: VerificationRequest) -> VerificationRequest:
        await self._session.flush()
        return request


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        tender_id: uuid.UUID,
        event_type: EventType,
        old_status: str | None,
        new_status: str | None,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> TenderEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = TenderEvent(
            tender_id=tender_id,
            event_type=event_type.value,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_tender(self, tender_id: uuid.UUID) -> list[TenderEvent]:
        """Fetch all events for a tender in chronological order."""
        result = await self._session.execute(
            select(TenderEvent)
            .where(TenderEvent.tender_id == tender_id)
            .order_by(TenderEvent.created_at.asc())
        )
        return list(result.scalars().all())
