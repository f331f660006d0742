"""Pydantic schemas for tenders, bids and payments.

These schemas define the request/response shapes for the REST API. They
are separate from the ORM models to keep the API and database layers apart.
Amounts are Decimals and serialize as strings, so no client ever sees a
float for money.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves field types at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from tender_clearinghouse.domain.enums import PaymentStatus  # noqa: TC001

if TYPE_CHECKING:
    from tender_clearinghouse.infrastructure.database.orm_models import Bid, Tender

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateTenderRequest(BaseModel):
    """Request body for publishing a new tender."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        examples=["Riverside pedestrian bridge"],
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        examples=["Design and construction of a 40m steel pedestrian bridge"],
    )
    budget: Decimal = Field(
        ...,
        gt=0,
        description="Budget in the platform currency unit",
        examples=["250000"],
    )
    deadline: datetime = Field(..., description="Bidding deadline (ISO 8601)")
    min_qualification_score: int = Field(default=50, ge=0, le=100)
    max_bids: int = Field(default=5, ge=1)


class SubmitBidRequest(BaseModel):
    """Request body for bidding on a tender.

    The amount is not range-checked here: the platform minimum is a business
    rule and is reported as BID_TOO_LOW by the service.
    """

    amount: Decimal = Field(..., examples=["60"])
    estimated_duration_days: int = Field(..., ge=1, examples=[90])
    proposal: str = Field(..., min_length=1, max_length=2000)


class AwardTenderRequest(BaseModel):
    """Request body for selecting the winning bid."""

    bid_id: uuid.UUID


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class PaymentRecordResponse(BaseModel):
    """Payment record of an awarded tender."""

    model_config = ConfigDict(from_attributes=True)

    tender_id: uuid.UUID
    amount: Decimal | None
    status: PaymentStatus | None
    date: datetime | None
    settlement_reference: str | None


class BidResponse(BaseModel):
    """Response schema for a bid."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tender_id: uuid.UUID
    bidder_id: uuid.UUID
    bidder_address: str | None
    amount: Decimal
    estimated_duration_days: int
    proposal: str
    sequence: int
    is_winner: bool
    submitted_at: datetime


class ContractorBidResponse(BidResponse):
    """A bid listed on a contractor's dashboard, with its tender."""

    tender_title: str
    tender_status: str

    @classmethod
    def from_pair(cls, bid: Bid, tender: Tender) -> ContractorBidResponse:
        base = BidResponse.model_validate(bid).model_dump()
        return cls(**base, tender_title=tender.title, tender_status=tender.status)


class TenderResponse(BaseModel):
    """Response schema for a tender (bids are listed separately)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str
    budget: Decimal
    deadline: datetime
    min_qualification_score: int
    max_bids: int
    status: str
    creator_id: uuid.UUID
    bid_count: int
    winning_bid_id: uuid.UUID | None
    awarded_at: datetime | None
    payment: PaymentRecordResponse | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_tender(cls, tender: Tender) -> TenderResponse:
        response = cls.model_validate(tender)
        if tender.payment_status is not None:
            response.payment = PaymentRecordResponse(
                tender_id=tender.id,
                amount=tender.payment_amount,
                status=tender.payment_status,
                date=tender.payment_date,
                settlement_reference=tender.settlement_reference,
            )
        return response


class OpenTendersResponse(BaseModel):
    """Open tenders plus the caller's eligibility to bid."""

    tenders: list[TenderResponse]
    can_bid: bool
    message: str | None = None


class TenderEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tender_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str | None
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class TenderStatusResponse(BaseModel):
    """Lightweight status check response."""

    tender_id: uuid.UUID
    status: str
    payment_status: PaymentStatus | None
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
