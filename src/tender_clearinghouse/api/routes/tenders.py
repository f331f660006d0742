"""Tender and bid REST API routes.

Routes:
    POST   /api/v1/tenders                   — Publish a tender (admin)
    GET    /api/v1/tenders/open              — Open tenders + caller's can_bid flag
    GET    /api/v1/tenders/{id}              — Tender details
    GET    /api/v1/tenders/{id}/status       — Lightweight status check
    GET    /api/v1/tenders/{id}/events       — Audit trail (admin)
    POST   /api/v1/tenders/{id}/bids         — Submit a bid (verified contractor)
    GET    /api/v1/tenders/{id}/bids         — List bids (contractors see their own)
    POST   /api/v1/tenders/{id}/award        — Award a bid (admin)
    POST   /api/v1/tenders/{id}/close        — Stop bidding (admin)
    POST   /api/v1/tenders/{id}/reopen       — Resume bidding (admin)
    POST   /api/v1/tenders/{id}/cancel       — Cancel (admin)
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends

from tender_clearinghouse.api.deps import get_bid_ledger, get_current_principal, get_tender_service
from tender_clearinghouse.domain.models import Principal  # noqa: TC001
from tender_clearinghouse.schemas.tenders import (
    AwardTenderRequest,
    BidResponse,
    CreateTenderRequest,
    OpenTendersResponse,
    SubmitBidRequest,
    TenderEventResponse,
    TenderResponse,
    TenderStatusResponse,
)
from tender_clearinghouse.services.bid_ledger import BidLedger  # noqa: TC001
from tender_clearinghouse.services.tender_service import TenderService  # noqa: TC001

router = APIRouter(prefix="/api/v1/tenders", tags=["Tenders"])


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TenderResponse,
    status_code=201,
    summary="Publish a new tender",
)
async def create_tender(
    request: CreateTenderRequest,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderResponse:
    """Create a tender in Open state."""
    tender = await svc.create(
        admin=principal,
        title=request.title,
        description=request.description,
        budget=request.budget,
        deadline=request.deadline,
        min_qualification_score=request.min_qualification_score,
        max_bids=request.max_bids,
    )
    return TenderResponse.from_tender(tender)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get(
    "/open",
    response_model=OpenTendersResponse,
    summary="List open tenders",
)
async def list_open_tenders(
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> OpenTendersResponse:
    listing = await svc.list_open(principal)
    return OpenTendersResponse(
        tenders=[TenderResponse.from_tender(t) for t in listing.tenders],
        can_bid=listing.can_bid,
        message=listing.message,
    )


@router.get(
    "/{tender_id}",
    response_model=TenderResponse,
    summary="Get tender details",
)
async def get_tender(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderResponse:
    return TenderResponse.from_tender(await svc.get(tender_id, principal))


@router.get(
    "/{tender_id}/status",
    response_model=TenderStatusResponse,
    summary="Get tender status",
)
async def get_tender_status(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderStatusResponse:
    """Current status and the lifecycle events allowed from it."""
    return TenderStatusResponse(**await svc.get_status(tender_id, principal))


@router.get(
    "/{tender_id}/events",
    response_model=list[TenderEventResponse],
    summary="Get tender audit trail",
)
async def get_tender_events(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> list[TenderEventResponse]:
    events = await svc.get_events(tender_id, principal)
    return [TenderEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------------


@router.post(
    "/{tender_id}/bids",
    response_model=BidResponse,
    status_code=201,
    summary="Submit a bid",
)
async def submit_bid(
    tender_id: uuid.UUID,
    request: SubmitBidRequest,
    principal: Principal = Depends(get_current_principal),
    ledger: BidLedger = Depends(get_bid_ledger),
) -> BidResponse:
    bid = await ledger.submit_bid(
        tender_id=tender_id,
        contractor=principal,
        amount=request.amount,
        estimated_duration_days=request.estimated_duration_days,
        proposal=request.proposal,
    )
    return BidResponse.model_validate(bid)


@router.get(
    "/{tender_id}/bids",
    response_model=list[BidResponse],
    summary="List bids on a tender",
)
async def list_bids(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    ledger: BidLedger = Depends(get_bid_ledger),
) -> list[BidResponse]:
    bids = await ledger.list_bids(tender_id, principal)
    return [BidResponse.model_validate(b) for b in bids]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/{tender_id}/award",
    response_model=TenderResponse,
    summary="Award a tender to a bid",
)
async def award_tender(
    tender_id: uuid.UUID,
    request: AwardTenderRequest,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderResponse:
    """Open -> Awarded. Irreversible; opens a Pending payment record."""
    tender = await svc.award(tender_id, request.bid_id, principal)
    return TenderResponse.from_tender(tender)


@router.post(
    "/{tender_id}/close",
    response_model=TenderResponse,
    summary="Close bidding",
)
async def close_tender(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderResponse:
    return TenderResponse.from_tender(await svc.close(tender_id, principal))


@router.post(
    "/{tender_id}/reopen",
    response_model=TenderResponse,
    summary="Reopen bidding",
)
async def reopen_tender(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderResponse:
    return TenderResponse.from_tender(await svc.reopen(tender_id, principal))


@router.post(
    "/{tender_id}/cancel",
    response_model=TenderResponse,
    summary="Cancel a tender",
)
async def cancel_tender(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: TenderService = Depends(get_tender_service),
) -> TenderResponse:
    return TenderResponse.from_tender(await svc.cancel(tender_id, principal))
