"""Contractor directory REST API routes.

Routes:
    GET    /api/v1/contractors                          — All contractors (verifier/admin)
    GET    /api/v1/contractors/verification-overview    — Verified/unverified counts
    GET    /api/v1/contractors/{id}                     — Profile (owner or staff)
    PATCH  /api/v1/contractors/{id}                     — Update profile (owner or staff)
    DELETE /api/v1/contractors/{id}                     — Delete (admin)
    PUT    /api/v1/contractors/{id}/verification-status — Override verified flag
    POST   /api/v1/contractors/{id}/ratings             — Rate a contractor
    GET    /api/v1/contractors/{id}/bids                — Contractor's bids
    GET    /api/v1/contractors/{id}/payments            — Contractor's payments
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends

from tender_clearinghouse.api.deps import (
    get_bid_ledger,
    get_contractor_service,
    get_current_principal,
    get_payment_processor,
    get_verification_gate,
)
from tender_clearinghouse.domain.models import Principal  # noqa: TC001
from tender_clearinghouse.schemas.contractors import (
    ContractorResponse,
    RateContractorRequest,
    UpdateContractorRequest,
    VerificationOverviewResponse,
    VerificationStatusRequest,
)
from tender_clearinghouse.schemas.tenders import ContractorBidResponse, PaymentRecordResponse
from tender_clearinghouse.services.bid_ledger import BidLedger  # noqa: TC001
from tender_clearinghouse.services.contractor_service import ContractorService  # noqa: TC001
from tender_clearinghouse.services.payment_processor import PaymentProcessor  # noqa: TC001
from tender_clearinghouse.services.verification_gate import VerificationGate  # noqa: TC001

router = APIRouter(prefix="/api/v1/contractors", tags=["Contractors"])


@router.get(
    "",
    response_model=list[ContractorResponse],
    summary="List contractors",
)
async def list_contractors(
    principal: Principal = Depends(get_current_principal),
    svc: ContractorService = Depends(get_contractor_service),
) -> list[ContractorResponse]:
    return [ContractorResponse.model_validate(c) for c in await svc.list_contractors(principal)]


@router.get(
    "/verification-overview",
    response_model=VerificationOverviewResponse,
    summary="Verification counts",
)
async def verification_overview(
    principal: Principal = Depends(get_current_principal),
    svc: ContractorService = Depends(get_contractor_service),
) -> VerificationOverviewResponse:
    return VerificationOverviewResponse.model_validate(await svc.verification_overview(principal))


@router.get(
    "/{contractor_id}",
    response_model=ContractorResponse,
    summary="Get a contractor profile",
)
async def get_contractor(
    contractor_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: ContractorService = Depends(get_contractor_service),
) -> ContractorResponse:
    return ContractorResponse.model_validate(await svc.get_contractor(contractor_id, principal))


@router.patch(
    "/{contractor_id}",
    response_model=ContractorResponse,
    summary="Update a contractor profile",
)
async def update_contractor(
    contractor_id: uuid.UUID,
    request: UpdateContractorRequest,
    principal: Principal = Depends(get_current_principal),
    svc: ContractorService = Depends(get_contractor_service),
) -> ContractorResponse:
    contractor = await svc.update_contractor(
        contractor_id, principal, request.model_dump(exclude_unset=True)
    )
    return ContractorResponse.model_validate(contractor)


@router.delete(
    "/{contractor_id}",
    status_code=204,
    summary="Delete a contractor",
)
async def delete_contractor(
    contractor_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    svc: ContractorService = Depends(get_contractor_service),
) -> None:
    await svc.delete_contractor(contractor_id, principal)


@router.put(
    "/{contractor_id}/verification-status",
    response_model=ContractorResponse,
    summary="Override a contractor's verified flag",
)
async def set_verification_status(
    contractor_id: uuid.UUID,
    request: VerificationStatusRequest,
    principal: Principal = Depends(get_current_principal),
    gate: VerificationGate = Depends(get_verification_gate),
) -> ContractorResponse:
    contractor = await gate.set_verification_status(
        contractor_id, request.is_verified, principal, notes=request.notes
    )
    return ContractorResponse.model_validate(contractor)


@router.post(
    "/{contractor_id}/ratings",
    response_model=ContractorResponse,
    summary="Rate a contractor",
)
async def rate_contractor(
    contractor_id: uuid.UUID,
    request: RateContractorRequest,
    principal: Principal = Depends(get_current_principal),
    svc: ContractorService = Depends(get_contractor_service),
) -> ContractorResponse:
    contractor = await svc.rate_contractor(
        contractor_id, principal, rating=request.rating, feedback=request.feedback
    )
    return ContractorResponse.model_validate(contractor)


@router.get(
    "/{contractor_id}/bids",
    response_model=list[ContractorBidResponse],
    summary="List a contractor's bids",
)
async def list_contractor_bids(
    contractor_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    ledger: BidLedger = Depends(get_bid_ledger),
) -> list[ContractorBidResponse]:
    pairs = await ledger.list_bids_by_contractor(contractor_id, principal)
    return [ContractorBidResponse.from_pair(bid, tender) for bid, tender in pairs]


@router.get(
    "/{contractor_id}/payments",
    response_model=list[PaymentRecordResponse],
    summary="List a contractor's payments",
)
async def list_contractor_payments(
    contractor_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> list[PaymentRecordResponse]:
    records = await processor.list_contractor_payments(contractor_id, principal)
    return [PaymentRecordResponse.model_validate(r) for r in records]
