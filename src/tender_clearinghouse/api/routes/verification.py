"""Verification request REST API routes.

Routes:
    POST   /api/v1/verification/requests                   — Submit credentials (contractor)
    GET    /api/v1/verification/requests/mine              — Caller's latest request
    GET    /api/v1/verification/requests                   — All requests (verifier/admin)
    POST   /api/v1/verification/requests/{id}/start-review — pending -> under_review
    POST   /api/v1/verification/requests/{id}/review       — Approve or reject
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends

from tender_clearinghouse.api.deps import get_current_principal, get_verification_gate
from tender_clearinghouse.domain.models import Principal  # noqa: TC001
from tender_clearinghouse.schemas.contractors import (
    ReviewVerificationRequest,
    SubmitVerificationRequest,
    VerificationRequestResponse,
)
from tender_clearinghouse.services.verification_gate import VerificationGate  # noqa: TC001

router = APIRouter(prefix="/api/v1/verification", tags=["Verification"])


@router.post(
    "/requests",
    response_model=VerificationRequestResponse,
    status_code=201,
    summary="Submit a verification request",
)
async def submit_verification_request(
    request: SubmitVerificationRequest,
    principal: Principal = Depends(get_current_principal),
    gate: VerificationGate = Depends(get_verification_gate),
) -> VerificationRequestResponse:
    created = await gate.submit(
        principal,
        [credential.model_dump() for credential in request.credentials],
        notes=request.notes,
    )
    return VerificationRequestResponse.model_validate(created)


@router.get(
    "/requests/mine",
    response_model=VerificationRequestResponse | None,
    summary="Get my latest verification request",
)
async def get_my_verification_request(
    principal: Principal = Depends(get_current_principal),
    gate: VerificationGate = Depends(get_verification_gate),
) -> VerificationRequestResponse | None:
    request = await gate.get_my_request(principal)
    return VerificationRequestResponse.model_validate(request) if request else None


@router.get(
    "/requests",
    response_model=list[VerificationRequestResponse],
    summary="List verification requests",
)
async def list_verification_requests(
    principal: Principal = Depends(get_current_principal),
    gate: VerificationGate = Depends(get_verification_gate),
) -> list[VerificationRequestResponse]:
    requests = await gate.list_requests(principal)
    return [VerificationRequestResponse.model_validate(r) for r in requests]


@router.post(
    "/requests/{request_id}/start-review",
    response_model=VerificationRequestResponse,
    summary="Start reviewing a request",
)
async def start_review(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    gate: VerificationGate = Depends(get_verification_gate),
) -> VerificationRequestResponse:
    return VerificationRequestResponse.model_validate(
        await gate.begin_review(request_id, principal)
    )


@router.post(
    "/requests/{request_id}/review",
    response_model=VerificationRequestResponse,
    summary="Approve or reject a request",
)
async def review_verification_request(
    request_id: uuid.UUID,
    request: ReviewVerificationRequest,
    principal: Principal = Depends(get_current_principal),
    gate: VerificationGate = Depends(get_verification_gate),
) -> VerificationRequestResponse:
    """Approval marks the contractor verified; rejection leaves them as they were."""
    reviewed = await gate.review(
        request_id,
        principal,
        decision=request.decision,
        notes=request.notes,
        rejection_reason=request.rejection_reason,
    )
    return VerificationRequestResponse.model_validate(reviewed)
