"""Payment REST API routes.

Routes:
    GET    /api/v1/payments                        — All payment records (admin)
    GET    /api/v1/payments/{tender_id}            — One payment record (admin)
    POST   /api/v1/payments/{tender_id}/process    — Settle a Pending payment
    POST   /api/v1/payments/{tender_id}/reconcile  — Poll a payment left Processing
    DELETE /api/v1/payments/{tender_id}            — Clear payment history
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends

from tender_clearinghouse.api.deps import get_current_principal, get_payment_processor
from tender_clearinghouse.domain.models import Principal  # noqa: TC001
from tender_clearinghouse.schemas.tenders import PaymentRecordResponse, TenderResponse
from tender_clearinghouse.services.payment_processor import PaymentProcessor  # noqa: TC001

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.get(
    "",
    response_model=list[PaymentRecordResponse],
    summary="List payment records",
)
async def list_payments(
    principal: Principal = Depends(get_current_principal),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> list[PaymentRecordResponse]:
    records = await processor.list_payments(principal)
    return [PaymentRecordResponse.model_validate(r) for r in records]


@router.get(
    "/{tender_id}",
    response_model=PaymentRecordResponse,
    summary="Get a payment record",
)
async def get_payment(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> PaymentRecordResponse:
    return PaymentRecordResponse.model_validate(await processor.get_payment(tender_id, principal))


@router.post(
    "/{tender_id}/process",
    response_model=PaymentRecordResponse,
    summary="Process a payment",
)
async def process_payment(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> PaymentRecordResponse:
    """Pending -> Processing -> Completed/Failed.

    Returns the record still Processing when the rail did not confirm in time.
    """
    return PaymentRecordResponse.model_validate(await processor.process(tender_id, principal))


@router.post(
    "/{tender_id}/reconcile",
    response_model=PaymentRecordResponse,
    summary="Reconcile an in-flight payment",
)
async def reconcile_payment(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> PaymentRecordResponse:
    return PaymentRecordResponse.model_validate(await processor.reconcile(tender_id, principal))


@router.delete(
    "/{tender_id}",
    response_model=TenderResponse,
    summary="Clear payment history",
)
async def clear_payment_history(
    tender_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> TenderResponse:
    """Unset the payment record; the award stays in place."""
    return TenderResponse.from_tender(await processor.clear_history(tender_id, principal))
