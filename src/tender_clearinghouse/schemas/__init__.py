"""Pydantic API schemas."""

from tender_clearinghouse.schemas.common import ErrorResponse, HealthResponse
from tender_clearinghouse.schemas.contractors import (
    ContractorResponse,
    CredentialIn,
    RateContractorRequest,
    ReviewVerificationRequest,
    SubmitVerificationRequest,
    UpdateContractorRequest,
    VerificationOverviewResponse,
    VerificationRequestResponse,
    VerificationStatusRequest,
)
from tender_clearinghouse.schemas.tenders import (
    AwardTenderRequest,
    BidResponse,
    ContractorBidResponse,
    CreateTenderRequest,
    OpenTendersResponse,
    PaymentRecordResponse,
    SubmitBidRequest,
    TenderEventResponse,
    TenderResponse,
    TenderStatusResponse,
)

__all__ = [
    "AwardTenderRequest",
    "BidResponse",
    "ContractorBidResponse",
    "ContractorResponse",
    "CreateTenderRequest",
    "CredentialIn",
    "ErrorResponse",
    "HealthResponse",
    "OpenTendersResponse",
    "PaymentRecordResponse",
    "RateContractorRequest",
    "ReviewVerificationRequest",
    "SubmitBidRequest",
    "SubmitVerificationRequest",
    "TenderEventResponse",
    "TenderResponse",
    "TenderStatusResponse",
    "UpdateContractorRequest",
    "VerificationOverviewResponse",
    "VerificationRequestResponse",
    "VerificationStatusRequest",
]
