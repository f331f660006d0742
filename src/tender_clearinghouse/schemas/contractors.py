"""Pydantic schemas for verification requests and the contractor directory."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves field types at runtime
from datetime import date, datetime  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from tender_clearinghouse.domain.enums import ReviewDecision  # noqa: TC001

WALLET_ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class CredentialIn(BaseModel):
    """One credential in a verification request."""

    type: str = Field(..., min_length=1, max_length=100, examples=["license"])
    title: str = Field(..., min_length=1, max_length=200, examples=["General Contractor License"])
    issuer: str | None = Field(default=None, max_length=200)
    issue_date: date | None = None
    expiry_date: date | None = None


class SubmitVerificationRequest(BaseModel):
    """Request body for a contractor's credential submission."""

    credentials: list[CredentialIn] = Field(..., min_length=1)
    notes: str | None = Field(default=None, max_length=1000)


class ReviewVerificationRequest(BaseModel):
    """Request body for a verifier's decision."""

    decision: ReviewDecision
    notes: str = Field(..., min_length=1, max_length=1000)
    rejection_reason: str | None = Field(default=None, max_length=500)


class VerificationStatusRequest(BaseModel):
    """Request body for the administrative verified-flag override."""

    is_verified: bool
    notes: str | None = Field(default=None, max_length=1000)


class VerificationRequestResponse(BaseModel):
    """Response schema for a verification request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    contractor_id: uuid.UUID
    verifier_id: uuid.UUID | None
    status: str
    credentials: list[dict]
    notes: str | None
    verification_notes: str | None
    rejection_reason: str | None
    submitted_at: datetime
    reviewed_at: datetime | None


# ---------------------------------------------------------------------------
# Contractors
# ---------------------------------------------------------------------------


class UpdateContractorRequest(BaseModel):
    """Partial profile update; only the fields sent are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    organization: str | None = Field(default=None, max_length=200)
    wallet_address: str | None = Field(default=None, pattern=WALLET_ADDRESS_PATTERN)


class RateContractorRequest(BaseModel):
    """Request body for rating a contractor."""

    rating: float = Field(..., ge=1, le=5)
    feedback: str = Field(..., min_length=1, max_length=1000)


class ContractorResponse(BaseModel):
    """Response schema for a contractor profile."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    organization: str | None
    wallet_address: str | None
    is_active: bool
    is_verified: bool
    verified_at: datetime | None
    verified_by: uuid.UUID | None
    verification_notes: str | None
    rating: float
    rating_count: int
    completed_projects: int
    created_at: datetime


class VerificationOverviewResponse(BaseModel):
    """Counts of verified and unverified contractors."""

    model_config = ConfigDict(from_attributes=True)

    total: int
    verified: int
    unverified: int
