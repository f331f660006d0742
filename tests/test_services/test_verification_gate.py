"""Tests for VerificationGate: requests, reviews and the verified flag."""

from __future__ import annotations

import uuid

import pytest

from tender_clearinghouse.domain.enums import ReviewDecision, VerificationStatus
from tender_clearinghouse.domain.exceptions import (
    AuthorizationError,
    ContractorNotFoundError,
    DuplicatePendingRequestError,
    InvalidStateTransitionError,
    ValidationError,
    VerificationRequestNotFoundError,
)
from tender_clearinghouse.domain.models import Credential
from tender_clearinghouse.infrastructure.database.repositories import UserRepository

LICENSE = {"type": "license", "title": "General Contractor Class A", "issuer": "State Board"}


async def _load_user(session_factory, user_id):  # noqa: ANN001, ANN202
    async with session_factory() as session:
        return await UserRepository(session).get_by_id(user_id)


class TestSubmit:
    async def test_creates_pending_request(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE], notes="Ten years in bridges")

        assert request.status == VerificationStatus.PENDING
        assert request.contractor_id == unverified_contractor.id
        assert request.credentials[0]["title"] == "General Contractor Class A"
        assert request.submitted_at is not None
        assert request.reviewed_at is None

    async def test_accepts_credential_objects(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        request = await gate.submit(
            unverified_contractor, [Credential(type="insurance", title="Liability cover")]
        )
        assert request.credentials[0]["type"] == "insurance"

    async def test_second_open_request_is_rejected(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        await gate.submit(unverified_contractor, [LICENSE])

        with pytest.raises(DuplicatePendingRequestError) as exc_info:
            await gate.submit(unverified_contractor, [LICENSE])
        assert exc_info.value.code == "DUPLICATE_PENDING_REQUEST"

    async def test_request_under_review_still_blocks(
        self, gate, unverified_contractor, verifier  # noqa: ANN001
    ) -> None:
        request = await gate.submit(unverified_contractor, [LICENSE])
        await gate.begin_review(request.id, verifier)

        with pytest.raises(DuplicatePendingRequestError):
            await gate.submit(unverified_contractor, [LICENSE])

    async def test_new_request_allowed_after_decision(
        self, gate, unverified_contractor, verifier  # noqa: ANN001
    ) -> None:
        first = await gate.submit(unverified_contractor, [LICENSE])
        await gate.review(first.id, verifier, ReviewDecision.REJECT, "Expired", "License lapsed")

        second = await gate.submit(unverified_contractor, [LICENSE])
        assert second.id != first.id
        assert second.status == VerificationStatus.PENDING

    async def test_credentials_required(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        with pytest.raises(ValidationError) as exc_info:
            await gate.submit(unverified_contractor, [])
        assert exc_info.value.code == "CREDENTIALS_REQUIRED"

    async def test_credential_needs_type_and_title(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        with pytest.raises(ValidationError) as exc_info:
            await gate.submit(unverified_contractor, [LICENSE, {"type": "license"}])
        assert exc_info.value.code == "INVALID_CREDENTIAL"
        assert "#2" in exc_info.value.message

    async def test_only_contractors_submit(self, gate, verifier) -> None:  # noqa: ANN001
        with pytest.raises(AuthorizationError):
            await gate.submit(verifier, [LICENSE])


class TestReview:
    async def test_approval_verifies_contractor(
        self, gate, session_factory, unverified_contractor, verifier  # noqa: ANN001
    ) -> None:
        request = await gate.submit(unverified_contractor, [LICENSE])

        decided = await gate.review(request.id, verifier, ReviewDecision.APPROVE, "All documents valid")

        assert decided.status == VerificationStatus.APPROVED
        assert decided.verifier_id == verifier.id
        assert decided.reviewed_at is not None
        user = await _load_user(session_factory, unverified_contractor.id)
        assert user.is_verified is True
        assert user.verified_by == verifier.id
        assert user.verified_at is not None

    async def test_rejection_leaves_flag_alone(
        self, gate, session_factory, unverified_contractor, verifier  # noqa: ANN001
    ) -> None:
        request = await gate.submit(unverified_contractor, [LICENSE])

        decided = await gate.review(
            request.id, verifier, "reject", "Insurance missing", "No liability cover"
        )

        assert decided.status == VerificationStatus.REJECTED
        assert decided.rejection_reason == "No liability cover"
        user = await _load_user(session_factory, unverified_contractor.id)
        assert user.is_verified is False

    async def test_review_keeps_submission_notes(self, gate, unverified_contractor, verifier) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE], notes="Ten years in bridges")

        decided = await gate.review(request.id, verifier, "reject", "Licence expired")

        assert decided.notes == "Ten years in bridges"
        assert decided.verification_notes == "Licence expired"

    async def test_review_from_under_review(self, gate, unverified_contractor, verifier) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE])
        claimed = await gate.begin_review(request.id, verifier)
        assert claimed.status == VerificationStatus.UNDER_REVIEW

        decided = await gate.review(request.id, verifier, ReviewDecision.APPROVE, "Checked")
        assert decided.status == VerificationStatus.APPROVED

    async def test_request_is_decided_once(self, gate, unverified_contractor, verifier) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE])
        await gate.review(request.id, verifier, ReviewDecision.APPROVE, "Checked")

        with pytest.raises(InvalidStateTransitionError):
            await gate.review(request.id, verifier, ReviewDecision.REJECT, "Changed my mind")

    async def test_begin_review_twice(self, gate, unverified_contractor, verifier) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE])
        await gate.begin_review(request.id, verifier)

        with pytest.raises(InvalidStateTransitionError):
            await gate.begin_review(request.id, verifier)

    async def test_notes_required(self, gate, unverified_contractor, verifier) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE])
        with pytest.raises(ValidationError) as exc_info:
            await gate.review(request.id, verifier, ReviewDecision.APPROVE, "  ")
        assert exc_info.value.code == "NOTES_REQUIRED"

    async def test_unknown_request(self, gate, verifier) -> None:  # noqa: ANN001
        with pytest.raises(VerificationRequestNotFoundError):
            await gate.review(uuid.uuid4(), verifier, ReviewDecision.APPROVE, "ok")

    async def test_contractor_cannot_review(self, gate, unverified_contractor, contractor) -> None:  # noqa: ANN001
        request = await gate.submit(unverified_contractor, [LICENSE])
        with pytest.raises(AuthorizationError):
            await gate.review(request.id, contractor, ReviewDecision.APPROVE, "Looks fine")


class TestOverride:
    async def test_revoke_clears_stamp(
        self, gate, session_factory, contractor, admin  # noqa: ANN001
    ) -> None:
        user = await gate.set_verification_status(contractor.id, False, admin, notes="Licence revoked")

        assert user.is_verified is False
        assert user.verified_at is None
        assert user.verified_by is None
        assert user.verification_notes == "Licence revoked"
        assert await gate.can_bid(contractor.id) is False

    async def test_grant(self, gate, unverified_contractor, verifier) -> None:  # noqa: ANN001
        user = await gate.set_verification_status(unverified_contractor.id, True, verifier)

        assert user.is_verified is True
        assert user.verified_by == verifier.id
        assert await gate.can_bid(unverified_contractor.id) is True

    async def test_unknown_contractor(self, gate, admin) -> None:  # noqa: ANN001
        with pytest.raises(ContractorNotFoundError):
            await gate.set_verification_status(uuid.uuid4(), True, admin)

    async def test_staff_account_is_not_a_contractor(self, gate, admin, verifier) -> None:  # noqa: ANN001
        with pytest.raises(ContractorNotFoundError):
            await gate.set_verification_status(verifier.id, True, admin)

    async def test_contractor_cannot_self_verify(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        with pytest.raises(AuthorizationError):
            await gate.set_verification_status(unverified_contractor.id, True, unverified_contractor)


class TestQueries:
    async def test_can_bid(self, gate, contractor, unverified_contractor, admin) -> None:  # noqa: ANN001
        assert await gate.can_bid(contractor.id) is True
        assert await gate.can_bid(unverified_contractor.id) is False
        assert await gate.can_bid(admin.id) is False
        assert await gate.can_bid(uuid.uuid4()) is False

    async def test_list_requests_for_staff(
        self, gate, unverified_contractor, make_principal, verifier  # noqa: ANN001
    ) -> None:
        other = await make_principal()
        await gate.submit(unverified_contractor, [LICENSE])
        await gate.submit(other, [LICENSE])

        requests = await gate.list_requests(verifier)
        assert {r.contractor_id for r in requests} == {unverified_contractor.id, other.id}

    async def test_contractor_cannot_list_requests(self, gate, unverified_contractor) -> None:  # noqa: ANN001
        with pytest.raises(AuthorizationError):
            await gate.list_requests(unverified_contractor)

    async def test_get_my_request(
        self, gate, unverified_contractor, contractor  # noqa: ANN001
    ) -> None:
        assert await gate.get_my_request(unverified_contractor) is None

        request = await gate.submit(unverified_contractor, [LICENSE])
        mine = await gate.get_my_request(unverified_contractor)
        assert mine.id == request.id

        assert await gate.get_my_request(contractor) is None
