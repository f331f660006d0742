"""VerificationGate — the contractor credential-review workflow.

Owns verification requests and is the only writer of a contractor's
``is_verified`` flag. Two paths reach that flag:

    review(..., approve)        a verifier decides a request
    set_verification_status()   a verifier/admin overrides it directly

Both go through ``_set_verified`` so they stamp and clear the same columns.
BidLedger only ever reads the flag, via ``can_bid``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from tender_clearinghouse.domain.enums import Action, ReviewDecision, Role, VerificationStatus
from tender_clearinghouse.domain.exceptions import (
    ContractorNotFoundError,
    DuplicatePendingRequestError,
    ValidationError,
    VerificationRequestNotFoundError,
)
from tender_clearinghouse.domain.models import Credential
from tender_clearinghouse.domain.state_machine import VerificationStateMachine, advance
from tender_clearinghouse.infrastructure.database.orm_models import User, VerificationRequest
from tender_clearinghouse.infrastructure.database.repositories import (
    UserRepository,
    VerificationRepository,
)
from tender_clearinghouse.infrastructure.database.types import utcnow
from tender_clearinghouse.logging_config import get_logger
from tender_clearinghouse.services.base import ServiceBase, contractor_key

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from tender_clearinghouse.domain.models import Principal

logger = get_logger(__name__)

_DECISION_EVENTS = {
    ReviewDecision.APPROVE: "approve",
    ReviewDecision.REJECT: "reject",
}


def _normalize_credentials(credentials: Sequence[Credential | dict]) -> list[dict]:
    if not credentials:
        raise ValidationError("At least one credential is required", code="CREDENTIALS_REQUIRED")
    normalized = []
    for position, item in enumerate(credentials):
        if isinstance(item, Credential):
            normalized.append(item.to_dict())
            continue
        if not item.get("type") or not item.get("title"):
            raise ValidationError(
                f"Credential #{position + 1} needs a type and a title",
                code="INVALID_CREDENTIAL",
            )
        normalized.append(Credential(
            type=item["type"],
            title=item["title"],
            issuer=item.get("issuer"),
            issue_date=item.get("issue_date"),
            expiry_date=item.get("expiry_date"),
        ).to_dict())
    return normalized


def _is_open_request_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return (
        "uq_verification_open_per_contractor" in text
        or "verification_requests.contractor_id" in text
    )


class VerificationGate(ServiceBase):
    """Decides who may bid."""

    # ------------------------------------------------------------------
    # Contractor side
    # ------------------------------------------------------------------

    async def submit(
        self,
        contractor: Principal,
        credentials: Sequence[Credential | dict],
        notes: str | None = None,
    ) -> VerificationRequest:
        """Create a pending request; at most one open request per contractor."""
        self._authorizer.require(contractor, Action.SUBMIT_VERIFICATION_REQUEST)
        payload = _normalize_credentials(credentials)

        async def work(session: AsyncSession) -> VerificationRequest:
            repo = VerificationRepository(session)
            if await repo.get_open_for_contractor(contractor.id) is not None:
                raise DuplicatePendingRequestError(str(contractor.id))
            return await repo.create(VerificationRequest(
                contractor_id=contractor.id,
                status=VerificationStatus.PENDING.value,
                credentials=payload,
                notes=notes,
                submitted_at=utcnow(),
            ))

        try:
            request = await self._run(
                work,
                lock_key=contractor_key(contractor.id),
                aggregate="Verification request",
            )
        except IntegrityError as exc:
            if _is_open_request_violation(exc):
                raise DuplicatePendingRequestError(str(contractor.id)) from exc
            raise

        logger.info(
            "verification.submitted",
            request_id=str(request.id),
            contractor_id=str(contractor.id),
            credentials=len(payload),
        )
        return request

    async def get_my_request(self, contractor: Principal) -> VerificationRequest | None:
        """The calling contractor's most recent request, if any."""
        self._authorizer.require(contractor, Action.VIEW_OWN_VERIFICATION_REQUEST)
        async with self._read_scope() as session:
            return await VerificationRepository(session).get_latest_for_contractor(contractor.id)

    # ------------------------------------------------------------------
    # Verifier side
    # ------------------------------------------------------------------

    async def list_requests(self, viewer: Principal) -> list[VerificationRequest]:
        self._authorizer.require(viewer, Action.LIST_VERIFICATION_REQUESTS)
        async with self._read_scope() as session:
            return await VerificationRepository(session).list_all()

    async def begin_review(
        self,
        request_id: uuid.UUID,
        reviewer: Principal,
    ) -> VerificationRequest:
        """Claim a pending request (pending -> under_review)."""
        self._authorizer.require(reviewer, Action.REVIEW_VERIFICATION_REQUEST)

        async def work(session: AsyncSession) -> VerificationRequest:
            repo = VerificationRepository(session)
            request = await self._get_request_or_raise(repo, request_id)
            request.status = advance(VerificationStateMachine, request.status, "begin_review")
            request.verifier_id = reviewer.id
            return await repo.save(request)

        request = await self._run(
            work, lock_key=f"verification:{request_id}", aggregate="Verification request"
        )
        logger.info("verification.review_started", request_id=str(request_id), reviewer=str(reviewer.id))
        return request

    async def review(
        self,
        request_id: uuid.UUID,
        reviewer: Principal,
        decision: ReviewDecision,
        notes: str,
        rejection_reason: str | None = None,
    ) -> VerificationRequest:
        """Decide a request. Approval marks the contractor verified.

        A request is decided once: reviewing an approved or rejected request
        raises InvalidStateTransitionError.
        """
        self._authorizer.require(reviewer, Action.REVIEW_VERIFICATION_REQUEST)
        decision = ReviewDecision(decision)
        if not notes or not notes.strip():
            raise ValidationError("Review notes are required", code="NOTES_REQUIRED")

        async def work(session: AsyncSession) -> VerificationRequest:
            repo = VerificationRepository(session)
            request = await self._get_request_or_raise(repo, request_id)
            request.status = advance(
                VerificationStateMachine, request.status, _DECISION_EVENTS[decision]
            )
            request.verifier_id = reviewer.id
            request.reviewed_at = utcnow()
            request.verification_notes = notes
            if decision is ReviewDecision.REJECT:
                request.rejection_reason = rejection_reason
            else:
                await self._set_verified(session, request.contractor_id, True, reviewer, notes)
            return await repo.save(request)

        request = await self._run(
            work, lock_key=f"verification:{request_id}", aggregate="Verification request"
        )
        logger.info(
            "verification.reviewed",
            request_id=str(request_id),
            contractor_id=str(request.contractor_id),
            decision=decision.value,
            reviewer=str(reviewer.id),
        )
        return request

    async def set_verification_status(
        self,
        contractor_id: uuid.UUID,
        is_verified: bool,
        actor: Principal,
        notes: str | None = None,
    ) -> User:
        """Administrative override of the verified flag."""
        self._authorizer.require(actor, Action.SET_VERIFICATION_STATUS)

        async def work(session: AsyncSession) -> User:
            return await self._set_verified(session, contractor_id, is_verified, actor, notes)

        contractor = await self._run(
            work, lock_key=contractor_key(contractor_id), aggregate="Contractor"
        )
        logger.info(
            "verification.status_overridden",
            contractor_id=str(contractor_id),
            is_verified=is_verified,
            actor=str(actor.id),
        )
        return contractor

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    async def can_bid(
        self,
        contractor_id: uuid.UUID,
        session: AsyncSession | None = None,
    ) -> bool:
        """True when the stored verified flag of the contractor is set.

        Pass ``session`` to read inside the caller's transaction.
        """
        if session is not None:
            return await self._read_verified_flag(session, contractor_id)
        async with self._read_scope() as own_session:
            return await self._read_verified_flag(own_session, contractor_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _read_verified_flag(session: AsyncSession, contractor_id: uuid.UUID) -> bool:
        contractor = await UserRepository(session).get_contractor(contractor_id)
        return bool(contractor and contractor.is_active and contractor.is_verified)

    @staticmethod
    async def _get_request_or_raise(
        repo: VerificationRepository, request_id: uuid.UUID
    ) -> VerificationRequest:
        request = await repo.get_by_id(request_id)
        if request is None:
            raise VerificationRequestNotFoundError(str(request_id))
        return request

    @staticmethod
    async def _set_verified(
        session: AsyncSession,
        contractor_id: uuid.UUID,
        flag: bool,
        actor: Principal,
        notes: str | None,
    ) -> User:
        repo = UserRepository(session)
        contractor = await repo.get_by_id(contractor_id)
        if contractor is None or contractor.role != Role.CONTRACTOR.value:
            raise ContractorNotFoundError(str(contractor_id))

        contractor.is_verified = flag
        contractor.verification_notes = notes
        if flag:
            contractor.verified_at = utcnow()
            contractor.verified_by = actor.id
        else:
            contractor.verified_at = None
            contractor.verified_by = None
        await repo.flush()
        return contractor
