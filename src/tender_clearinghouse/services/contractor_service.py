"""Contractor directory — profiles, ratings and verification counts.

The verified flag is deliberately not editable here; it belongs to the
VerificationGate.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from tender_clearinghouse.domain.enums import Action
from tender_clearinghouse.domain.exceptions import (
    ConflictError,
    ContractorNotFoundError,
    ValidationError,
)
from tender_clearinghouse.infrastructure.database.orm_models import ContractorFeedback
from tender_clearinghouse.infrastructure.database.repositories import UserRepository
from tender_clearinghouse.infrastructure.database.types import utcnow
from tender_clearinghouse.logging_config import get_logger
from tender_clearinghouse.services.base import ServiceBase, contractor_key

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from tender_clearinghouse.domain.models import Principal
    from tender_clearinghouse.infrastructure.database.orm_models import User

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "email", "organization", "wallet_address"})
_WALLET_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


@dataclass(frozen=True)
class VerificationOverview:
    total: int
    verified: int
    unverified: int


class ContractorService(ServiceBase):
    """Read and maintain contractor profiles."""

    async def list_contractors(self, viewer: Principal) -> list[User]:
        self._authorizer.require(viewer, Action.LIST_CONTRACTORS)
        async with self._read_scope() as session:
            return await UserRepository(session).list_contractors()

    async def verification_overview(self, viewer: Principal) -> VerificationOverview:
        self._authorizer.require(viewer, Action.VIEW_VERIFICATION_OVERVIEW)
        async with self._read_scope() as session:
            repo = UserRepository(session)
            total = await repo.count_contractors()
            verified = await repo.count_contractors(verified=True)
        return VerificationOverview(total=total, verified=verified, unverified=total - verified)

    async def get_contractor(self, contractor_id: uuid.UUID, viewer: Principal) -> User:
        self._authorizer.require(viewer, Action.VIEW_CONTRACTOR, owner_id=contractor_id)
        async with self._read_scope() as session:
            return await self._get_or_raise(UserRepository(session), contractor_id)

    async def update_contractor(
        self,
        contractor_id: uuid.UUID,
        viewer: Principal,
        changes: dict,
    ) -> User:
        """Update profile fields. Unknown or protected fields are rejected."""
        self._authorizer.require(viewer, Action.UPDATE_CONTRACTOR, owner_id=contractor_id)
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                code="FIELD_NOT_UPDATABLE",
            )
        wallet = changes.get("wallet_address")
        if wallet and not _WALLET_PATTERN.match(wallet):
            raise ValidationError("Invalid wallet address", code="INVALID_WALLET_ADDRESS")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Name cannot be empty", code="INVALID_NAME")

        async def work(session: AsyncSession) -> User:
            repo = UserRepository(session)
            contractor = await self._get_or_raise(repo, contractor_id)
            for field_name, value in changes.items():
                setattr(contractor, field_name, value)
            await repo.flush()
            return contractor

        try:
            contractor = await self._run(
                work, lock_key=contractor_key(contractor_id), aggregate="Contractor"
            )
        except IntegrityError as exc:
            raise ConflictError("Email is already in use", code="EMAIL_TAKEN") from exc

        logger.info(
            "contractor.updated",
            contractor_id=str(contractor_id),
            fields=sorted(changes),
            actor=str(viewer.id),
        )
        return contractor

    async def delete_contractor(self, contractor_id: uuid.UUID, admin: Principal) -> None:
        """Remove a contractor with their verification requests and feedback."""
        self._authorizer.require(admin, Action.DELETE_CONTRACTOR)

        async def work(session: AsyncSession) -> None:
            repo = UserRepository(session)
            contractor = await self._get_or_raise(repo, contractor_id)
            await repo.delete_contractor(contractor)

        await self._run(work, lock_key=contractor_key(contractor_id), aggregate="Contractor")
        logger.info("contractor.deleted", contractor_id=str(contractor_id), actor=str(admin.id))

    async def rate_contractor(
        self,
        contractor_id: uuid.UUID,
        rater: Principal,
        rating: float,
        feedback: str,
    ) -> User:
        """Record a 1-5 rating; the profile keeps the average to one decimal."""
        self._authorizer.require(rater, Action.RATE_CONTRACTOR)
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", code="INVALID_RATING")
        if not feedback or not feedback.strip():
            raise ValidationError("Feedback is required", code="FEEDBACK_REQUIRED")

        async def work(session: AsyncSession) -> User:
            repo = UserRepository(session)
            contractor = await self._get_or_raise(repo, contractor_id)
            await repo.add_feedback(ContractorFeedback(
                contractor_id=contractor.id,
                rating=rating,
                feedback=feedback,
                rated_by=rater.id,
                rated_at=utcnow(),
            ))
            ratings = [entry.rating for entry in await repo.get_feedback(contractor.id)]
            contractor.rating = round(sum(ratings) / len(ratings), 1)
            contractor.rating_count = len(ratings)
            await repo.flush()
            return contractor

        contractor = await self._run(
            work, lock_key=contractor_key(contractor_id), aggregate="Contractor"
        )
        logger.info(
            "contractor.rated",
            contractor_id=str(contractor_id),
            rating=rating,
            average=contractor.rating,
        )
        return contractor

    @staticmethod
    async def _get_or_raise(repo: UserRepository, contractor_id: uuid.UUID) -> User:
        contractor = await repo.get_contractor(contractor_id)
        if contractor is None:
            raise ContractorNotFoundError(str(contractor_id))
        return contractor
