"""Plain value objects shared across the domain and service layers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from tender_clearinghouse.domain.enums import PaymentStatus, Role


@dataclass(frozen=True)
class Principal:
    """An authenticated actor, as supplied by the identity subsystem.

    The core only reads principals; ``is_verified`` is a snapshot taken when
    the request was authenticated. Bid admission re-reads the stored flag.
    """

    id: uuid.UUID
    role: Role
    is_verified: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_contractor(self) -> bool:
        return self.role is Role.CONTRACTOR


def _iso(value: date | str | None) -> str | None:
    if isinstance(value, date):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class Credential:
    """One credential listed in a verification request."""

    type: str
    title: str
    issuer: str | None = None
    issue_date: date | str | None = None
    expiry_date: date | str | None = None

    def to_dict(self) -> dict:
        """Serialize for the credentials JSON column."""
        return {
            "type": self.type,
            "title": self.title,
            "issuer": self.issuer,
            "issue_date": _iso(self.issue_date),
            "expiry_date": _iso(self.expiry_date),
        }


@dataclass(frozen=True)
class PaymentRecord:
    """Read-only view of the payment record embedded in a tender.

    ``status`` is None when the tender has no payment record (never awarded,
    or history cleared).
    """

    tender_id: uuid.UUID
    amount: Decimal | None
    status: PaymentStatus | None
    date: datetime | None = None
    settlement_reference: str | None = None

    @classmethod
    def from_tender(cls, tender) -> PaymentRecord:  # noqa: ANN001
        return cls(
            tender_id=tender.id,
            amount=tender.payment_amount,
            status=PaymentStatus(tender.payment_status) if tender.payment_status else None,
            date=tender.payment_date,
            settlement_reference=tender.settlement_reference,
        )

    @property
    def exists(self) -> bool:
        return self.status is not None
