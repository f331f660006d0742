"""Settlement rail and notifier protocols.

Two collaborators sit at the edge of the payment workflow:

    SettlementRail      moves the money (or pretends to). Synchronous rails
                        confirm inside ``submit``; asynchronous rails return a
                        PENDING receipt and confirm later.
    SettlementNotifier  receives fire-and-forget notices of award and payment
                        events (ledger mirror, message stream). It is never
                        needed for correctness.

Both are Protocols (structural subtyping) and are selected once at process
start. The domain layer has ZERO imports from Redis, AgentKit or any other
external service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from tender_clearinghouse.domain.enums import SettlementOutcome

if TYPE_CHECKING:
    from decimal import Decimal


@dataclass(frozen=True)
class SettlementRequest:
    """Input to a settlement rail.

    Attributes:
        tender_id: UUID of the awarded tender (string form).
        bid_id: UUID of the winning bid.
        payee_id: Contractor receiving the payment.
        payee_address: Contractor wallet reference, if any (opaque).
        amount: Amount owed, from the winning bid.
    """

    tender_id: str
    bid_id: str
    payee_id: str
    payee_address: str | None
    amount: Decimal


@dataclass(frozen=True)
class SettlementReceipt:
    """Output from a settlement rail.

    Attributes:
        outcome: Whether the transfer is pending, confirmed or rejected.
        reference: Rail-specific reference (e.g. a transaction hash).
        detail: Human-readable explanation, mostly for rejections.
    """

    outcome: SettlementOutcome
    reference: str
    detail: str = ""
    settled_at: datetime | None = None

    @property
    def is_final(self) -> bool:
        return self.outcome is not SettlementOutcome.PENDING


@runtime_checkable
class SettlementRail(Protocol):
    """Protocol that all settlement backends must satisfy.

    Implementations:
        - SimulatedSettlementRail  (services/settlement.py)
        - AgentKitSettlementRail   (services/settlement.py, live transfers)
    """

    requires_payee_address: bool

    async def submit(self, request: SettlementRequest) -> SettlementReceipt:
        """Start a transfer. May return a final or a PENDING receipt."""
        ...

    async def wait_for_confirmation(self, reference: str) -> SettlementReceipt:
        """Block until the transfer identified by ``reference`` is final."""
        ...

    async def poll(self, reference: str) -> SettlementReceipt:
        """Return the current receipt for ``reference`` without blocking."""
        ...


@dataclass(frozen=True)
class SettlementNotice:
    """A fire-and-forget notice about an award or payment event."""

    event: str
    tender_id: str
    payload: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        """Flatten to string fields (Redis stream entries are flat maps)."""
        return {
            "event": self.event,
            "tender_id": self.tender_id,
            "occurred_at": self.occurred_at.isoformat(),
            **{key: str(value) for key, value in self.payload.items()},
        }


@runtime_checkable
class SettlementNotifier(Protocol):
    """Protocol for best-effort notice delivery.

    Implementations:
        - NullSettlementNotifier   (services/notifier.py)
        - RedisSettlementNotifier  (services/notifier.py)
    """

    async def notify(self, notice: SettlementNotice) -> None:
        ...
