"""Application services — use case orchestration."""

from tender_clearinghouse.services.base import AggregateLocks, ServiceBase
from tender_clearinghouse.services.bid_ledger import BidLedger
from tender_clearinghouse.services.contractor_service import ContractorService
from tender_clearinghouse.services.notifier import (
    NullSettlementNotifier,
    RedisSettlementNotifier,
    build_notifier,
)
from tender_clearinghouse.services.payment_processor import PaymentProcessor
from tender_clearinghouse.services.settlement import (
    AgentKitSettlementRail,
    SimulatedSettlementRail,
    build_settlement_rail,
)
from tender_clearinghouse.services.tender_service import TenderService
from tender_clearinghouse.services.verification_gate import VerificationGate

__all__ = [
    "AgentKitSettlementRail",
    "AggregateLocks",
    "BidLedger",
    "ContractorService",
    "NullSettlementNotifier",
    "PaymentProcessor",
    "RedisSettlementNotifier",
    "ServiceBase",
    "SimulatedSettlementRail",
    "TenderService",
    "VerificationGate",
    "build_notifier",
    "build_settlement_rail",
]
