"""Settlement rails: how an awarded tender's payment actually moves.

Two implementations of the SettlementRail protocol:

    SimulatedSettlementRail  generates fake transaction hashes. With a zero
                             confirmation delay it behaves like a synchronous
                             rail; with a positive delay it returns PENDING
                             and confirms later, like a real chain would.
    AgentKitSettlementRail   USDC transfer on Base via Coinbase AgentKit.
                             The SDK is imported lazily so the rest of the
                             service runs without it installed.

``build_settlement_rail`` picks one from settings at process start.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tender_clearinghouse.domain.enums import SettlementOutcome
from tender_clearinghouse.domain.exceptions import SettlementRailError
from tender_clearinghouse.domain.settlement_protocol import SettlementReceipt
from tender_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from tender_clearinghouse.config import Settings
    from tender_clearinghouse.domain.settlement_protocol import (
        SettlementRail,
        SettlementRequest,
    )

logger = get_logger(__name__)

# USDC on Base Sepolia
USDC_CONTRACT_ADDRESS = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

_TX_HASH_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")


def _fake_tx_hash() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


class SimulatedSettlementRail:
    """In-memory rail for development, the simulation and tests."""

    requires_payee_address = False

    def __init__(
        self,
        should_succeed: bool = True,
        confirmation_delay_seconds: float = 0.0,
    ) -> None:
        self._should_succeed = should_succeed
        self._delay = confirmation_delay_seconds
        self._ready_at: dict[str, float] = {}

    async def submit(self, request: SettlementRequest) -> SettlementReceipt:
        reference = _fake_tx_hash()
        logger.info(
            "settlement.simulated_submit",
            tender_id=request.tender_id,
            amount=str(request.amount),
            to=request.payee_address or request.payee_id,
            tx_hash=reference,
        )
        if not self._should_succeed:
            return SettlementReceipt(
                outcome=SettlementOutcome.REJECTED,
                reference=reference,
                detail="Simulated transfer rejected",
            )
        if self._delay <= 0:
            return self._confirmed(reference)

        self._ready_at[reference] = asyncio.get_running_loop().time() + self._delay
        return SettlementReceipt(outcome=SettlementOutcome.PENDING, reference=reference)

    async def wait_for_confirmation(self, reference: str) -> SettlementReceipt:
        ready_at = self._ready_at.get(reference)
        if ready_at is None:
            raise SettlementRailError("Unknown settlement reference", reference)
        await asyncio.sleep(max(0.0, ready_at - asyncio.get_running_loop().time()))
        self._ready_at.pop(reference, None)
        return self._confirmed(reference)

    async def poll(self, reference: str) -> SettlementReceipt:
        ready_at = self._ready_at.get(reference)
        if ready_at is None:
            raise SettlementRailError("Unknown settlement reference", reference)
        if asyncio.get_running_loop().time() < ready_at:
            return SettlementReceipt(outcome=SettlementOutcome.PENDING, reference=reference)
        self._ready_at.pop(reference, None)
        return self._confirmed(reference)

    def release(self, reference: str) -> None:
        """Make a pending transfer confirmable immediately."""
        if reference in self._ready_at:
            self._ready_at[reference] = 0.0

    @staticmethod
    def _confirmed(reference: str) -> SettlementReceipt:
        return SettlementReceipt(
            outcome=SettlementOutcome.CONFIRMED,
            reference=reference,
            settled_at=datetime.now(UTC),
        )


class AgentKitSettlementRail:
    """Live ERC-20 USDC transfers through Coinbase AgentKit.

    AgentKit's wallet provider is synchronous, so every call runs in a
    worker thread.
    """

    requires_payee_address = True

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._provider: Any = None

    def _wallet_provider(self) -> Any:
        if self._provider is None:
            from coinbase_agentkit import CdpEvmWalletProvider, CdpEvmWalletProviderConfig

            settings = self._settings
            self._provider = CdpEvmWalletProvider(CdpEvmWalletProviderConfig(
                api_key_id=settings.cdp_api_key_id,
                api_key_secret=settings.cdp_api_key_secret,
                wallet_secret=settings.cdp_wallet_secret,
                network_id=settings.cdp_network_id,
                address=settings.cdp_payer_address or None,
            ))
        return self._provider

    def _transfer(self, request: SettlementRequest) -> str:
        from coinbase_agentkit import erc20_action_provider

        result = erc20_action_provider().transfer(
            self._wallet_provider(),
            {
                "to": request.payee_address,
                "amount": str(request.amount),
                "contract_address": USDC_CONTRACT_ADDRESS,
            },
        )
        return str(result)

    async def submit(self, request: SettlementRequest) -> SettlementReceipt:
        if not request.payee_address:
            raise SettlementRailError("Payee has no wallet address")
        try:
            result = await asyncio.to_thread(self._transfer, request)
        except Exception as exc:
            logger.error("settlement.transfer_failed", tender_id=request.tender_id, error=str(exc))
            raise SettlementRailError(f"Transfer failed: {exc}") from exc

        match = _TX_HASH_PATTERN.search(result)
        if match is None:
            logger.error("settlement.transfer_rejected", tender_id=request.tender_id, result=result)
            raise SettlementRailError(f"Transfer rejected: {result}")

        reference = match.group(0)
        logger.info("settlement.transfer_submitted", tender_id=request.tender_id, tx_hash=reference)
        return SettlementReceipt(outcome=SettlementOutcome.PENDING, reference=reference)

    async def wait_for_confirmation(self, reference: str) -> SettlementReceipt:
        try:
            receipt = await asyncio.to_thread(
                self._wallet_provider().wait_for_transaction_receipt, reference
            )
        except Exception as exc:
            raise SettlementRailError(f"Confirmation failed: {exc}", reference) from exc
        return self._to_receipt(reference, receipt)

    async def poll(self, reference: str) -> SettlementReceipt:
        try:
            receipt = await asyncio.to_thread(
                self._wallet_provider().wait_for_transaction_receipt, reference, 1
            )
        except Exception as exc:  # noqa: BLE001 - not mined yet looks the same as a timeout
            logger.info("settlement.poll_pending", tx_hash=reference, error=str(exc))
            return SettlementReceipt(outcome=SettlementOutcome.PENDING, reference=reference)
        return self._to_receipt(reference, receipt)

    @staticmethod
    def _to_receipt(reference: str, receipt: Any) -> SettlementReceipt:
        status = receipt.get("status") if hasattr(receipt, "get") else None
        if status == 1:
            return SettlementReceipt(
                outcome=SettlementOutcome.CONFIRMED,
                reference=reference,
                settled_at=datetime.now(UTC),
            )
        return SettlementReceipt(
            outcome=SettlementOutcome.REJECTED,
            reference=reference,
            detail=f"Transaction reverted (status={status})",
        )


def build_settlement_rail(settings: Settings) -> SettlementRail:
    """Select the settlement rail for this process."""
    if settings.settlement_mode == "live":
        logger.info("settlement.rail_selected", mode="live", network=settings.cdp_network_id)
        return AgentKitSettlementRail(settings)
    logger.info(
        "settlement.rail_selected",
        mode="simulated",
        confirmation_delay=settings.simulated_confirmation_delay_seconds,
    )
    return SimulatedSettlementRail(
        confirmation_delay_seconds=settings.simulated_confirmation_delay_seconds,
    )
