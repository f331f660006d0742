"""Best-effort notices of award and payment events.

The notifier is chosen once at startup (``build_notifier``) and injected
into the services; business logic never branches on which one it got.
``publish`` is the only way services talk to it: delivery is bounded by a
timeout and any failure is logged and dropped, so a dead Redis never fails
an award or a payment.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from tender_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from tender_clearinghouse.config import Settings
    from tender_clearinghouse.domain.settlement_protocol import (
        SettlementNotice,
        SettlementNotifier,
    )

logger = get_logger(__name__)


class NullSettlementNotifier:
    """Drops every notice. Used when no ledger mirror is configured."""

    async def notify(self, notice: SettlementNotice) -> None:
        logger.debug("notifier.dropped", notice_event=notice.event, tender_id=notice.tender_id)


class RedisSettlementNotifier:
    """Appends notices to a Redis stream for downstream consumers."""

    def __init__(
        self,
        client: aioredis.Redis,
        stream: str,
        max_length: int = 10_000,
    ) -> None:
        self._client = client
        self._stream = stream
        self._max_length = max_length

    async def notify(self, notice: SettlementNotice) -> None:
        entry_id = await self._client.xadd(
            self._stream,
            notice.to_dict(),
            maxlen=self._max_length,
            approximate=True,
        )
        logger.info(
            "notifier.published",
            stream=self._stream,
            entry_id=entry_id,
            notice_event=notice.event,
            tender_id=notice.tender_id,
        )


def build_notifier(
    settings: Settings,
    redis_client: aioredis.Redis | None = None,
) -> SettlementNotifier:
    """Select the notifier implementation for this process."""
    if settings.notifier_backend == "redis":
        if redis_client is None:
            logger.warning("notifier.redis_unavailable", fallback="none")
            return NullSettlementNotifier()
        return RedisSettlementNotifier(redis_client, settings.notifier_stream)
    return NullSettlementNotifier()


async def publish(
    notifier: SettlementNotifier,
    notice: SettlementNotice,
    timeout: float,
) -> bool:
    """Deliver ``notice``; never raises. Returns whether delivery succeeded."""
    try:
        await asyncio.wait_for(notifier.notify(notice), timeout=timeout)
    except Exception as exc:  # noqa: BLE001 - notices must never fail the caller
        logger.warning(
            "notifier.delivery_failed",
            notice_event=notice.event,
            tender_id=notice.tender_id,
            error=str(exc) or type(exc).__name__,
        )
        return False
    return True
