"""Redis client for the settlement notice stream.

Redis is optional: it only carries best-effort notices, so the app starts
without it and the notifier falls back to dropping notices.

Usage:
    from tender_clearinghouse.infrastructure.redis_client import init_redis, close_redis

    client = await init_redis()
    await client.xadd("tender-clearinghouse:notices", {"event": "TENDER_AWARDED"})
"""

from __future__ import annotations

import redis.asyncio as aioredis

from tender_clearinghouse.config import get_settings
from tender_clearinghouse.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis(url: str | None = None) -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    url = url or get_settings().redis_url
    client = aioredis.from_url(url, decode_responses=True)
    # Verify connectivity
    await client.ping()
    _redis_client = client
    logger.info("redis.connected", url=url)
    return client


def get_redis() -> aioredis.Redis | None:
    """Return the Redis client singleton, or None when it is not connected."""
    return _redis_client


async def redis_status() -> str:
    """Health string for the /health endpoint."""
    if _redis_client is None:
        return "not configured"
    try:
        await _redis_client.ping()
    except aioredis.RedisError as exc:
        logger.error("health.redis_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None
