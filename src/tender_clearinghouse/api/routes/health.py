"""Health check endpoint.

Verifies connectivity to the database and, when configured, Redis.
Used by Docker healthchecks, load balancers, and monitoring systems.
Redis only carries best-effort notices, so it never degrades the status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: TC002

from tender_clearinghouse import __version__
from tender_clearinghouse.api.deps import get_app_settings, get_db_session_factory
from tender_clearinghouse.config import Settings  # noqa: TC001
from tender_clearinghouse.infrastructure.redis_client import redis_status
from tender_clearinghouse.logging_config import get_logger
from tender_clearinghouse.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(
    factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """Check connectivity to the database and Redis."""
    try:
        async with factory() as session:
            await session.execute(text("SELECT 1"))
        db_status = "healthy"
    except (SQLAlchemyError, OSError) as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    return HealthResponse(
        status="ok" if db_status == "healthy" else "degraded",
        version=__version__,
        database=db_status,
        redis=await redis_status(),
        settlement_mode=settings.settlement_mode,
    )
