"""FastAPI application entry point for the Tender Clearinghouse.

Lifecycle:
    1. Startup: Initialize logging, database (tables in dev mode) and, when the
       notifier backend is Redis, the Redis connection.
    2. Running: Serve the REST API under /api/v1/* on a single Uvicorn process.
    3. Shutdown: Close database and Redis connections gracefully.

Run with:
    uv run uvicorn tender_clearinghouse.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from tender_clearinghouse import __version__
from tender_clearinghouse.config import get_settings
from tender_clearinghouse.logging_config import get_logger, setup_logging
from tender_clearinghouse.services.notifier import NullSettlementNotifier, build_notifier
from tender_clearinghouse.services.settlement import build_settlement_rail

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        settlement_mode=settings.settlement_mode,
    )

    # 2. Initialize database
    from tender_clearinghouse.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis (only the notice stream uses it)
    from tender_clearinghouse.infrastructure.redis_client import (
        close_redis,
        get_redis,
        init_redis,
    )

    if settings.notifier_backend == "redis":
        try:
            await init_redis()
        except (RedisError, OSError) as exc:
            logger.warning("app.redis_unavailable", error=str(exc))
        app.state.notifier = build_notifier(settings, get_redis())

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Tender Clearinghouse",
        description=(
            "Verification-gated public-works tendering: publish tenders, "
            "collect bids, award and settle."
        ),
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Shared collaborators; the lifespan swaps in the Redis notifier when configured.
    app.state.settlement_rail = build_settlement_rail(settings)
    app.state.notifier = NullSettlementNotifier()

    # --- Middleware ---
    from tender_clearinghouse.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from tender_clearinghouse.api.routes.contractors import router as contractors_router
    from tender_clearinghouse.api.routes.health import router as health_router
    from tender_clearinghouse.api.routes.payments import router as payments_router
    from tender_clearinghouse.api.routes.tenders import router as tenders_router
    from tender_clearinghouse.api.routes.verification import router as verification_router

    app.include_router(health_router)
    app.include_router(tenders_router)
    app.include_router(payments_router)
    app.include_router(verification_router)
    app.include_router(contractors_router)

    return app


# The app instance used by Uvicorn
app = create_app()
