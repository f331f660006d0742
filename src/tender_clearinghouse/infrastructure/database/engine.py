"""Async database engine and session management.

Provides:
    - build_engine / build_session_factory: construct an engine + sessionmaker
      for any URL (the app, the simulation and the tests share this path).
    - get_session_factory: the process-wide sessionmaker (lazy singleton).
    - session_scope: one transaction per unit of work; commits on success,
      rolls back on error, and reports an unreachable database as
      PersistenceUnavailableError.
    - init_db / close_db: lifecycle hooks for FastAPI's lifespan.

Services own their transactions (instead of one session per HTTP request)
because a tender's lock must be held until its transaction has committed.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tender_clearinghouse.config import get_settings
from tender_clearinghouse.domain.exceptions import PersistenceUnavailableError
from tender_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

# Module-level singletons (initialized lazily)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # noqa: ANN001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying pool settings only where they apply."""
    settings = get_settings()
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a sessionmaker whose objects stay usable after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_engine() -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.db_echo_sql)
        logger.info(
            "database.engine_created",
            sqlite=settings.is_sqlite,
            pool_size=None if settings.is_sqlite else settings.db_pool_size,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(_get_engine())
    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Run one unit of work in its own transaction.

    Commits when the block exits cleanly and rolls back otherwise. Driver
    errors that mean "the database is unreachable" are re-raised as
    PersistenceUnavailableError; constraint violations and version conflicts
    propagate unchanged so callers can translate them.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except (OperationalError, InterfaceError) as exc:
            await _safe_rollback(session)
            logger.error("database.unavailable", error=str(exc.orig or exc))
            raise PersistenceUnavailableError(str(exc.orig or exc)) from exc
        except DBAPIError as exc:
            await _safe_rollback(session)
            if exc.connection_invalidated:
                logger.error("database.connection_invalidated", error=str(exc))
                raise PersistenceUnavailableError("connection lost") from exc
            raise
        except BaseException:
            await _safe_rollback(session)
            raise


async def _safe_rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except (OperationalError, InterfaceError) as exc:
        logger.warning("database.rollback_failed", error=str(exc))


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables on ``engine`` (development, simulation and tests)."""
    from tender_clearinghouse.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize the database engine and create tables if they don't exist.

    Called during FastAPI's lifespan startup. In production, use Alembic
    migrations instead of create_all.
    """
    engine = _get_engine()
    settings = get_settings()

    if settings.is_development:
        await create_schema(engine)
        logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", reason="not in development mode")


async def close_db() -> None:
    """Dispose of the database engine. Called during FastAPI's lifespan shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
