"""Shared plumbing for the application services.

Every service owns its transactions. A mutating operation on a tender runs as:

    per-tender asyncio.Lock  ->  session_scope (one transaction)  ->  commit

and the whole attempt is retried by tenacity when the optimistic version
check on the tenders row fails (another process wrote the same tender
between our read and our flush). Exhausted retries surface as
ConcurrentUpdateError, which callers see as a retryable conflict.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from tender_clearinghouse.config import Settings, get_settings
from tender_clearinghouse.domain.authorization import RoleAuthorizer, default_authorizer
from tender_clearinghouse.domain.exceptions import ConcurrentUpdateError
from tender_clearinghouse.infrastructure.database.engine import session_scope
from tender_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

T = TypeVar("T")


class AggregateLocks:
    """Registry of in-process locks, one per aggregate key.

    A lock only exists while somebody holds or waits for it, so the registry
    never grows with the number of tenders and no lock outlives the event
    loop that created it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


default_locks = AggregateLocks()


def tender_key(tender_id: object) -> str:
    return f"tender:{tender_id}"


def contractor_key(contractor_id: object) -> str:
    return f"contractor:{contractor_id}"


class ServiceBase:
    """Base class wiring a session factory, settings, authorizer and locks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: Settings | None = None,
        authorizer: RoleAuthorizer | None = None,
        locks: AggregateLocks | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._authorizer = authorizer or default_authorizer
        self._locks = locks or default_locks

    @asynccontextmanager
    async def _read_scope(self) -> AsyncIterator[AsyncSession]:
        """A short transaction for queries."""
        async with session_scope(self._session_factory) as session:
            yield session

    async def _run(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        lock_key: str | None = None,
        aggregate: str = "Tender",
    ) -> T:
        """Run ``work`` in its own transaction, serialized on ``lock_key``.

        The lock is held until the transaction has committed. A version
        conflict rolls the attempt back and replays ``work`` from a fresh
        read, so ``work`` must do all of its reads itself.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(StaleDataError),
            stop=stop_after_attempt(self._settings.conflict_retry_attempts),
            wait=wait_random_exponential(multiplier=0.01, max=0.2),
            before_sleep=lambda retry_state: logger.warning(
                "concurrency.version_conflict",
                aggregate=aggregate,
                lock_key=lock_key,
                attempt=retry_state.attempt_number,
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(work, lock_key)
        except RetryError as err:
            logger.error("concurrency.retries_exhausted", aggregate=aggregate, lock_key=lock_key)
            raise ConcurrentUpdateError(aggregate) from err
        raise AssertionError("unreachable")  # pragma: no cover

    async def _attempt(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        lock_key: str | None,
    ) -> T:
        if lock_key is None:
            async with session_scope(self._session_factory) as session:
                return await work(session)
        async with self._locks.hold(lock_key):
            async with session_scope(self._session_factory) as session:
                return await work(session)
