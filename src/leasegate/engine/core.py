"""LeaseGate core engine - lease lifecycle operations against the shared store."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leasegate.config import settings
from leasegate.db import base as db_base
from leasegate.db.repositories import Clock, LeaseRepository
from leasegate.engine.errors import (
    AllocationExhausted,
    IdCollision,
    LeaseGateError,
    NotFound,
    StoreUnavailable,
)
from leasegate.models import ExpiredLease, LeaseTicket
from leasegate.observability.metrics import metrics, timed_operation

if TYPE_CHECKING:
    from leasegate.engine.handle import LeaseHandle

logger = logging.getLogger(__name__)

R = TypeVar("R")

_UNAVAILABLE_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    OSError,
)


def _is_unavailable(exc: BaseException) -> bool:
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class LeaseStore:
    """Authoritative lease table operations.

    Each public method is one transaction of its own, so every call is an
    independent round trip; processes coordinate only through the store.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        timeout: timedelta | None = None,
        clock: Clock | None = None,
        max_create_attempts: int | None = None,
        id_min_value: int | None = None,
        id_max_value: int | None = None,
    ):
        self._session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.lease_timeout
        self.clock = clock
        self.max_create_attempts = (
            max_create_attempts if max_create_attempts is not None else settings.max_create_attempts
        )
        if self.max_create_attempts < 1:
            raise ValueError(f"max_create_attempts must be at least 1, got {self.max_create_attempts}")
        self.id_min_value = id_min_value
        self.id_max_value = id_max_value

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        # Resolved lazily so a replaced module-level factory is honoured.
        return self._session_factory or db_base.async_session_factory

    def repository(self, session: AsyncSession) -> LeaseRepository:
        """Lease repository bound to a caller-owned session."""
        return LeaseRepository(
            session,
            timeout=self.timeout,
            clock=self.clock,
            id_min_value=self.id_min_value,
            id_max_value=self.id_max_value,
        )

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[LeaseRepository]:
        """Run a block in its own transaction, mapping connectivity failures."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield self.repository(session)
        except LeaseGateError:
            raise
        except Exception as exc:
            if _is_unavailable(exc):
                metrics.inc_counter("lease.store_unavailable")
                raise StoreUnavailable(str(exc)) from exc
            raise

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(self, title: str = "") -> LeaseTicket:
        """Create a lease, retrying a bounded number of times on id collision.

        Raises:
            AllocationExhausted: every attempt collided with a live lease
            StoreUnavailable: the store could not be reached
        """
        with timed_operation("create"):
            last_collision: IdCollision | None = None
            for attempt in range(1, self.max_create_attempts + 1):
                ticket = None
                async with self._transaction() as leases:
                    try:
                        ticket = await leases.create(title)
                    except IdCollision as exc:
                        # Commit anyway so a counter-table allocation moves on.
                        last_collision = exc

                if ticket is not None:
                    logger.debug(f"Created lease {ticket.id} ({title!r}) expiring {ticket.expiry}")
                    return ticket

                metrics.inc_counter("lease.create.collision")
                logger.warning(
                    f"Lease id {last_collision.lease_id} still live "
                    f"(attempt {attempt}/{self.max_create_attempts})"
                )
                if attempt < self.max_create_attempts:
                    await self._sweep_quietly()

            logger.error(
                f"Lease allocation exhausted after {self.max_create_attempts} attempts; "
                "far more live leases than the id range should hold"
            )
            raise AllocationExhausted(
                self.max_create_attempts,
                last_collision.lease_id if last_collision else None,
            ) from last_collision

    async def create_with_cleanup(self, title: str = "") -> LeaseTicket:
        """Sweep expired leases, then create. Sweep failures are only logged."""
        await self._sweep_quietly()
        return await self.create(title)

    async def create_in_session(self, session: AsyncSession, title: str = "") -> "LeaseHandle":
        """Create a lease inside a transaction the caller already holds.

        The lease only exists once the caller commits.
        """
        from leasegate.engine.handle import LeaseHandle

        leases = self.repository(session)
        last_collision: IdCollision | None = None
        for _ in range(self.max_create_attempts):
            try:
                ticket = await leases.create(title)
            except IdCollision as exc:
                last_collision = exc
                metrics.inc_counter("lease.create.collision")
                continue
            return LeaseHandle(self, ticket)
        raise AllocationExhausted(
            self.max_create_attempts,
            last_collision.lease_id if last_collision else None,
        ) from last_collision

    async def open(self, title: str = "", cleanup: bool = False) -> "LeaseHandle":
        """Create a lease and wrap it in a handle."""
        from leasegate.engine.handle import LeaseHandle

        ticket = await (self.create_with_cleanup(title) if cleanup else self.create(title))
        return LeaseHandle(self, ticket)

    # ------------------------------------------------------------------
    # Holder operations
    # ------------------------------------------------------------------

    async def heartbeat(self, lease_id: int) -> LeaseTicket:
        """Extend a live lease to now + timeout and bump its refresh count.

        Raises:
            NotFound: the lease was released, expired, or swept
        """
        with timed_operation("heartbeat"):
            async with self._transaction() as leases:
                ticket = await leases.heartbeat(lease_id)
            if ticket is None:
                logger.info(f"Heartbeat for lease {lease_id} found no live record")
                raise NotFound(lease_id)
            logger.debug(
                f"Heartbeat lease {lease_id}: expiry {ticket.expiry}, "
                f"refresh_count {ticket.refresh_count}"
            )
            return ticket

    async def release(self, lease_id: int) -> bool:
        """Delete a lease. Idempotent; returns whether a row was removed."""
        with timed_operation("release"):
            async with self._transaction() as leases:
                removed = await leases.release(lease_id)
            if removed:
                logger.debug(f"Released lease {lease_id}")
            return removed

    async def run_in_lease(
        self,
        lease_id: int,
        fn: Callable[[AsyncSession, int], Awaitable[R]],
    ) -> R:
        """Refresh the lease and run fn in the same transaction.

        The heartbeat row-locks the lease on PostgreSQL, so it cannot be
        swept while fn runs. fn's writes commit together with the refresh.

        Raises:
            NotFound: the lease is gone; fn is not called
        """
        with timed_operation("run"):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        ticket = await self.repository(session).heartbeat(lease_id)
                        if ticket is None:
                            raise NotFound(lease_id)
                        return await fn(session, lease_id)
            except LeaseGateError:
                raise
            except Exception as exc:
                if _is_unavailable(exc):
                    metrics.inc_counter("lease.store_unavailable")
                    raise StoreUnavailable(str(exc)) from exc
                raise

    # ------------------------------------------------------------------
    # Observer operations
    # ------------------------------------------------------------------

    async def is_live(self, lease_id: int) -> bool:
        """Whether the lease exists and has not expired. Side-effect free."""
        async with self._transaction() as leases:
            return await leases.is_live(lease_id)

    async def get(self, lease_id: int) -> LeaseTicket | None:
        """Read the stored ticket, live or not."""
        async with self._transaction() as leases:
            return await leases.get(lease_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def sweep(self, limit: int | None = None) -> list[ExpiredLease]:
        """Delete expired leases and return them for logging."""
        with timed_operation("sweep"):
            async with self._transaction() as leases:
                expired = await leases.sweep(limit)
            if expired:
                metrics.inc_counter("lease.swept", len(expired))
            return expired

    async def _sweep_quietly(self) -> None:
        try:
            expired = await self.sweep()
        except LeaseGateError as exc:
            logger.warning(f"Opportunistic sweep failed: {exc.message}")
            return
        for ticket in expired:
            logger.info(f"Swept {ticket.describe()}")
