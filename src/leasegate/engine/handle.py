"""Lease handle - caller-held proxy for one lease ticket."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.engine.errors import HandleClosed, NotFound
from leasegate.models import HandleState, LeaseTicket
from leasegate.utils.time import ensure_utc, utc_now

if TYPE_CHECKING:
    from leasegate.engine.core import LeaseStore

logger = logging.getLogger(__name__)

R = TypeVar("R")


class LeaseHandle:
    """Process-local view of one lease.

    The store only knows the id; everything else here is a cache of the
    last confirmed state. The handle is LIVE until a heartbeat finds no
    record (LOST) or it is released (RELEASED). Both are terminal: a new
    claim needs a new lease.
    """

    def __init__(self, store: "LeaseStore", ticket: LeaseTicket):
        self._store = store
        self._ticket = ticket
        self._state = HandleState.LIVE
        self._error: NotFound | None = None

    def __repr__(self) -> str:
        return f"<LeaseHandle id={self.id} state={self._state.value} expiry={self.expiry.isoformat()}>"

    @property
    def id(self) -> int:
        return self._ticket.id

    @property
    def title(self) -> str:
        return self._ticket.title

    @property
    def expiry(self) -> datetime:
        """Last expiry confirmed by the store."""
        return self._ticket.expiry

    @property
    def refresh_count(self) -> int:
        return self._ticket.refresh_count

    @property
    def ticket(self) -> LeaseTicket:
        return self._ticket

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def error(self) -> NotFound | None:
        """The NotFound that made this handle LOST, if any."""
        return self._error

    def _ensure_live(self) -> None:
        if self._state.is_terminal:
            raise HandleClosed(self.id, self._state.value)

    def _ensure_not_lost(self) -> None:
        # A lost handle only answers for its error.
        if self._state is HandleState.LOST:
            raise HandleClosed(self.id, self._state.value)

    def _now(self, now: datetime | None) -> datetime:
        if now is not None:
            return ensure_utc(now)
        return ensure_utc((self._store.clock or utc_now)())

    def _mark_lost(self, exc: NotFound) -> None:
        self._state = HandleState.LOST
        self._error = exc
        logger.warning(f"Lease {self.id} ({self.title!r}) lost; its work is no longer exclusive")

    async def heartbeat(self) -> LeaseTicket:
        """Extend the lease.

        Raises:
            NotFound: the lease lapsed; the handle is now LOST
            HandleClosed: the handle was already LOST or RELEASED
        """
        self._ensure_live()
        try:
            self._ticket = await self._store.heartbeat(self.id)
        except NotFound as exc:
            self._mark_lost(exc)
            raise
        return self._ticket

    async def release(self) -> None:
        """Give the lease up. Safe to call more than once.

        Raises:
            HandleClosed: the handle is LOST; there is nothing left to release
        """
        self._ensure_not_lost()
        if self._state is HandleState.LIVE:
            await self._store.release(self.id)
            self._state = HandleState.RELEASED

    async def is_live(self) -> bool:
        """Ask the store. Sees releases made by other parties."""
        self._ensure_not_lost()
        if self._state is HandleState.RELEASED:
            return False
        return await self._store.is_live(self.id)

    def is_live_cached(self, now: datetime | None = None) -> bool:
        """Compare the cached expiry with the store's clock. No round trip."""
        self._ensure_not_lost()
        if self._state is HandleState.RELEASED:
            return False
        return self._ticket.is_live(self._now(now))

    def heartbeat_due(self, now: datetime | None = None, fraction: float = 0.5) -> bool:
        """True once the given fraction of the current lease window has elapsed."""
        if not 0 < fraction <= 1:
            raise ValueError(f"fraction must be in (0, 1], got {fraction}")
        self._ensure_live()
        return self._now(now) >= self.expiry - self._store.timeout * (1 - fraction)

    async def run(self, fn: Callable[[AsyncSession, int], Awaitable[R]]) -> R:
        """Refresh the lease and run fn(session, lease_id) in one transaction."""
        self._ensure_live()
        try:
            return await self._store.run_in_lease(self.id, fn)
        except NotFound as exc:
            self._mark_lost(exc)
            raise

    async def __aenter__(self) -> "LeaseHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # A lease lost inside the block has already surfaced as NotFound.
        if self._state is HandleState.LIVE:
            await self.release()
