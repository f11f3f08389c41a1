"""Database repositories for LeaseGate entities."""

from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.config import MAX_LEASE_ID, settings
from leasegate.db.tables import (
    LEASE_ID_COUNTER,
    LEASE_ID_SEQUENCE,
    LeaseSequenceTable,
    LeaseTicketTable,
)
from leasegate.engine.errors import IdCollision
from leasegate.engine.policy import next_expiry
from leasegate.models import ExpiredLease, LeaseTicket
from leasegate.utils.time import ensure_utc, utc_now

Clock = Callable[[], datetime]

lease_tickets = LeaseTicketTable.__table__
lease_sequences = LeaseSequenceTable.__table__


class LeaseRepository:
    """Repository for lease ticket operations.

    Every method issues one atomic statement (two for create: allocate,
    then insert) against the caller's session; transaction boundaries belong
    to the caller.

    Time comes from a single source per statement. On PostgreSQL without an
    injected clock it is the server's now(), so expiry is computed inside
    the statement and never sent by the client. Otherwise the clock is read
    once and bound into the statement.
    """

    def __init__(
        self,
        session: AsyncSession,
        timeout: timedelta | None = None,
        clock: Clock | None = None,
        id_min_value: int | None = None,
        id_max_value: int | None = None,
    ):
        self.session = session
        self.timeout = timeout if timeout is not None else settings.lease_timeout
        self.clock = clock
        self.id_min_value = id_min_value if id_min_value is not None else settings.id_min_value
        self.id_max_value = id_max_value if id_max_value is not None else settings.id_max_value
        self.dialect = session.get_bind().dialect.name

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def uses_server_clock(self) -> bool:
        return self.clock is None and self.dialect == "postgresql"

    @property
    def uses_native_sequence(self) -> bool:
        return self.dialect == "postgresql" and (
            self.id_min_value,
            self.id_max_value,
        ) == (1, MAX_LEASE_ID)

    def _clock_reading(self) -> tuple[Any, Any]:
        """Return (now, expiry) for one statement."""
        if self.uses_server_clock:
            now = func.now()
        else:
            now = ensure_utc((self.clock or utc_now)())
        return now, next_expiry(now, self.timeout)

    def _insert(self, table):
        if self.dialect == "postgresql":
            return pg_insert(table)
        if self.dialect == "sqlite":
            return sqlite_insert(table)
        raise NotImplementedError(f"Unsupported dialect: {self.dialect}")

    # ------------------------------------------------------------------
    # Sequence allocation
    # ------------------------------------------------------------------

    async def next_id(self) -> int:
        """Allocate the next id from the cyclic range, wrapping to the minimum."""
        if self.uses_native_sequence:
            return await self.session.scalar(select(LEASE_ID_SEQUENCE.next_value()))

        counter = lease_sequences.c
        advance = (
            update(lease_sequences)
            .where(counter.name == LEASE_ID_COUNTER)
            .values(
                value=case(
                    (counter.value >= self.id_max_value, self.id_min_value),
                    (counter.value < self.id_min_value, self.id_min_value),
                    else_=counter.value + 1,
                )
            )
            .returning(counter.value)
        )
        value = (await self.session.execute(advance)).scalar_one_or_none()
        if value is not None:
            return value

        # First allocation ever: seed just below the range, then advance.
        seed = (
            self._insert(lease_sequences)
            .values(name=LEASE_ID_COUNTER, value=self.id_min_value - 1)
            .on_conflict_do_nothing(index_elements=[counter.name])
        )
        await self.session.execute(seed)
        return (await self.session.execute(advance)).scalar_one()

    # ------------------------------------------------------------------
    # Lease operations
    # ------------------------------------------------------------------

    async def create(self, title: str = "") -> LeaseTicket:
        """Allocate an id and insert a fresh ticket.

        An expired row still occupying the id is replaced in place. A live
        one raises IdCollision; the allocated id is not reused.
        """
        lease_id = await self.next_id()
        now, expiry = self._clock_reading()

        stmt = self._insert(lease_tickets).values(
            id=lease_id,
            creation=now,
            expiry=expiry,
            title=title,
            refresh_count=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[lease_tickets.c.id],
            set_={
                "creation": stmt.excluded.creation,
                "expiry": stmt.excluded.expiry,
                "title": stmt.excluded.title,
                "refresh_count": 0,
            },
            where=lease_tickets.c.expiry <= now,
        ).returning(*lease_tickets.c)

        row = (await self.session.execute(stmt)).mappings().one_or_none()
        if row is None:
            raise IdCollision(lease_id)
        return LeaseTicket.from_row(row)

    async def heartbeat(self, lease_id: int) -> LeaseTicket | None:
        """Push expiry to now + timeout and bump refresh_count.

        Returns None when no live record exists. Expiry never moves
        backwards, even when a heartbeat read an older clock value than one
        applied before it.
        """
        now, expiry = self._clock_reading()
        t = lease_tickets.c
        stmt = (
            update(lease_tickets)
            .where(t.id == lease_id, t.expiry > now)
            .values(
                expiry=case((t.expiry > expiry, t.expiry), else_=expiry),
                refresh_count=t.refresh_count + 1,
            )
            .returning(*lease_tickets.c)
        )
        row = (await self.session.execute(stmt)).mappings().one_or_none()
        return LeaseTicket.from_row(row) if row else None

    async def release(self, lease_id: int) -> bool:
        """Delete the ticket. Returns whether a row was removed."""
        result = await self.session.execute(
            delete(lease_tickets).where(lease_tickets.c.id == lease_id)
        )
        return result.rowcount > 0

    async def is_live(self, lease_id: int) -> bool:
        """Whether a record exists for the id with expiry strictly in the future."""
        now, _ = self._clock_reading()
        found = await self.session.scalar(
            select(lease_tickets.c.id).where(
                lease_tickets.c.id == lease_id,
                lease_tickets.c.expiry > now,
            )
        )
        return found is not None

    async def get(self, lease_id: int) -> LeaseTicket | None:
        """Get the stored ticket for an id, live or not."""
        row = (
            await self.session.execute(
                select(lease_tickets).where(lease_tickets.c.id == lease_id)
            )
        ).mappings().one_or_none()
        return LeaseTicket.from_row(row) if row else None

    async def sweep(self, limit: int | None = None) -> list[ExpiredLease]:
        """Delete tickets whose expiry has passed and return them."""
        now, _ = self._clock_reading()
        t = lease_tickets.c
        condition = t.expiry <= now
        if limit is not None:
            # Concurrent sweepers skip rows another sweeper already holds.
            batch = (
                select(t.id)
                .where(condition)
                .order_by(t.expiry)
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            condition = t.id.in_(batch)

        result = await self.session.execute(
            delete(lease_tickets).where(condition).returning(*lease_tickets.c)
        )
        return [ExpiredLease.from_row(row) for row in result.mappings().all()]
