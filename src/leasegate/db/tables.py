"""SQLAlchemy table definitions."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Sequence, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from leasegate.config import MAX_LEASE_ID
from leasegate.db.base import Base

# Ids cycle because rows should not outlive a few lease timeouts.
LEASE_ID_SEQUENCE = Sequence(
    "lease_ticket_id_seq",
    start=1,
    minvalue=1,
    maxvalue=MAX_LEASE_ID,
    cycle=True,
    metadata=Base.metadata,
)

LEASE_ID_COUNTER = "lease_ticket_id"


class LeaseTicketTable(Base):
    """Lease tickets table - one row per live (or not yet swept) claim."""

    __tablename__ = "lease_tickets"

    id: Mapped[int] = mapped_column(
        Integer, LEASE_ID_SEQUENCE, primary_key=True, autoincrement=False
    )
    creation: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    expiry: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    refresh_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    __table_args__ = (
        # Index for expiry sweeps
        Index("idx_lease_tickets_expiry", "expiry"),
    )


class LeaseSequenceTable(Base):
    """Counter rows standing in for native sequences on dialects without them."""

    __tablename__ = "lease_sequences"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
