"""Lease ticket models - the stored record of a claim."""

from datetime import datetime, timedelta
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

from leasegate.utils.time import ensure_utc, utc_now


class LeaseTicket(BaseModel):
    """Snapshot of one row of the lease table."""

    id: int
    creation: datetime
    expiry: datetime
    title: str = ""
    refresh_count: int = Field(default=0, ge=0)

    @field_validator("creation", "expiry")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LeaseTicket":
        """Build a ticket from a result row mapping."""
        return cls(
            id=row["id"],
            creation=row["creation"],
            expiry=row["expiry"],
            title=row["title"],
            refresh_count=row["refresh_count"],
        )

    def is_live(self, now: datetime | None = None) -> bool:
        """Liveness as of now, judged from this snapshot alone."""
        if now is None:
            now = utc_now()
        return ensure_utc(now) < self.expiry

    def remaining(self, now: datetime | None = None) -> timedelta:
        """Time left before expiry; negative once expired."""
        if now is None:
            now = utc_now()
        return self.expiry - ensure_utc(now)


class ExpiredLease(LeaseTicket):
    """A ticket removed by a sweep, kept for logging and debugging."""

    def describe(self) -> str:
        return (
            f"lease {self.id} ({self.title or 'untitled'}) created {self.creation.isoformat()}, "
            f"expired {self.expiry.isoformat()} after {self.refresh_count} heartbeats"
        )
