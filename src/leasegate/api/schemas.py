"""API request/response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from leasegate.models import LeaseTicket


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ConfigResponse(BaseModel):
    """Server configuration relevant to lease holders."""

    lease_timeout_seconds: float
    id_min_value: int
    id_max_value: int
    max_create_attempts: int


class CreateLeaseRequest(BaseModel):
    """Create lease request."""

    title: str = Field(default="", max_length=1024, description="What the lease protects")
    cleanup: bool = Field(default=False, description="Sweep expired leases first")


class LeaseResponse(BaseModel):
    """A lease ticket as stored."""

    id: int
    creation: datetime
    expiry: datetime
    title: str
    refresh_count: int
    live: bool

    @classmethod
    def from_ticket(cls, ticket: LeaseTicket, now: Optional[datetime] = None) -> "LeaseResponse":
        return cls(**ticket.model_dump(), live=ticket.is_live(now))


class LivenessResponse(BaseModel):
    """Liveness probe result."""

    id: int
    live: bool


class SweepRequest(BaseModel):
    """Sweep request."""

    limit: Optional[int] = Field(None, ge=1, le=10000, description="Max leases to remove")


class SweepResponse(BaseModel):
    """Sweep result."""

    swept: int
    leases: list[LeaseResponse]
