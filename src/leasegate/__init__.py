"""LeaseGate - expiring lease tickets for long-running operations."""

from leasegate.engine import (
    AllocationExhausted,
    HandleClosed,
    IdCollision,
    LeaseGateError,
    LeaseHandle,
    LeaseStore,
    NotFound,
    StoreUnavailable,
)
from leasegate.models import ExpiredLease, HandleState, LeaseTicket

__version__ = "0.1.0"

__all__ = [
    "AllocationExhausted",
    "ExpiredLease",
    "HandleClosed",
    "HandleState",
    "IdCollision",
    "LeaseGateError",
    "LeaseHandle",
    "LeaseStore",
    "LeaseTicket",
    "NotFound",
    "StoreUnavailable",
]
