"""LeaseGate engine - lease lifecycle operations and handles."""

from leasegate.engine.errors import (
    AllocationExhausted,
    HandleClosed,
    IdCollision,
    LeaseGateError,
    NotFound,
    StoreUnavailable,
)
from leasegate.engine.policy import next_expiry
from leasegate.engine.core import LeaseStore
from leasegate.engine.handle import LeaseHandle

__all__ = [
    "AllocationExhausted",
    "HandleClosed",
    "IdCollision",
    "LeaseGateError",
    "LeaseHandle",
    "LeaseStore",
    "NotFound",
    "StoreUnavailable",
    "next_expiry",
]
