"""LeaseGate domain models."""

from leasegate.models.enums import HandleState
from leasegate.models.lease import ExpiredLease, LeaseTicket

__all__ = ["ExpiredLease", "HandleState", "LeaseTicket"]
