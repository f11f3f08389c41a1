"""LeaseGate background tasks."""

from leasegate.tasks.sweep import start_lease_sweep, stop_lease_sweep

__all__ = ["start_lease_sweep", "stop_lease_sweep"]
