"""Enumerations for LeaseGate models."""

from enum import Enum


class HandleState(str, Enum):
    """Lifecycle of a caller-held lease handle."""

    LIVE = "live"
    LOST = "lost"  # heartbeat found no live record
    RELEASED = "released"

    @property
    def is_terminal(self) -> bool:
        return self is not HandleState.LIVE
