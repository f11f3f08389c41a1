"""LeaseGate engine errors."""


class LeaseGateError(Exception):
    """Base error for LeaseGate operations."""

    def __init__(self, message: str, code: str = "LEASEGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class StoreUnavailable(LeaseGateError):
    """The lease store could not be reached. Never retried by LeaseGate."""

    def __init__(self, detail: str = ""):
        super().__init__(
            f"Lease store unavailable: {detail}" if detail else "Lease store unavailable",
            "STORE_UNAVAILABLE",
        )
        self.detail = detail


class NotFound(LeaseGateError):
    """No live record exists for the lease id.

    Expected and recoverable: the claim lapsed or was released, so the work
    it protected is no longer exclusively held.
    """

    def __init__(self, lease_id: int):
        super().__init__(f"Lease not found or expired: {lease_id}", "LEASE_NOT_FOUND")
        self.lease_id = lease_id


class IdCollision(LeaseGateError):
    """A freshly allocated id is still held by a live lease."""

    def __init__(self, lease_id: int):
        super().__init__(
            f"Allocated lease id {lease_id} is held by a live lease",
            "LEASE_ID_COLLISION",
        )
        self.lease_id = lease_id


class AllocationExhausted(LeaseGateError):
    """Every allocation attempt collided with a live lease."""

    def __init__(self, attempts: int, last_id: int | None = None):
        super().__init__(
            f"Could not allocate a free lease id after {attempts} attempts",
            "LEASE_ALLOCATION_EXHAUSTED",
        )
        self.attempts = attempts
        self.last_id = last_id


class HandleClosed(LeaseGateError):
    """A lost or released handle was used again."""

    def __init__(self, lease_id: int, state: str):
        super().__init__(
            f"Lease handle {lease_id} is {state} and can no longer be used",
            "LEASE_HANDLE_CLOSED",
        )
        self.lease_id = lease_id
        self.state = state
