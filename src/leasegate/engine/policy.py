"""Expiry policy shared by lease creation and heartbeats."""

from datetime import timedelta
from typing import TypeVar

T = TypeVar("T")


def next_expiry(now: T, timeout: timedelta) -> T:
    """Return now + timeout.

    now may be a datetime or a SQL expression such as func.now(); the
    result is of the same kind. There is no grace period.
    """
    return now + timeout
