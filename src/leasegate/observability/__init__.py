"""Observability helpers for LeaseGate."""

from leasegate.observability.metrics import metrics, timed_operation

__all__ = ["metrics", "timed_operation"]
