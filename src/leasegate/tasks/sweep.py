"""Lease reclamation sweep background task."""

import asyncio
import logging
import random
from typing import Optional

from leasegate.config import settings
from leasegate.engine import LeaseStore

logger = logging.getLogger("leasegate.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def sweep_once(store: LeaseStore) -> int:
    """Run one sweep pass and log what it removed."""
    expired = await store.sweep(limit=settings.sweep_batch_size)
    for ticket in expired:
        logger.info(f"Swept {ticket.describe()}")
    return len(expired)


async def lease_sweep_loop(store: LeaseStore | None = None):
    """
    Background loop that deletes expired lease tickets.

    Not required for correctness: expired rows already read as not live.
    Sweeping keeps the table small and frees ids before the sequence wraps
    back to them.

    The interval is jittered by +/-20% so several instances do not sweep
    in lockstep.
    """
    store = store or LeaseStore()
    base_interval = settings.sweep_interval_seconds
    logger.info(f"Lease sweep loop started (base interval: {base_interval}s with ±20% jitter)")

    while not _shutdown_event.is_set():
        try:
            swept = await sweep_once(store)
            if swept > 0:
                logger.info(f"Swept {swept} expired leases")
        except Exception as e:
            logger.error(f"Lease sweep error: {e}", exc_info=True)

        jittered_interval = base_interval * random.uniform(0.8, 1.2)

        # Wait for next sweep interval or shutdown
        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=jittered_interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Lease sweep loop stopped")


async def start_lease_sweep(store: LeaseStore | None = None):
    """Start the lease sweep background task."""
    global _sweep_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(lease_sweep_loop(store))


async def stop_lease_sweep():
    """Stop the lease sweep background task."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Lease sweep task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None
