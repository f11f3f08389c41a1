"""
Concurrency and race condition tests.
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import T0, TIMEOUT
from leasegate.engine import LeaseStore, NotFound
from leasegate.models import LeaseTicket


@pytest.mark.asyncio
async def test_two_stores_share_one_id_space(session_factory, clock):
    """Independent stores (as in separate processes) allocate distinct ids."""
    store_a = LeaseStore(session_factory, timeout=TIMEOUT, clock=clock)
    store_b = LeaseStore(session_factory, timeout=TIMEOUT, clock=clock)

    results = await asyncio.gather(
        *(store.create(f"{name}-{i}") for i in range(5) for name, store in (("a", store_a), ("b", store_b)))
    )

    ids = [t.id for t in results]
    assert len(set(ids)) == 10


@pytest.mark.asyncio
async def test_concurrent_heartbeats_are_linearized(store, clock):
    """Every concurrent heartbeat is counted exactly once."""
    ticket = await store.create("hot")
    clock.set(30)

    await asyncio.gather(*(store.heartbeat(ticket.id) for _ in range(8)))

    stored = await store.get(ticket.id)
    assert stored.refresh_count == 8
    assert stored.expiry == T0 + timedelta(seconds=150)


@pytest.mark.asyncio
async def test_release_racing_heartbeat_never_resurrects(store):
    """After a release wins, heartbeats report NotFound instead of recreating the row."""
    ticket = await store.create("contended")

    results = await asyncio.gather(
        store.release(ticket.id),
        store.heartbeat(ticket.id),
        return_exceptions=True,
    )

    assert results[0] is True
    # The heartbeat either ran first or saw the release; it never fails otherwise.
    assert isinstance(results[1], (LeaseTicket, NotFound))
    assert await store.get(ticket.id) is None
    with pytest.raises(NotFound):
        await store.heartbeat(ticket.id)


@pytest.mark.asyncio
async def test_concurrent_sweeps_remove_each_row_once(store, clock):
    for i in range(6):
        await store.create(f"job-{i}")
    clock.advance(TIMEOUT.total_seconds() + 1)

    first, second = await asyncio.gather(store.sweep(), store.sweep())

    swept_ids = [t.id for t in first] + [t.id for t in second]
    assert sorted(swept_ids) == sorted(set(swept_ids))
    assert len(swept_ids) == 6
