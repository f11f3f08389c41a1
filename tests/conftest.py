"""
Pytest fixtures for LeaseGate tests.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Ensure test config is set before importing leasegate modules.
os.environ.setdefault("LEASEGATE_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("LEASEGATE_ENV", "development")
os.environ.setdefault("LEASEGATE_DATABASE_URL", "sqlite+aiosqlite://")

from leasegate.db.base import Base, make_engine
from leasegate.engine import LeaseStore
from leasegate.observability.metrics import metrics
import leasegate.db.tables  # noqa: F401

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
TIMEOUT = timedelta(seconds=120)


class FakeClock:
    """Controllable stand-in for the store's time source."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def set(self, offset_seconds: float) -> datetime:
        """Move to T0 + offset."""
        self.now = T0 + timedelta(seconds=offset_seconds)
        return self.now


def _test_database_url(tmp_path) -> str:
    url = os.getenv("LEASEGATE_TEST_DATABASE_URL")
    if url:
        if "test" not in url:
            raise RuntimeError(
                "Refusing to run LeaseGate tests against a non-test database. "
                "Set LEASEGATE_TEST_DATABASE_URL to a dedicated test database."
            )
        return url
    return f"sqlite+aiosqlite:///{tmp_path / 'leasegate_test.db'}"


@pytest.fixture
async def engine(tmp_path):
    """Fresh schema per test."""
    engine = make_engine(_test_database_url(tmp_path))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory, clock):
    """Store with a 120s timeout and a controllable clock."""
    return LeaseStore(session_factory, timeout=TIMEOUT, clock=clock)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
