"""Database connection and session management."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from leasegate.config import settings
from leasegate.observability.metrics import metrics

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def make_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine with pool settings suited to the dialect."""
    options: dict[str, Any] = {"echo": settings.debug}
    if database_url.startswith("postgresql"):
        options.update(
            pool_pre_ping=True,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
    options.update(kwargs)
    new_engine = create_async_engine(database_url, **options)
    attach_query_metrics(new_engine)
    return new_engine


def attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Attach SQLAlchemy event listeners for query metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_leasegate_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is None:
            return
        duration_ms = (time.perf_counter() - start_time) * 1000.0
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", duration_ms)

    sync_engine._leasegate_metrics_attached = True


engine = make_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(target_engine: AsyncEngine | None = None) -> None:
    """Create tables that do not exist yet.

    PostgreSQL deployments should prefer the Alembic migration, which also
    installs the expiry trigger.
    """
    import leasegate.db.tables  # noqa: F401

    async with (target_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def timeout_mismatch(stored_seconds: float | None, configured_seconds: float) -> bool:
    """Warn when the database expiry trigger and the settings disagree.

    Creates compute expiry from the settings; heartbeats on a migrated
    PostgreSQL store are recomputed by the trigger from lease_timeout().
    """
    if stored_seconds is None or abs(stored_seconds - configured_seconds) < 1e-6:
        return False
    logger.warning(
        f"lease_timeout() in the database is {stored_seconds}s but "
        f"LEASEGATE_LEASE_TIMEOUT_SECONDS is {configured_seconds}s; heartbeats will use "
        "the database value. Add a migration that replaces lease_timeout()."
    )
    return True


async def check_lease_timeout(target_engine: AsyncEngine | None = None) -> float | None:
    """Compare the migrated lease_timeout() with the configured timeout.

    Returns the stored timeout in seconds, or None when the store has no
    such function (SQLite, or a schema built without the migration).
    """
    target_engine = target_engine or engine
    if target_engine.dialect.name != "postgresql":
        return None

    async with target_engine.connect() as conn:
        exists = await conn.scalar(text("SELECT to_regprocedure('lease_timeout()') IS NOT NULL"))
        if not exists:
            return None
        stored = float(await conn.scalar(text("SELECT extract(epoch FROM lease_timeout())")))

    timeout_mismatch(stored, float(settings.lease_timeout_seconds))
    return stored


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session that commits on success."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
