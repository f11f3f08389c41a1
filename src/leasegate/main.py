"""LeaseGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from leasegate import __version__
from leasegate.api import router
from leasegate.api.deps import validate_auth_config
from leasegate.config import settings
from leasegate.db.base import check_lease_timeout, close_db, init_db
from leasegate.tasks.sweep import start_lease_sweep, stop_lease_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("leasegate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting LeaseGate server...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Lease timeout: {settings.lease_timeout_seconds}s")

    # Fail fast on insecure configuration
    validate_auth_config()

    await init_db()
    await check_lease_timeout()
    logger.info("Database initialized")

    if settings.sweep_enabled:
        await start_lease_sweep()
        logger.info("Lease sweep task started")

    yield

    logger.info("Shutting down LeaseGate server...")
    await stop_lease_sweep()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="LeaseGate",
    description="Expiring lease tickets for exclusive long-running operations",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "leasegate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
