"""REST API router."""

from fastapi import APIRouter, Depends, HTTPException, Response

from leasegate import __version__
from leasegate.api.deps import get_store, verify_api_key
from leasegate.api.schemas import (
    ConfigResponse,
    CreateLeaseRequest,
    HealthResponse,
    LeaseResponse,
    LivenessResponse,
    SweepRequest,
    SweepResponse,
)
from leasegate.config import settings
from leasegate.engine import AllocationExhausted, LeaseStore, NotFound, StoreUnavailable

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])


def _local_now(store: LeaseStore):
    return store.clock() if store.clock else None


# ============================================================================
# Health & Config
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/config", response_model=ConfigResponse)
async def get_config(store: LeaseStore = Depends(get_store)):
    """Get lease configuration."""
    return ConfigResponse(
        lease_timeout_seconds=store.timeout.total_seconds(),
        id_min_value=store.id_min_value or settings.id_min_value,
        id_max_value=store.id_max_value or settings.id_max_value,
        max_create_attempts=store.max_create_attempts,
    )


# ============================================================================
# Leases
# ============================================================================


@router.post("/leases", response_model=LeaseResponse, status_code=201)
async def create_lease(
    request: CreateLeaseRequest,
    store: LeaseStore = Depends(get_store),
):
    """Create a lease."""
    try:
        if request.cleanup:
            ticket = await store.create_with_cleanup(request.title)
        else:
            ticket = await store.create(request.title)
    except (AllocationExhausted, StoreUnavailable) as e:
        raise HTTPException(status_code=503, detail=e.message)
    return LeaseResponse.from_ticket(ticket, _local_now(store))


@router.post("/leases/sweep", response_model=SweepResponse)
async def sweep_leases(
    request: SweepRequest,
    store: LeaseStore = Depends(get_store),
):
    """Delete expired leases."""
    try:
        expired = await store.sweep(limit=request.limit)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
    now = _local_now(store)
    return SweepResponse(
        swept=len(expired),
        leases=[LeaseResponse.from_ticket(ticket, now) for ticket in expired],
    )


@router.get("/leases/{lease_id}", response_model=LeaseResponse)
async def get_lease(lease_id: int, store: LeaseStore = Depends(get_store)):
    """Get a stored lease, live or not."""
    try:
        ticket = await store.get(lease_id)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
    if ticket is None:
        raise HTTPException(status_code=404, detail=f"Lease not found: {lease_id}")
    return LeaseResponse.from_ticket(ticket, _local_now(store))


@router.get("/leases/{lease_id}/live", response_model=LivenessResponse)
async def lease_liveness(lease_id: int, store: LeaseStore = Depends(get_store)):
    """Check whether a lease is live."""
    try:
        live = await store.is_live(lease_id)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
    return LivenessResponse(id=lease_id, live=live)


@router.post("/leases/{lease_id}/heartbeat", response_model=LeaseResponse)
async def heartbeat_lease(lease_id: int, store: LeaseStore = Depends(get_store)):
    """Extend a live lease."""
    try:
        ticket = await store.heartbeat(lease_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
    return LeaseResponse.from_ticket(ticket, _local_now(store))


@router.delete("/leases/{lease_id}", status_code=204)
async def release_lease(lease_id: int, store: LeaseStore = Depends(get_store)):
    """Release a lease. Releasing an unknown id is not an error."""
    try:
        await store.release(lease_id)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
    return Response(status_code=204)
