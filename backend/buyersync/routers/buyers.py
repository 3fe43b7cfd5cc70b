"""API routes for mirrored buyer accounts and their sync."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from buyersync.config import get_settings
from buyersync.rate_limit import limiter
from buyersync.schemas.buyer import BuyersResponse
from buyersync.schemas.sync import SyncStatusOut, SyncTriggerOut
from buyersync.services.buyers_data import BuyersDataService, get_buyers_data_service

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/buyers", tags=["buyers"])

ServiceDep = Annotated[BuyersDataService, Depends(get_buyers_data_service)]


@router.get("", response_model=BuyersResponse)
async def list_buyers(
    service: ServiceDep,
    q: str | None = Query(None, max_length=200, description="Search any field"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
) -> BuyersResponse:
    """
    List buyer accounts from the latest sync snapshot.

    Results reflect whatever has been fetched so far, even while a sync runs.
    """
    buyers, total = service.search(q=q, offset=offset, limit=limit)

    return BuyersResponse(
        buyers=buyers,
        total=total,
        offset=offset,
        limit=limit,
        fetched_count=len(service.buyers),
        total_expected=service.engine.total_expected,
        is_syncing=service.is_running,
    )


@router.get("/sync/status", response_model=SyncStatusOut)
async def sync_status(service: ServiceDep) -> SyncStatusOut:
    """Live progress, last outcome and retry log of the buyers sync."""
    return service.status()


@router.post("/sync", response_model=SyncTriggerOut, status_code=202)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def trigger_sync(
    request: Request,
    service: ServiceDep,
    full: bool = Query(False, description="Drop fetched records and start over"),
) -> SyncTriggerOut:
    """
    Start a buyers sync in the background.

    Progress is available from the status endpoint and the /ws/sync socket.
    """
    if not service.has_token:
        raise HTTPException(status_code=400, detail="No API token configured")

    if not service.start_background_sync(full=full):
        raise HTTPException(status_code=409, detail="Sync already in progress")

    return SyncTriggerOut(started=True, full=full, message="Sync started")


@router.post("/sync/cancel")
async def cancel_sync(service: ServiceDep) -> dict:
    """Stop the running sync at the next page boundary. Fetched records are kept."""
    cancelled = service.cancel()
    return {"cancelled": cancelled}


@router.get("/{buyer_id}")
async def get_buyer(buyer_id: str, service: ServiceDep) -> dict[str, Any]:
    """Get a single buyer account by id."""
    buyer = service.get(buyer_id)
    if buyer is None:
        raise HTTPException(status_code=404, detail="Buyer not found")
    return buyer
