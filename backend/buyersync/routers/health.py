"""Health endpoints."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buyersync.database import get_db
from buyersync.services.buyers_data import BuyersDataService, get_buyers_data_service
from buyersync.services.checkpoints import BUYERS_SOURCE, get_checkpoint

router = APIRouter(tags=["health"])


class DataSourceStatus(BaseModel):
    """Status of a data source."""

    last_sync: datetime | None
    last_status: str | None = None
    last_error: str | None = None
    record_count: int
    is_syncing: bool
    token_configured: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    buyers: DataSourceStatus


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BuyersDataService, Depends(get_buyers_data_service)],
) -> HealthResponse:
    """
    Health check endpoint with sync status.

    Combines the stored checkpoint of the last run with the live engine state.
    """
    checkpoint = await get_checkpoint(db, BUYERS_SOURCE)

    buyers_status = DataSourceStatus(
        last_sync=checkpoint.last_sync_at if checkpoint else None,
        last_status=checkpoint.status if checkpoint else None,
        last_error=checkpoint.last_error if checkpoint else None,
        record_count=len(service.buyers),
        is_syncing=service.is_running,
        token_configured=service.has_token,
    )

    status = "degraded" if checkpoint is not None and checkpoint.last_error else "healthy"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(UTC),
        buyers=buyers_status,
    )


@router.get("/ready")
async def readiness_check() -> dict:
    """Simple readiness probe for container orchestration."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict:
    """Simple liveness probe for container orchestration."""
    return {"status": "alive"}
