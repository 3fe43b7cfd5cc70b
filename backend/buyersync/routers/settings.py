"""API routes for the upstream connection settings."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from buyersync.database import get_db
from buyersync.schemas.buyer import BuyersApiSettings, BuyersSettingsIn, BuyersSettingsOut
from buyersync.services.buyers_data import BuyersDataService, get_buyers_data_service
from buyersync.services.settings_store import save_buyers_settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/settings", tags=["settings"])


def _to_out(api_settings: BuyersApiSettings) -> BuyersSettingsOut:
    token = api_settings.token
    preview = f"****{token[-4:]}" if token and len(token) > 8 else None
    return BuyersSettingsOut(
        endpoint=api_settings.endpoint,
        token_configured=bool(token),
        token_preview=preview,
    )


@router.get("/buyers", response_model=BuyersSettingsOut)
async def get_buyers_api_settings(
    service: Annotated[BuyersDataService, Depends(get_buyers_data_service)],
) -> BuyersSettingsOut:
    """Settings currently used by the buyers sync."""
    return _to_out(service.settings)


@router.put("/buyers", response_model=BuyersSettingsOut)
async def update_buyers_api_settings(
    payload: BuyersSettingsIn,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BuyersDataService, Depends(get_buyers_data_service)],
) -> BuyersSettingsOut:
    """
    Save new settings and restart the sync from page 1.

    Empty fields keep their stored value. A running sync is cancelled first.
    """
    effective = await save_buyers_settings(db, endpoint=payload.endpoint, token=payload.token)

    if effective != service.settings:
        started = await service.apply_settings(effective)
        logger.info(f"Buyers settings changed, re-sync started={started}")

    return _to_out(effective)
