"""Persisted connection settings for the buyers endpoint."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from buyersync.config import get_settings
from buyersync.models import SystemConfig
from buyersync.schemas.buyer import BuyersApiSettings

logger = logging.getLogger(__name__)
settings = get_settings()

BUYERS_SETTINGS_KEY = "buyers_accounts_settings"


def default_buyers_settings() -> BuyersApiSettings:
    """Settings from the environment, used when nothing is stored."""
    return BuyersApiSettings(endpoint=settings.finance_endpoint, token=settings.finance_token)


async def get_buyers_settings(db: AsyncSession) -> BuyersApiSettings | None:
    """Load stored settings, or None if they were never saved."""
    row = await db.get(SystemConfig, BUYERS_SETTINGS_KEY)
    if row is None:
        return None

    defaults = default_buyers_settings()
    return BuyersApiSettings(
        endpoint=row.endpoint or defaults.endpoint,
        token=row.token or defaults.token,
    )


async def save_buyers_settings(
    db: AsyncSession,
    endpoint: str | None = None,
    token: str | None = None,
) -> BuyersApiSettings:
    """
    Merge new values into the stored settings.

    Empty values keep whatever was stored before.

    Returns:
        The effective settings after the merge
    """
    row = await db.get(SystemConfig, BUYERS_SETTINGS_KEY)
    if row is None:
        row = SystemConfig(key=BUYERS_SETTINGS_KEY)
        db.add(row)

    if endpoint:
        row.endpoint = endpoint.strip()
    if token:
        row.token = token.strip()

    await db.commit()
    logger.info(f"Saved buyers settings (endpoint={row.endpoint})")

    defaults = default_buyers_settings()
    return BuyersApiSettings(
        endpoint=row.endpoint or defaults.endpoint,
        token=row.token or defaults.token,
    )
