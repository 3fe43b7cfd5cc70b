"""Pydantic schemas for API request/response validation."""

from buyersync.schemas.buyer import (
    BuyersApiSettings,
    BuyersResponse,
    BuyersSettingsIn,
    BuyersSettingsOut,
)
from buyersync.schemas.sync import PageResponse, SyncProgressOut, SyncResultOut, SyncStatusOut

__all__ = [
    "BuyersApiSettings",
    "BuyersResponse",
    "BuyersSettingsIn",
    "BuyersSettingsOut",
    "PageResponse",
    "SyncProgressOut",
    "SyncResultOut",
    "SyncStatusOut",
]
