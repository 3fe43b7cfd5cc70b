"""Pydantic schemas for buyer accounts and their API settings."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BuyersApiSettings(BaseModel):
    """Connection settings for the upstream buyers endpoint."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    token: str | None = None


class BuyersSettingsIn(BaseModel):
    """Settings update; empty fields keep the stored value."""

    endpoint: str | None = Field(None, max_length=2000)
    token: str | None = Field(None, max_length=500)


class BuyersSettingsOut(BaseModel):
    """Settings as shown to clients (token masked)."""

    endpoint: str
    token_configured: bool
    token_preview: str | None = None


class BuyersResponse(BaseModel):
    """Paginated slice of the mirrored buyer accounts."""

    buyers: list[dict[str, Any]]
    total: int
    offset: int
    limit: int
    fetched_count: int
    total_expected: int | None = None
    is_syncing: bool
