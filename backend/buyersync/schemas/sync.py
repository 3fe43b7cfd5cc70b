"""Pydantic schemas for proxy page responses and sync status."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class PageResponse(BaseModel):
    """
    Reply from the proxy for one page of the upstream resource.

    The upstream nests records as ``data.data`` with ``data.total``; some
    deployments return a bare list in ``data`` or report the total under
    ``data.meta.pagination.total`` / ``data.meta.total``.
    """

    ok: bool
    data: Any = None
    error: str | None = None

    @property
    def items(self) -> list[Any]:
        """Records carried by this page."""
        payload = self.data
        if isinstance(payload, dict):
            nested = payload.get("data")
            return nested if isinstance(nested, list) else []
        if isinstance(payload, list):
            return payload
        return []

    @property
    def total(self) -> int | None:
        """Server-reported total record count, if any."""
        if not isinstance(self.data, dict):
            return None
        total = _as_int(self.data.get("total"))
        if total is not None:
            return total
        meta = self.data.get("meta")
        if isinstance(meta, dict):
            pagination = meta.get("pagination")
            if isinstance(pagination, dict):
                total = _as_int(pagination.get("total"))
                if total is not None:
                    return total
            return _as_int(meta.get("total"))
        return None


class SyncProgressOut(BaseModel):
    """Progress after the most recently accepted page."""

    fetched_count: int
    total_expected: int | None = None
    page_just_fetched: int


class SyncResultOut(BaseModel):
    """Terminal outcome of a successful or cancelled run."""

    record_count: int
    stopped_reason: str
    pages_fetched: int


class SyncStatusOut(BaseModel):
    """Live view of the buyers sync."""

    is_running: bool
    fetched_count: int
    total_expected: int | None = None
    current_page: int
    last_error: str | None = None
    last_result: SyncResultOut | None = None
    last_finished_at: datetime | None = None
    logs: list[str] = Field(default_factory=list)


class SyncTriggerOut(BaseModel):
    """Response to a manual sync request."""

    started: bool
    full: bool
    message: str
