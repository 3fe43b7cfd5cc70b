"""Client for the finance API proxy with bearer token pass-through."""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from buyersync.config import get_settings
from buyersync.schemas.sync import PageResponse

logger = logging.getLogger(__name__)
settings = get_settings()


class ProxyClientError(Exception):
    """Base exception for proxy client errors."""

    pass


class ProxyClient:
    """
    Client for the HTTP proxy that relays requests to the finance API.

    Every request is a POST to the proxy carrying the upstream endpoint, the
    bearer token and the pagination params. The proxy replies with
    ``{"ok": bool, "data": ..., "error": ...}``.

    No retries happen here; callers decide the retry policy.
    """

    def __init__(
        self,
        proxy_url: str = settings.proxy_url,
        endpoint: str = settings.finance_endpoint,
        token: str | None = settings.finance_token,
        page_size_param: str = settings.page_size_param,
        sort: str = settings.sync_sort,
        timeout: float = settings.proxy_timeout_seconds,
    ):
        self.proxy_url = proxy_url
        self.endpoint = endpoint
        self.token = token
        self.page_size_param = page_size_param
        self.sort = sort
        self.timeout = timeout

        self.headers: dict[str, str] = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def build_payload(self, page: int, page_size: int) -> dict[str, Any]:
        """Build the proxy request body for one page."""
        return {
            "endpoint": self.endpoint,
            "token": self.token,
            "method": "POST",
            "params": {
                "pagination[page]": page,
                self.page_size_param: page_size,
                "sort": self.sort,
            },
            "body": {},
        }

    async def _post(self, payload: dict[str, Any]) -> Any:
        """POST to the proxy and return the decoded JSON body."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.proxy_url, headers=self.headers, json=payload)
                response.raise_for_status()
                return response.json()

        except httpx.HTTPStatusError as e:
            raise ProxyClientError(
                f"HTTP {e.response.status_code} from proxy: {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise ProxyClientError(f"Request error: {e}") from e
        except ValueError as e:
            raise ProxyClientError(f"Malformed JSON from proxy: {e}") from e

    async def fetch_page(self, page: int, page_size: int) -> PageResponse:
        """
        Fetch one page of records through the proxy.

        Args:
            page: 1-based page number
            page_size: Number of records requested per page

        Returns:
            Parsed proxy reply (``ok`` may be False with an ``error``)

        Raises:
            ProxyClientError: On transport failure, non-2xx status or malformed body
        """
        logger.debug(f"Fetching page {page} (size={page_size}) from {self.endpoint}")
        body = await self._post(self.build_payload(page, page_size))

        try:
            result = PageResponse.model_validate(body)
        except ValidationError as e:
            raise ProxyClientError(f"Unexpected proxy reply: {e}") from e

        if result.ok:
            logger.debug(f"Page {page}: {len(result.items)} items (total={result.total})")
        return result
