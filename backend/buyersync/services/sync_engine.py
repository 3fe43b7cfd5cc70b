"""Incremental sync engine for paginated remote resources."""

import asyncio
import copy
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from buyersync.config import get_settings
from buyersync.schemas.sync import PageResponse

logger = logging.getLogger(__name__)
settings = get_settings()

Record = dict[str, Any]
FetchPage = Callable[[int, int], Awaitable[PageResponse]]
ProgressCallback = Callable[["SyncProgress"], Any]
SnapshotCallback = Callable[[list[Record]], Any]
Sleep = Callable[[float], Awaitable[Any]]


class StoppedReason(str, Enum):
    """Why a sync run stopped without failing."""

    EXHAUSTED = "exhausted"
    EMPTY_PAGE = "empty_page"
    SHORT_PAGE = "short_page"
    CANCELLED = "cancelled"


class IllegalStateError(RuntimeError):
    """Operation not allowed in the engine's current state."""

    pass


class SyncFailedError(Exception):
    """A single page kept failing until the retry budget ran out."""

    def __init__(self, page: int, attempts: int, cause: str):
        self.page = page
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Page {page} failed after {attempts} attempts: {cause}")


@dataclass(frozen=True)
class SyncProgress:
    fetched_count: int
    total_expected: int | None
    page_just_fetched: int


@dataclass(frozen=True)
class SyncResult:
    record_count: int
    stopped_reason: StoppedReason
    pages_fetched: int


@dataclass
class SyncState:
    """Mutable state owned by a single engine instance."""

    accumulated: dict[str, Record] = field(default_factory=dict)
    total_expected: int | None = None
    current_page: int = 1
    is_running: bool = False
    last_error: str | None = None
    logs: list[str] = field(default_factory=list)


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class IncrementalSyncEngine:
    """
    Pulls every page of a paginated resource and keeps an id-deduplicated set.

    Features:
    - Strictly sequential page fetches through an injected ``fetch_page``
    - Linear backoff retry per page (1.5s, 3s, ... by default)
    - Dedup by ``str(record["id"])``; later pages overwrite earlier ones
    - Progress and snapshot callbacks after every accepted page
    - Cooperative cancellation checked between pages and during backoff

    The engine is not re-entrant: ``start_sync`` while a run is in flight
    returns ``None`` without touching the running loop.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        *,
        page_size: int = settings.sync_page_size,
        max_retries: int = settings.sync_max_retries,
        backoff_seconds: float = settings.sync_backoff_seconds,
        max_pages: int | None = None,
        on_progress: ProgressCallback | None = None,
        on_snapshot: SnapshotCallback | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.page_size = page_size
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_pages = max_pages

        self._fetch_page = fetch_page
        self._on_progress = on_progress
        self._on_snapshot = on_snapshot
        self._sleep = sleep
        self._state = SyncState()
        self._cancel_requested = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def current_page(self) -> int:
        return self._state.current_page

    @property
    def total_expected(self) -> int | None:
        return self._state.total_expected

    @property
    def last_error(self) -> str | None:
        return self._state.last_error

    @property
    def fetched_count(self) -> int:
        return len(self._state.accumulated)

    @property
    def logs(self) -> list[str]:
        return list(self._state.logs)

    def snapshot(self) -> list[Record]:
        """Deduplicated records in first-seen order, as an independent copy."""
        return copy.deepcopy(list(self._state.accumulated.values()))

    def reset(self) -> None:
        """Drop all accumulated records and start over from page 1."""
        if self._state.is_running:
            raise IllegalStateError("Cannot reset while a sync is running")
        self._state = SyncState()

    def cancel(self) -> None:
        """Ask the running sync to stop at the next page boundary or backoff wait."""
        if not self._state.is_running:
            return
        logger.info(f"Cancellation requested at page {self._state.current_page}")
        self._cancel_requested.set()

    async def start_sync(self) -> SyncResult | None:
        """
        Fetch pages from page 1 until an empty or short page.

        Returns:
            SyncResult, or None if a sync was already running

        Raises:
            SyncFailedError: When one page fails ``max_retries`` times in a row
        """
        state = self._state
        if state.is_running:
            logger.warning("Sync already in progress, skipping start request")
            return None

        state.is_running = True
        state.last_error = None
        state.logs = []
        state.current_page = 1
        self._cancel_requested.clear()
        pages_fetched = 0

        logger.info(f"Starting sync (page_size={self.page_size})")
        try:
            while True:
                if self._cancel_requested.is_set():
                    return self._finish(StoppedReason.CANCELLED, pages_fetched)

                page = state.current_page
                response = await self._fetch_with_retry(page)
                if response is None:
                    return self._finish(StoppedReason.CANCELLED, pages_fetched)

                items = response.items
                self._merge(items)
                self._update_total(response.total)
                pages_fetched += 1
                logger.info(
                    f"Page {page}: {len(items)} items, "
                    f"{self.fetched_count} unique records (total={state.total_expected})"
                )
                await self._emit(page)

                # Termination is decided on the raw page length, before dedup
                if not items:
                    return self._finish(StoppedReason.EMPTY_PAGE, pages_fetched)
                if len(items) < self.page_size:
                    return self._finish(StoppedReason.SHORT_PAGE, pages_fetched)
                if self.max_pages is not None and pages_fetched >= self.max_pages:
                    logger.warning(f"Reached safety limit of {self.max_pages} pages")
                    return self._finish(StoppedReason.EXHAUSTED, pages_fetched)

                state.current_page += 1

        except SyncFailedError as e:
            state.last_error = str(e)
            state.logs.append(f"Sync failed: {e}")
            logger.error(f"Sync failed: {e} ({self.fetched_count} records kept)")
            raise

        finally:
            state.is_running = False

    async def _fetch_with_retry(self, page: int) -> PageResponse | None:
        """Fetch one page, retrying with linear backoff. None means cancelled."""
        attempts = 0

        while True:
            try:
                response = await self._fetch_page(page, self.page_size)
                if not isinstance(response, PageResponse):
                    response = PageResponse.model_validate(response)
                if response.ok:
                    return response
                cause = response.error or "proxy reported ok=false"
            except Exception as e:
                # Every collaborator failure is treated as transient
                cause = str(e) or type(e).__name__

            attempts += 1
            if attempts >= self.max_retries:
                raise SyncFailedError(page, attempts, cause)

            delay = self.backoff_seconds * attempts
            message = f"Retry {attempts}/{self.max_retries} for page {page} in {delay:g}s: {cause}"
            self._state.logs.append(message)
            logger.warning(message)

            if await self._wait(delay):
                return None

    async def _wait(self, delay: float) -> bool:
        """Sleep for ``delay`` unless cancelled first. Returns True if cancelled."""
        if self._cancel_requested.is_set():
            return True

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(self._cancel_requested.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()

        if sleeper.done() and not sleeper.cancelled() and sleeper.exception() is not None:
            raise sleeper.exception()

        return self._cancel_requested.is_set()

    def _merge(self, items: list[Any]) -> None:
        accumulated = self._state.accumulated
        for item in items:
            # Records without an id are dropped, never given a synthetic one
            if not isinstance(item, Mapping) or not item.get("id"):
                continue
            accumulated[str(item["id"])] = item

    def _update_total(self, total: int | None) -> None:
        # Most recent non-zero total wins; a zero never hides a known total
        if total is None:
            return
        if self._state.total_expected is None or total != 0:
            self._state.total_expected = total

    async def _emit(self, page: int) -> None:
        if self._on_progress is not None:
            progress = SyncProgress(
                fetched_count=self.fetched_count,
                total_expected=self._state.total_expected,
                page_just_fetched=page,
            )
            await _maybe_await(self._on_progress(progress))
        if self._on_snapshot is not None:
            await _maybe_await(self._on_snapshot(self.snapshot()))

    def _finish(self, reason: StoppedReason, pages_fetched: int) -> SyncResult:
        count = self.fetched_count
        if reason is StoppedReason.CANCELLED:
            message = f"Sync cancelled after {pages_fetched} pages: {count} records"
        else:
            message = f"Sync complete: {count} records"
        self._state.logs.append(message)
        logger.info(f"{message} ({reason.value})")
        return SyncResult(record_count=count, stopped_reason=reason, pages_fetched=pages_fetched)
