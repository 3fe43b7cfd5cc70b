"""Buyers data service: hosts the sync engine and the mirrored buyer list."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buyersync.config import get_settings
from buyersync.database import async_session_maker
from buyersync.schemas.buyer import BuyersApiSettings
from buyersync.schemas.sync import SyncProgressOut, SyncResultOut, SyncStatusOut
from buyersync.services.checkpoints import BUYERS_SOURCE, FAILED_STATUS, record_sync_outcome
from buyersync.services.proxy_client import ProxyClient
from buyersync.services.settings_store import default_buyers_settings, get_buyers_settings
from buyersync.services.sync_engine import (
    IllegalStateError,
    IncrementalSyncEngine,
    Record,
    SyncFailedError,
    SyncProgress,
    SyncResult,
)
from buyersync.websocket.manager import ConnectionManager
from buyersync.websocket.manager import manager as ws_manager
from buyersync.websocket.schemas import SyncProgressMessage, SyncStatusMessage

logger = logging.getLogger(__name__)
settings = get_settings()

ClientFactory = Callable[[BuyersApiSettings], ProxyClient]


def build_proxy_client(api_settings: BuyersApiSettings) -> ProxyClient:
    """Create a proxy client for the given endpoint and token."""
    return ProxyClient(endpoint=api_settings.endpoint, token=api_settings.token)


class BuyersDataService:
    """
    Keeps an in-memory mirror of the upstream buyer accounts.

    Features:
    - One sync engine per configuration; new settings rebuild it
    - Latest snapshot and progress kept for the HTTP API
    - Live updates pushed to WebSocket subscribers
    - Outcome of each run stored as a sync checkpoint
    """

    def __init__(
        self,
        api_settings: BuyersApiSettings | None = None,
        client_factory: ClientFactory = build_proxy_client,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        connections: ConnectionManager | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.settings = api_settings or default_buyers_settings()
        self._client_factory = client_factory
        self._session_factory = session_factory
        self._connections = connections or ws_manager
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        # Set whenever no run_sync call is in progress, however it was started
        self._idle = asyncio.Event()
        self._idle.set()
        self._cancel_pending = False

        self.buyers: list[Record] = []
        self._by_id: dict[str, Record] = {}
        self.progress: SyncProgress | None = None
        self.last_result: SyncResult | None = None
        self.last_finished_at: datetime | None = None
        self.error: str | None = None

        self._build()

    def _build(self) -> None:
        self.client = self._client_factory(self.settings)
        self.engine = IncrementalSyncEngine(
            self.client.fetch_page,
            page_size=settings.sync_page_size,
            max_retries=settings.sync_max_retries,
            backoff_seconds=settings.sync_backoff_seconds,
            max_pages=settings.sync_max_pages,
            on_progress=self._on_progress,
            on_snapshot=self._on_snapshot,
            sleep=self._sleep,
        )

    @property
    def is_running(self) -> bool:
        return (
            self.engine.is_running
            or not self._idle.is_set()
            or (self._task is not None and not self._task.done())
        )

    @property
    def has_token(self) -> bool:
        return self.client.has_token

    def configure(self, api_settings: BuyersApiSettings) -> None:
        """Replace the connection settings and start from an empty mirror."""
        if self.is_running:
            raise IllegalStateError("Cannot reconfigure while a sync is running")

        self.settings = api_settings
        self._build()
        self.buyers = []
        self._by_id = {}
        self.progress = None
        self.last_result = None
        self.error = None
        logger.info(f"Buyers sync configured for {api_settings.endpoint}")

    async def load_persisted_settings(self) -> bool:
        """Apply settings saved in the database, if any. Returns True if applied."""
        if self._session_factory is None:
            return False
        async with self._session_factory() as db:
            stored = await get_buyers_settings(db)
        if stored is None:
            return False
        self.configure(stored)
        return True

    async def run_sync(self, full: bool = False) -> SyncResult | None:
        """
        Run one sync to completion.

        Args:
            full: Drop previously fetched records before starting

        Returns:
            SyncResult, or None when the run failed, was skipped or lacked a token
        """
        if not self.has_token:
            logger.warning("No API token configured, skipping buyers sync")
            return None
        if self.engine.is_running or not self._idle.is_set():
            logger.warning("Buyers sync already in progress, skipping")
            return None

        self._idle.clear()
        try:
            if self._cancel_pending:
                logger.info("Buyers sync cancelled before it started")
                return None
            return await self._run(full)
        finally:
            self._cancel_pending = False
            self._idle.set()

    async def _run(self, full: bool) -> SyncResult | None:
        if full:
            self.engine.reset()
            self._on_snapshot([])
        self.error = None

        try:
            result = await self.engine.start_sync()
        except SyncFailedError as e:
            self.error = f"Sync failed: {e}"
            await self._finish(FAILED_STATUS, error=str(e))
            return None

        if result is None:
            return None

        self.last_result = result
        await self._finish(result.stopped_reason.value)
        return result

    def start_background_sync(self, full: bool = False) -> bool:
        """Schedule ``run_sync`` on the event loop. False if not started."""
        if self.is_running:
            logger.info("Buyers sync already running, not starting another")
            return False
        if not self.has_token:
            logger.warning("No API token configured, not starting buyers sync")
            return False

        self._task = asyncio.create_task(self.run_sync(full=full))
        self._task.add_done_callback(self._log_task_failure)
        return True

    async def wait(self) -> None:
        """Wait for the current run to end, whether started here or by the scheduler."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        await self._idle.wait()

    def cancel(self) -> bool:
        """
        Request cancellation of the current sync. False if nothing runs.

        A run that is scheduled but has not reached the engine yet is skipped.
        """
        if self.engine.is_running:
            self.engine.cancel()
            return True
        if self.is_running:
            self._cancel_pending = True
            return True
        return False

    async def apply_settings(self, api_settings: BuyersApiSettings) -> bool:
        """
        Switch to new settings and start a full re-sync.

        An in-flight run is cancelled and awaited first.

        Returns:
            True if the re-sync was started
        """
        if self.is_running:
            self.cancel()
            await self.wait()

        self.configure(api_settings)
        return self.start_background_sync(full=True)

    def status(self) -> SyncStatusOut:
        """Current sync state for the API."""
        last_result = None
        if self.last_result is not None:
            last_result = SyncResultOut(
                record_count=self.last_result.record_count,
                stopped_reason=self.last_result.stopped_reason.value,
                pages_fetched=self.last_result.pages_fetched,
            )

        return SyncStatusOut(
            is_running=self.is_running,
            fetched_count=len(self.buyers),
            total_expected=self.engine.total_expected,
            current_page=self.engine.current_page,
            last_error=self.error,
            last_result=last_result,
            last_finished_at=self.last_finished_at,
            logs=self.engine.logs,
        )

    def search(self, q: str | None = None, offset: int = 0, limit: int = 50) -> tuple[list[Record], int]:
        """
        Case-insensitive search over the scalar fields of every buyer.

        Returns:
            Tuple of (requested slice, number of matches)
        """
        records = self.buyers
        if q:
            needle = q.casefold()
            records = [
                record
                for record in records
                if any(
                    needle in str(value).casefold()
                    for value in record.values()
                    if value is not None and not isinstance(value, (dict, list))
                )
            ]
        return records[offset:offset + limit], len(records)

    def get(self, buyer_id: str) -> Record | None:
        """Look up a buyer by id."""
        return self._by_id.get(buyer_id)

    async def _on_progress(self, progress: SyncProgress) -> None:
        self.progress = progress
        if self._connections.connection_count:
            await self._connections.broadcast(
                SyncProgressMessage(
                    data=SyncProgressOut(
                        fetched_count=progress.fetched_count,
                        total_expected=progress.total_expected,
                        page_just_fetched=progress.page_just_fetched,
                    ),
                    timestamp=datetime.now(UTC),
                )
            )

    def _on_snapshot(self, records: list[Record]) -> None:
        self.buyers = records
        self._by_id = {str(record["id"]): record for record in records}

    async def _finish(self, status: str, error: str | None = None) -> None:
        self.last_finished_at = datetime.now(UTC)

        if self._session_factory is not None:
            try:
                async with self._session_factory() as db:
                    await record_sync_outcome(
                        db, BUYERS_SOURCE, len(self.buyers), status, error=error
                    )
            except SQLAlchemyError as e:
                # Don't fail the sync if the checkpoint can't be written
                logger.error(f"Failed to record buyers checkpoint: {e}")

        if self._connections.connection_count:
            # The background task is still finishing here
            final_status = self.status().model_copy(update={"is_running": False})
            await self._connections.broadcast(
                SyncStatusMessage(data=final_status, timestamp=datetime.now(UTC))
            )

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background buyers sync crashed: {exc}", exc_info=exc)


_service: BuyersDataService | None = None


def get_buyers_data_service() -> BuyersDataService:
    """Get the process-wide buyers data service."""
    global _service
    if _service is None:
        _service = BuyersDataService(session_factory=async_session_maker)
    return _service
