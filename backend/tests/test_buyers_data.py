"""Tests for the buyers data service and its persistence helpers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from buyersync.schemas.buyer import BuyersApiSettings
from buyersync.schemas.sync import PageResponse
from buyersync.services.checkpoints import BUYERS_SOURCE, get_checkpoint, record_sync_outcome
from buyersync.services.settings_store import get_buyers_settings, save_buyers_settings
from buyersync.services.sync_engine import IllegalStateError, StoppedReason
from conftest import make_buyers, make_page


async def wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestBuyersDataService:
    """Tests for BuyersDataService."""

    @pytest.mark.asyncio
    async def test_run_sync_stores_snapshot(self, service, page_plan, session_factory):
        page_plan[1] = [make_page(make_buyers(1, 5), total=5)]

        result = await service.run_sync()

        assert result.stopped_reason == StoppedReason.SHORT_PAGE
        assert len(service.buyers) == 5
        assert service.progress.fetched_count == 5
        assert service.progress.total_expected == 5
        assert service.error is None
        assert service.last_finished_at is not None

        async with session_factory() as db:
            checkpoint = await get_checkpoint(db, BUYERS_SOURCE)
        assert checkpoint.status == "short_page"
        assert checkpoint.record_count == 5
        assert checkpoint.last_error is None

    @pytest.mark.asyncio
    async def test_run_sync_failure_keeps_partial_data(
        self, service, page_plan, session_factory, fake_sleep
    ):
        page_plan[1] = [make_page(make_buyers(1, 1000))]
        page_plan[2] = [PageResponse(ok=False, error="Invalid token")]

        result = await service.run_sync()

        assert result is None
        assert len(service.buyers) == 1000
        assert "Page 2 failed after 3 attempts" in service.error
        assert fake_sleep.delays == [1.5, 3.0]

        async with session_factory() as db:
            checkpoint = await get_checkpoint(db, BUYERS_SOURCE)
        assert checkpoint.status == "failed"
        assert "Invalid token" in checkpoint.last_error

    @pytest.mark.asyncio
    async def test_run_sync_without_token_is_skipped(self, service, fake_client_factory, api_settings):
        service.configure(BuyersApiSettings(endpoint=api_settings.endpoint, token=None))

        result = await service.run_sync()

        assert result is None
        assert fake_client_factory.clients[-1].calls == []

    @pytest.mark.asyncio
    async def test_full_sync_drops_stale_records(self, service, page_plan):
        page_plan[1] = [make_page(make_buyers(1, 3)), make_page(make_buyers(10, 2))]

        await service.run_sync()
        await service.run_sync(full=True)

        assert [b["id"] for b in service.buyers] == [10, 11]

    @pytest.mark.asyncio
    async def test_background_sync_is_not_reentrant(self, service, page_plan):
        page_plan[1] = [make_page(make_buyers(1, 2))]
        service.client.gate = asyncio.Event()

        assert service.start_background_sync() is True
        assert service.start_background_sync() is False
        assert service.is_running is True

        service.client.gate.set()
        await service.wait()

        assert service.is_running is False
        assert len(service.buyers) == 2
        assert service.client.calls == [1]

    @pytest.mark.asyncio
    async def test_apply_settings_cancels_and_restarts(self, service, page_plan, fake_client_factory):
        page_plan[1] = [make_page(make_buyers(1, 1000))]
        page_plan[2] = [make_page(make_buyers(1001, 3))]
        old_client = service.client
        old_client.gate = asyncio.Event()

        service.start_background_sync()
        await wait_until(lambda: service.engine.is_running)

        new_settings = BuyersApiSettings(endpoint="https://finance.test/v2/buyers", token="new_token_123456")
        apply = asyncio.create_task(service.apply_settings(new_settings))
        await wait_until(lambda: len(old_client.calls) == 1)
        old_client.gate.set()
        started = await apply
        await service.wait()

        assert started is True
        assert old_client.calls == [1]
        assert service.client is fake_client_factory.clients[-1]
        assert service.client.endpoint == "https://finance.test/v2/buyers"
        assert service.client.calls == [1, 2]
        assert len(service.buyers) == 1003
        assert service.last_result.stopped_reason == StoppedReason.SHORT_PAGE

    @pytest.mark.asyncio
    async def test_apply_settings_during_directly_awaited_run(
        self, service, page_plan, fake_client_factory
    ):
        """Scheduler runs call run_sync directly; new settings still take over."""
        page_plan[1] = [make_page(make_buyers(1, 1000))]
        page_plan[2] = [make_page(make_buyers(1001, 3))]
        old_client = service.client
        old_client.gate = asyncio.Event()

        scheduled = asyncio.create_task(service.run_sync(full=True))
        await wait_until(lambda: service.engine.is_running)

        new_settings = BuyersApiSettings(endpoint="https://finance.test/v2/buyers", token="new_token_123456")
        apply = asyncio.create_task(service.apply_settings(new_settings))
        await asyncio.sleep(0)
        old_client.gate.set()
        started = await apply
        old_result = await scheduled
        await service.wait()

        assert started is True
        assert old_result.stopped_reason == StoppedReason.CANCELLED
        assert service.settings == new_settings
        assert service.client is fake_client_factory.clients[-1]
        assert service.client.calls == [1, 2]
        assert len(service.buyers) == 1003

    @pytest.mark.asyncio
    async def test_cancel_before_background_run_starts(self, service, page_plan):
        page_plan[1] = [make_page(make_buyers(1, 2))]

        assert service.start_background_sync() is True
        assert service.cancel() is True
        await service.wait()

        assert service.client.calls == []
        assert service.buyers == []
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_apply_settings_skips_queued_run(self, service, page_plan, fake_client_factory):
        page_plan[1] = [make_page(make_buyers(1, 2))]
        old_client = service.client

        service.start_background_sync()
        new_settings = BuyersApiSettings(endpoint="https://finance.test/v2/buyers", token="new_token_123456")
        started = await service.apply_settings(new_settings)
        await service.wait()

        assert started is True
        assert old_client.calls == []
        assert service.client.calls == [1]
        assert len(service.buyers) == 2

    @pytest.mark.asyncio
    async def test_wait_covers_directly_awaited_run(self, service, page_plan):
        page_plan[1] = [make_page(make_buyers(1, 2))]
        service.client.gate = asyncio.Event()

        scheduled = asyncio.create_task(service.run_sync())
        await wait_until(lambda: service.engine.is_running)
        assert service.is_running is True

        waiter = asyncio.create_task(service.wait())
        await asyncio.sleep(0)
        assert waiter.done() is False

        service.client.gate.set()
        await waiter
        assert scheduled.done() is True
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_failed_full_resync_clears_previous_snapshot(
        self, service, page_plan, session_factory
    ):
        page_plan[1] = [make_page(make_buyers(1, 3)), RuntimeError("down")]
        await service.run_sync()
        assert len(service.buyers) == 3

        result = await service.run_sync(full=True)

        assert result is None
        assert service.buyers == []
        assert service.get("1") is None
        assert service.status().fetched_count == 0
        async with session_factory() as db:
            checkpoint = await get_checkpoint(db, BUYERS_SOURCE)
        assert checkpoint.status == "failed"
        assert checkpoint.record_count == 0

    @pytest.mark.asyncio
    async def test_configure_while_running_raises(self, service, page_plan, api_settings):
        service.client.gate = asyncio.Event()
        service.start_background_sync()

        with pytest.raises(IllegalStateError):
            service.configure(api_settings)

        service.client.gate.set()
        await service.wait()

    @pytest.mark.asyncio
    async def test_cancel_returns_false_when_idle(self, service):
        assert service.cancel() is False

    @pytest.mark.asyncio
    async def test_search_and_get(self, service, page_plan):
        page_plan[1] = [make_page(make_buyers(1, 12))]
        await service.run_sync()

        matches, total = service.search(q="buyer 1", limit=2)
        assert total == 4  # Buyer 1, 10, 11, 12
        assert [b["id"] for b in matches] == [1, 10]

        page, total = service.search(offset=10, limit=5)
        assert total == 12
        assert [b["id"] for b in page] == [11, 12]

        assert service.get("7")["name"] == "Buyer 7"
        assert service.get("999") is None

    @pytest.mark.asyncio
    async def test_status(self, service, page_plan):
        page_plan[1] = [RuntimeError("timeout"), make_page(make_buyers(1, 2), total=2)]

        await service.run_sync()
        status = service.status()

        assert status.is_running is False
        assert status.fetched_count == 2
        assert status.total_expected == 2
        assert status.last_result.stopped_reason == "short_page"
        assert status.logs[0].startswith("Retry 1/3 for page 1")
        assert status.logs[-1] == "Sync complete: 2 records"

    @pytest.mark.asyncio
    async def test_broadcasts_progress_and_status(self, service, page_plan, connections):
        page_plan[1] = [make_page(make_buyers(1, 2))]
        websocket = MagicMock()
        websocket.accept = AsyncMock()
        websocket.send_json = AsyncMock()
        await connections.connect(websocket)

        await service.run_sync()

        sent_types = [call.args[0]["type"] for call in websocket.send_json.call_args_list]
        assert sent_types == ["sync_progress", "sync_status"]
        final = websocket.send_json.call_args_list[-1].args[0]
        assert final["data"]["is_running"] is False
        assert final["data"]["fetched_count"] == 2

    @pytest.mark.asyncio
    async def test_load_persisted_settings(self, service, session_factory):
        assert await service.load_persisted_settings() is False

        async with session_factory() as db:
            await save_buyers_settings(db, endpoint="https://finance.test/stored", token="stored_token")

        assert await service.load_persisted_settings() is True
        assert service.settings.endpoint == "https://finance.test/stored"
        assert service.client.token == "stored_token"


class TestSettingsStore:
    """Tests for persisted buyers settings."""

    @pytest.mark.asyncio
    async def test_get_returns_none_when_unsaved(self, db_session):
        assert await get_buyers_settings(db_session) is None

    @pytest.mark.asyncio
    async def test_save_merges_empty_fields(self, db_session):
        await save_buyers_settings(db_session, endpoint="https://a.test/buyers", token="first")

        effective = await save_buyers_settings(db_session, endpoint="", token="second")

        assert effective.endpoint == "https://a.test/buyers"
        assert effective.token == "second"
        stored = await get_buyers_settings(db_session)
        assert stored == effective


class TestCheckpoints:
    """Tests for sync outcome checkpoints."""

    @pytest.mark.asyncio
    async def test_checkpoint_roundtrip(self, db_session):
        assert await get_checkpoint(db_session, "buyers") is None

        await record_sync_outcome(db_session, "buyers", 10, "failed", error="Page 3 failed")
        await record_sync_outcome(db_session, "buyers", 42, "empty_page")

        checkpoint = await get_checkpoint(db_session, "buyers")
        assert checkpoint.record_count == 42
        assert checkpoint.status == "empty_page"
        assert checkpoint.last_error is None
