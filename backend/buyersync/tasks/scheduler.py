"""Background task scheduler for buyers sync."""

import logging
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from buyersync.config import get_settings
from buyersync.services.buyers_data import get_buyers_data_service

logger = logging.getLogger(__name__)
settings = get_settings()

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def sync_buyers_job() -> None:
    """Background job running a full buyers re-sync."""
    service = get_buyers_data_service()
    if service.is_running:
        logger.info("Buyers sync already in progress, skipping scheduled run")
        return

    logger.info("Starting scheduled buyers sync")
    try:
        result = await service.run_sync(full=True)
        if result is not None:
            logger.info(f"Buyers sync complete: {result.record_count} records ({result.stopped_reason.value})")
    except Exception as e:
        logger.error(f"Buyers sync failed: {e}", exc_info=True)


def setup_scheduler() -> AsyncIOScheduler:
    """Set up and start the background task scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler()
    now = datetime.now(UTC)

    if settings.resync_interval_minutes > 0:
        # Periodic full re-sync; first run right away if auto sync is on.
        # APScheduler treats an explicit next_run_time=None as "paused".
        extra = {"next_run_time": now} if settings.auto_sync_on_startup else {}
        scheduler.add_job(
            sync_buyers_job,
            trigger=IntervalTrigger(minutes=settings.resync_interval_minutes),
            id="sync_buyers",
            name="Sync buyer accounts",
            replace_existing=True,
            **extra,
        )
    elif settings.auto_sync_on_startup:
        scheduler.add_job(
            sync_buyers_job,
            trigger=DateTrigger(run_date=now),
            id="sync_buyers",
            name="Initial buyer accounts sync",
            replace_existing=True,
        )

    scheduler.start()
    logger.info("Scheduler started")

    return scheduler


def shutdown_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    global scheduler

    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
        scheduler = None
