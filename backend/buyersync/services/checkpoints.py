"""Persistence of sync outcomes per data source."""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from buyersync.models import SyncCheckpoint

logger = logging.getLogger(__name__)

BUYERS_SOURCE = "buyers"
FAILED_STATUS = "failed"


async def get_checkpoint(db: AsyncSession, source: str) -> SyncCheckpoint | None:
    """Get the last recorded sync outcome for a data source."""
    return await db.get(SyncCheckpoint, source)


async def record_sync_outcome(
    db: AsyncSession,
    source: str,
    record_count: int,
    status: str,
    error: str | None = None,
) -> SyncCheckpoint:
    """Upsert the checkpoint after a sync run ends (successfully or not)."""
    checkpoint = await db.get(SyncCheckpoint, source)
    now = datetime.now(UTC)

    if checkpoint is None:
        checkpoint = SyncCheckpoint(
            source=source,
            last_sync_at=now,
            record_count=record_count,
            status=status,
            last_error=error,
        )
        db.add(checkpoint)
    else:
        checkpoint.last_sync_at = now
        checkpoint.record_count = record_count
        checkpoint.status = status
        checkpoint.last_error = error

    await db.commit()
    logger.info(f"Checkpoint {source}: {status}, {record_count} records")
    return checkpoint
