"""SyncCheckpoint model to record the outcome of the last sync run."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from buyersync.database import Base


class SyncCheckpoint(Base):
    """
    Tracks the last sync run for each data source.

    Used by the health endpoint and to show the previous outcome after a restart.
    """

    __tablename__ = "sync_checkpoints"

    # e.g. 'buyers'
    source: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_sync_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    record_count: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    # StoppedReason value or 'failed'
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncCheckpoint {self.source}: {self.status} ({self.record_count})>"
