"""Database models."""

from buyersync.models.sync_checkpoint import SyncCheckpoint
from buyersync.models.system_config import SystemConfig

__all__ = ["SyncCheckpoint", "SystemConfig"]
