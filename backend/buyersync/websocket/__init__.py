"""WebSocket module for live sync updates."""

from buyersync.websocket.manager import ConnectionManager
from buyersync.websocket.router import router as websocket_router

__all__ = ["ConnectionManager", "websocket_router"]
