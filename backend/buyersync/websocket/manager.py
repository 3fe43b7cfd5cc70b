"""WebSocket connection manager for broadcasting sync updates."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from fastapi import WebSocket

from buyersync.websocket.schemas import SyncProgressMessage, SyncStatusMessage

logger = logging.getLogger(__name__)

SyncMessage = SyncProgressMessage | SyncStatusMessage

TOPIC_BY_TYPE = {
    "sync_progress": "progress",
    "sync_status": "status",
}


@dataclass
class ClientSubscription:
    """Tracks which topics a client wants."""

    websocket: WebSocket
    topics: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def matches(self, message: SyncMessage) -> bool:
        """Check if a message belongs to a subscribed topic."""
        if not self.topics:
            return True
        return TOPIC_BY_TYPE.get(message.type) in self.topics


class ConnectionManager:
    """
    Manages WebSocket connections and broadcasts sync updates.

    Designed for single-instance deployment.
    """

    def __init__(self):
        self._connections: dict[WebSocket, ClientSubscription] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        """Number of active connections."""
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections[websocket] = ClientSubscription(websocket=websocket)
        logger.info(f"WebSocket connected. Total connections: {self.connection_count}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        async with self._lock:
            if websocket in self._connections:
                del self._connections[websocket]
        logger.info(f"WebSocket disconnected. Total connections: {self.connection_count}")

    async def update_subscription(self, websocket: WebSocket, topics: list[str] | None) -> None:
        """Update a client's topic filter. None subscribes to everything."""
        async with self._lock:
            if websocket in self._connections:
                self._connections[websocket].topics = set(topics or [])
                logger.debug(f"Updated subscription: topics={topics}")

    async def broadcast(self, message: SyncMessage) -> int:
        """
        Send a message to every subscriber whose topics match.

        Returns:
            Number of clients the message was sent to
        """
        async with self._lock:
            if not self._connections:
                return 0

            tasks = [
                self._send_safe(websocket, message)
                for websocket, subscription in list(self._connections.items())
                if subscription.matches(message)
            ]

            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
                logger.debug(f"Broadcast {message.type} to {len(tasks)} subscribers")
            return len(tasks)

    async def _send_safe(self, websocket: WebSocket, message: SyncMessage) -> None:
        """Send message to websocket, handling errors gracefully."""
        try:
            await websocket.send_json(message.model_dump(mode="json"))
        except Exception as e:
            logger.warning(f"Failed to send to websocket: {e}")
            # Schedule disconnect (don't do it here to avoid deadlock)
            asyncio.create_task(self.disconnect(websocket))


# Global singleton instance
manager = ConnectionManager()
