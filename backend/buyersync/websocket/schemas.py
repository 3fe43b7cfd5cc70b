"""WebSocket message schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from buyersync.schemas.sync import SyncProgressOut, SyncStatusOut

Topic = Literal["progress", "status"]


class SubscribeMessage(BaseModel):
    """Client message selecting which updates to receive."""

    type: Literal["subscribe"] = "subscribe"
    topics: list[Topic] | None = None  # None = everything


class SyncProgressMessage(BaseModel):
    """Server message sent after every accepted page."""

    type: Literal["sync_progress"] = "sync_progress"
    data: SyncProgressOut
    timestamp: datetime


class SyncStatusMessage(BaseModel):
    """Server message sent when a sync run starts or ends."""

    type: Literal["sync_status"] = "sync_status"
    data: SyncStatusOut
    timestamp: datetime


class PingMessage(BaseModel):
    """Ping message for keep-alive."""

    type: Literal["ping"] = "ping"


class PongMessage(BaseModel):
    """Pong response for keep-alive."""

    type: Literal["pong"] = "pong"


class ErrorMessage(BaseModel):
    """Error message from server."""

    type: Literal["error"] = "error"
    message: str
