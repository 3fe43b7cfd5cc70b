"""WebSocket router for live sync progress."""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from buyersync.websocket.manager import manager
from buyersync.websocket.schemas import ErrorMessage, PongMessage, SubscribeMessage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/sync")
async def websocket_sync(websocket: WebSocket):
    """
    WebSocket endpoint for live buyers sync updates.

    Protocol:
    - Client connects and receives every update by default
    - Client may narrow updates with a subscribe message
    - Server sends pong in response to ping for keep-alive

    Message formats:
    Client -> Server:
        {"type": "subscribe", "topics": ["progress", "status"]}
        {"type": "ping"}

    Server -> Client:
        {"type": "sync_progress", "data": {...}, "timestamp": "2026-01-18T10:30:00Z"}
        {"type": "sync_status", "data": {...}, "timestamp": "2026-01-18T10:30:00Z"}
        {"type": "pong"}
        {"type": "error", "message": "..."}
    """
    await manager.connect(websocket)

    try:
        while True:
            raw_message = await websocket.receive_text()

            try:
                data = json.loads(raw_message)
                msg_type = data.get("type")

                if msg_type == "subscribe":
                    msg = SubscribeMessage.model_validate(data)
                    await manager.update_subscription(websocket, msg.topics)

                elif msg_type == "ping":
                    await websocket.send_json(PongMessage().model_dump())

                else:
                    error = ErrorMessage(message=f"Unknown message type: {msg_type}")
                    await websocket.send_json(error.model_dump())

            except json.JSONDecodeError:
                error = ErrorMessage(message="Invalid JSON")
                await websocket.send_json(error.model_dump())
            except Exception as e:
                logger.exception(f"Error processing message: {e}")
                error = ErrorMessage(message=str(e))
                await websocket.send_json(error.model_dump())

    except WebSocketDisconnect:
        await manager.disconnect(websocket)
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        await manager.disconnect(websocket)
