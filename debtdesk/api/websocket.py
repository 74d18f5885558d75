"""
WebSocket endpoints for live conversation updates
"""
from datetime import datetime, timezone
from typing import Any, Dict, Set

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..db.gateway import ChangeEvent
from ..models.schemas import ChatMessage
from ..services.chat_service import ChatService
from ..services.error_handling import DebtDeskError, classify_error
from .deps import get_ws_user_context

logger = structlog.get_logger()

router = APIRouter(tags=["websocket"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Tracks open sockets per channel"""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str):
        await websocket.accept()
        self.active_connections.setdefault(channel, set()).add(websocket)
        logger.info("WebSocket connected", channel=channel)
        await self.send_personal_message(
            {"type": "connection_established", "channel": channel, "timestamp": _now()},
            websocket,
        )

    def disconnect(self, websocket: WebSocket, channel: str):
        connections = self.active_connections.get(channel)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self.active_connections[channel]
        logger.info("WebSocket disconnected", channel=channel)

    async def send_personal_message(self, message: Dict[str, Any], websocket: WebSocket):
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Error sending message to WebSocket: {e}")


manager = ConnectionManager()


async def _serve(websocket: WebSocket, channel: str, on_client_message=None):
    """Answer pings (and optional client commands) until the socket closes."""
    while True:
        data = await websocket.receive_json()
        message_type = data.get("type")
        if message_type == "ping":
            await manager.send_personal_message({"type": "pong", "timestamp": _now()}, websocket)
        elif on_client_message is not None:
            await on_client_message(data)


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_stream(websocket: WebSocket, conversation_id: str):
    """Push every new message of one conversation to the socket."""
    channel = f"conversation:{conversation_id}"
    await manager.connect(websocket, channel)
    chat = ChatService(websocket.app.state.gateway)
    pump = None
    try:
        ctx = await get_ws_user_context(websocket)
        await chat.get_conversation(ctx, conversation_id)

        async def forward(message: ChatMessage):
            await websocket.send_json({"type": "message", "message": message.model_dump(mode="json")})

        async def on_client_message(data: Dict[str, Any]):
            if data.get("type") == "mark_read":
                await chat.mark_as_read(ctx, conversation_id)
                await manager.send_personal_message({"type": "read", "timestamp": _now()}, websocket)

        pump = await chat.watch_messages(ctx, conversation_id, forward)
        await manager.send_personal_message({"type": "subscribed", "channel": channel}, websocket)
        await _serve(websocket, channel, on_client_message)
    except WebSocketDisconnect:
        pass
    except DebtDeskError as e:
        info = classify_error(e, {"channel": channel})
        await manager.send_personal_message({"type": "error", **info.to_response()}, websocket)
        await websocket.close(code=1008)
    finally:
        if pump is not None:
            await pump.close()
        manager.disconnect(websocket, channel)


@router.websocket("/ws/conversations")
async def conversations_stream(websocket: WebSocket):
    """Push raw change events on the conversations collection."""
    channel = "conversations"
    await manager.connect(websocket, channel)
    chat = ChatService(websocket.app.state.gateway)
    pump = None
    try:
        async def forward(event: ChangeEvent):
            await websocket.send_json({
                "type": "conversation_change",
                "event": event.event,
                "row": event.row,
                "old_row": event.old_row,
            })

        pump = await chat.watch_conversations(forward)
        await manager.send_personal_message({"type": "subscribed", "channel": channel}, websocket)
        await _serve(websocket, channel)
    except WebSocketDisconnect:
        pass
    except DebtDeskError as e:
        info = classify_error(e, {"channel": channel})
        await manager.send_personal_message({"type": "error", **info.to_response()}, websocket)
        await websocket.close(code=1008)
    finally:
        if pump is not None:
            await pump.close()
        manager.disconnect(websocket, channel)
