# =============================================================================
# app/websocket/manager.py - Conversation Connection Registry
# =============================================================================
# Tracks open WebSockets per conversation and fans events out to them.
#
# Usage:
#   from app.websocket import websocket_manager
#
#   await websocket_manager.connect(conversation_id, websocket)
#   await websocket_manager.broadcast(conversation_id, {"type": "message_created", ...})
#   websocket_manager.disconnect(conversation_id, websocket)
# =============================================================================

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Open WebSockets grouped by conversation id.

    Both participants (and any number of their tabs) can watch the same
    conversation. Sockets that fail on send are dropped.
    """

    def __init__(self):
        self.connections: dict[str, set[WebSocket]] = {}

    async def connect(self, conversation_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.setdefault(conversation_id, set()).add(websocket)
        logger.info(
            f"WebSocket joined conversation {conversation_id} "
            f"({self.get_connection_count()} open)"
        )

    def disconnect(self, conversation_id: str, websocket: WebSocket) -> None:
        sockets = self.connections.get(conversation_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.connections[conversation_id]
        logger.info(f"WebSocket left conversation {conversation_id}")

    async def broadcast(self, conversation_id: str, event: dict[str, Any]) -> int:
        """
        Send an event to every socket watching a conversation.

        Returns:
            Number of sockets the event reached
        """
        sockets = list(self.connections.get(conversation_id, ()))
        if not sockets:
            return 0

        sent = 0
        for websocket in sockets:
            try:
                await websocket.send_json(event)
                sent += 1
            except Exception as e:
                logger.warning(f"Dropping WebSocket for {conversation_id}: {e}")
                self.disconnect(conversation_id, websocket)

        logger.debug(f"{event.get('type')} -> {conversation_id}: {sent}/{len(sockets)} sockets")
        return sent

    def get_connection_count(self, conversation_id: str | None = None) -> int:
        if conversation_id:
            return len(self.connections.get(conversation_id, ()))
        return sum(len(sockets) for sockets in self.connections.values())

    def get_active_conversations(self) -> list[str]:
        return list(self.connections)


websocket_manager = ConnectionManager()
