# =============================================================================
# app/websocket/routes.py - WebSocket Routes
# =============================================================================
# Real-time updates for one conversation.
#
# Connect: ws://host/ws/conversations/{conversation_id}?token={jwt}
#
# Events:
#   - {"type": "message_created", "message": {...}}
#   - {"type": "offer_updated", "offer_id": "...", "offer_status": "accepted"}
#   - {"type": "delivery_progress", "order_id": "...", "file_index": 0, "progress": 0.4}
# =============================================================================

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.auth import InvalidTokenError, decode_access_token
from app.dependencies import ServicesDep
from app.websocket.manager import websocket_manager
from lib.supabase_client import SupabaseClientError

logger = logging.getLogger(__name__)

router = APIRouter()

# Close codes
CLOSE_SERVER_ERROR = 4000
CLOSE_INVALID_TOKEN = 4001
CLOSE_NOT_FOUND = 4004


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_websocket(
    websocket: WebSocket,
    conversation_id: str,
    services: ServicesDep,
    token: str = Query(..., description="JWT token for authentication"),
):
    """
    Stream events of a conversation to one of its participants.

    The socket is closed with 4001 for a bad token and 4004 when the
    conversation doesn't exist or the user isn't part of it. Send "ping" to
    get "pong" back.
    """
    try:
        user = decode_access_token(token, services.settings.SUPABASE_JWT_SECRET)
    except InvalidTokenError as e:
        logger.warning(f"WebSocket auth failed: {e}")
        await websocket.close(code=CLOSE_INVALID_TOKEN, reason="Invalid token")
        return

    try:
        conversation = services.conversations.find_conversation(conversation_id)
    except SupabaseClientError as e:
        logger.error(f"WebSocket: error fetching conversation {conversation_id}: {e}")
        await websocket.close(code=CLOSE_SERVER_ERROR, reason="Server error")
        return

    if conversation is None or not conversation.has_participant(user.id):
        logger.warning(f"WebSocket: user {user.id} refused for conversation {conversation_id}")
        await websocket.close(code=CLOSE_NOT_FOUND, reason="Conversation not found")
        return

    await websocket_manager.connect(conversation_id, websocket)
    try:
        await websocket.send_json({"type": "connected", "conversation_id": conversation_id})
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.info(f"WebSocket client left conversation {conversation_id}")
    finally:
        websocket_manager.disconnect(conversation_id, websocket)


@router.get("/ws/status")
async def websocket_status():
    conversations = websocket_manager.get_active_conversations()
    return {
        "total_connections": websocket_manager.get_connection_count(),
        "active_conversations": conversations,
        "conversation_count": len(conversations),
    }
