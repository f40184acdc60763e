# =============================================================================
# app/websocket/__init__.py - Real-Time Conversation Events
# =============================================================================
# Services publish through EventPublisher (Redis pub/sub); the API process
# relays each event to the sockets watching that conversation:
#
#   publisher.message_created(conversation_id, message.model_dump(mode="json"))
#   await websocket_manager.broadcast(conversation_id, {"type": ..., ...})
# =============================================================================

from app.websocket.manager import ConnectionManager, websocket_manager
from app.websocket.broadcast import (
    DELIVERY_PROGRESS,
    MESSAGE_CREATED,
    OFFER_UPDATED,
    WEBSOCKET_CHANNEL,
    EventPublisher,
)

__all__ = [
    "ConnectionManager",
    "websocket_manager",
    "EventPublisher",
    "WEBSOCKET_CHANNEL",
    "MESSAGE_CREATED",
    "OFFER_UPDATED",
    "DELIVERY_PROGRESS",
]
