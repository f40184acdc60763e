# =============================================================================
# app/websocket/broadcast.py - Cross-Process Broadcasting
# =============================================================================
# Publishes conversation events that get broadcast to WebSocket clients.
#
# Uses Redis pub/sub for cross-process communication:
# - Services (API process or Celery workers) call EventPublisher.publish()
# - The API process subscribes and broadcasts to WebSocket clients
#
# Events:
#   - message_created: A text, offer or system message was appended
#   - offer_updated: An offer was accepted, rejected or paid
#   - delivery_progress: Upload progress of an order delivery
# =============================================================================

import json
import logging
from typing import Any

import redis

logger = logging.getLogger(__name__)

# Redis channel for WebSocket events
WEBSOCKET_CHANNEL = "lumo:websocket:events"

MESSAGE_CREATED = "message_created"
OFFER_UPDATED = "offer_updated"
DELIVERY_PROGRESS = "delivery_progress"


class EventPublisher:
    """
    Publishes conversation events to the Redis channel.

    Publishing is best-effort: a Redis outage is logged and never fails the
    write that triggered the event.

    Example:
        publisher = EventPublisher(settings.REDIS_URL)
        publisher.publish(conversation_id, "message_created", {"message": {...}})
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.redis_url)
        return self._client

    def publish(self, conversation_id: str, event_type: str, data: dict[str, Any]) -> bool:
        """
        Publish an event for every client watching a conversation.

        Args:
            conversation_id: The conversation to broadcast to
            event_type: message_created, offer_updated or delivery_progress
            data: Event data to include

        Returns:
            bool: True if published successfully
        """
        message = json.dumps({
            "conversation_id": conversation_id,
            "type": event_type,
            **data
        }, default=str)

        try:
            self._get_client().publish(WEBSOCKET_CHANNEL, message)
        except redis.RedisError as e:
            logger.error(f"Failed to publish {event_type} event: {e}")
            return False

        logger.debug(f"Published {event_type} event for conversation {conversation_id}")
        return True

    def message_created(self, conversation_id: str, message: dict[str, Any]) -> bool:
        return self.publish(conversation_id, MESSAGE_CREATED, {"message": message})

    def offer_updated(self, conversation_id: str, offer_id: str, offer_status: str) -> bool:
        return self.publish(
            conversation_id,
            OFFER_UPDATED,
            {"offer_id": offer_id, "offer_status": offer_status},
        )

    def delivery_progress(
        self,
        conversation_id: str,
        order_id: str,
        file_index: int,
        progress: float,
    ) -> bool:
        """
        Publish upload progress of one delivery file.

        Args:
            progress: Fraction in [0, 1]
        """
        return self.publish(
            conversation_id,
            DELIVERY_PROGRESS,
            {"order_id": order_id, "file_index": file_index, "progress": round(progress, 4)},
        )
