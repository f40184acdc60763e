# =============================================================================
# tests/test_websocket.py - WebSocket Tests
# =============================================================================
# ConnectionManager with stand-in sockets, the conversation endpoint's
# handshake through TestClient, and EventPublisher payloads.
#
# Run with: pytest tests/test_websocket.py -v
# =============================================================================

import asyncio
import json
from unittest.mock import MagicMock

import pytest
import redis
from starlette.websockets import WebSocketDisconnect

from app.websocket import WEBSOCKET_CHANNEL, ConnectionManager, EventPublisher
from tests.conftest import BRAND_ID, CREATOR_ID, OUTSIDER_ID


class FakeSocket:
    def __init__(self, broken: bool = False):
        self.accepted = False
        self.sent: list[dict] = []
        self.broken = broken

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(data)


# =============================================================================
# ConnectionManager
# =============================================================================

class TestConnectionManager:
    """Tests for the per-conversation socket registry."""

    def test_connect_and_count(self):
        manager = ConnectionManager()
        first, second = FakeSocket(), FakeSocket()

        asyncio.run(manager.connect("c1", first))
        asyncio.run(manager.connect("c1", second))
        asyncio.run(manager.connect("c2", FakeSocket()))

        assert first.accepted
        assert manager.get_connection_count("c1") == 2
        assert manager.get_connection_count() == 3
        assert sorted(manager.get_active_conversations()) == ["c1", "c2"]

    def test_broadcast_only_to_conversation(self):
        manager = ConnectionManager()
        watcher, other = FakeSocket(), FakeSocket()
        asyncio.run(manager.connect("c1", watcher))
        asyncio.run(manager.connect("c2", other))

        sent = asyncio.run(manager.broadcast("c1", {"type": "message_created"}))

        assert sent == 1
        assert watcher.sent == [{"type": "message_created"}]
        assert other.sent == []

    def test_broken_socket_dropped(self):
        manager = ConnectionManager()
        healthy, broken = FakeSocket(), FakeSocket(broken=True)
        asyncio.run(manager.connect("c1", healthy))
        asyncio.run(manager.connect("c1", broken))

        assert asyncio.run(manager.broadcast("c1", {"type": "offer_updated"})) == 1
        assert manager.get_connection_count("c1") == 1

    def test_disconnect_removes_empty_conversation(self):
        manager = ConnectionManager()
        socket = FakeSocket()
        asyncio.run(manager.connect("c1", socket))

        manager.disconnect("c1", socket)
        manager.disconnect("c1", socket)

        assert manager.get_active_conversations() == []

    def test_broadcast_without_sockets(self):
        assert asyncio.run(ConnectionManager().broadcast("nobody", {"type": "x"})) == 0


# =============================================================================
# Endpoint
# =============================================================================

@pytest.fixture
def conversation_id(services, seeded_users):
    return services.conversations.initialize_conversation(BRAND_ID, CREATOR_ID)


class TestConversationSocket:
    """Tests for WS /ws/conversations/{conversation_id}."""

    def test_participant_connects(self, api_client, make_token, conversation_id):
        url = f"/ws/conversations/{conversation_id}?token={make_token(CREATOR_ID)}"

        with api_client.websocket_connect(url) as websocket:
            assert websocket.receive_json() == {"type": "connected", "conversation_id": conversation_id}
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

    def test_invalid_token(self, api_client, conversation_id):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(f"/ws/conversations/{conversation_id}?token=garbage"):
                pass
        assert exc_info.value.code == 4001

    def test_outsider_refused(self, api_client, make_token, conversation_id):
        url = f"/ws/conversations/{conversation_id}?token={make_token(OUTSIDER_ID)}"

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(url):
                pass
        assert exc_info.value.code == 4004

    def test_token_checked_against_injected_secret(self, api_client, services, settings, make_token, conversation_id):
        services.settings = settings.model_copy(update={"SUPABASE_JWT_SECRET": "rotated-jwt-secret-for-tests"})
        url = f"/ws/conversations/{conversation_id}?token={make_token(CREATOR_ID)}"

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(url):
                pass
        assert exc_info.value.code == 4001

    def test_unknown_conversation(self, api_client, make_token):
        url = f"/ws/conversations/a_b?token={make_token(BRAND_ID)}"

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(url):
                pass
        assert exc_info.value.code == 4004

    def test_status(self, api_client):
        data = api_client.get("/ws/status").json()
        assert set(data) == {"total_connections", "active_conversations", "conversation_count"}


# =============================================================================
# EventPublisher
# =============================================================================

class TestEventPublisher:
    """Tests for the Redis event payloads."""

    def test_delivery_progress_payload(self):
        publisher = EventPublisher("redis://unused")
        publisher._client = MagicMock()

        assert publisher.delivery_progress("c1", "offer_1", 2, 0.333333)

        channel, message = publisher._client.publish.call_args.args
        assert channel == WEBSOCKET_CHANNEL
        assert json.loads(message) == {
            "conversation_id": "c1",
            "type": "delivery_progress",
            "order_id": "offer_1",
            "file_index": 2,
            "progress": 0.3333,
        }

    def test_redis_outage_is_not_raised(self):
        publisher = EventPublisher("redis://unused")
        publisher._client = MagicMock()
        publisher._client.publish.side_effect = redis.ConnectionError("down")

        assert publisher.offer_updated("c1", "offer_1", "paid") is False
