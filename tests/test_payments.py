# =============================================================================
# tests/test_payments.py - Stripe Checkout & Webhook Tests
# =============================================================================
# Checkout sessions are created with stripe.checkout.Session.create patched;
# webhook payloads are signed with the test webhook secret the same way
# Stripe signs them, so the real signature check runs.
#
# Run with: pytest tests/test_payments.py -v
# =============================================================================

import asyncio
import hashlib
import hmac
import io
import json
import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.exceptions import (
    CheckoutSessionError,
    ConversationNotFoundError,
    OfferActionError,
    PaymentsNotConfiguredError,
    WebhookSignatureError,
)
from core.models.conversation import OfferCreate, OfferStatus, TripSummary
from core.models.order import OrderStatus
from core.models.payment import CheckoutRequest
from core.services.conversation_service import PAYMENT_COMPLETED_TEXT
from core.services.payment_service import PaymentService, to_cents
from core.services.storage_service import UploadSource
from tests.conftest import BRAND_ID, CREATOR_ID, OUTSIDER_ID

CHECKOUT_CREATE = "stripe.checkout.Session.create"


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Stripe-Signature header value for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(offer_id: str, amount_total: int = 45000, **metadata: str) -> dict:
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "object": "checkout.session",
                "amount_total": amount_total,
                "currency": "usd",
                "metadata": {
                    "offer_id": offer_id,
                    "brand_id": BRAND_ID,
                    "creator_id": CREATOR_ID,
                    "trip_destination": "Lisbon",
                    "trip_country": "Portugal",
                    **metadata,
                },
            }
        },
    }


@pytest.fixture
def payments(services) -> PaymentService:
    return services.payments


@pytest.fixture
def accepted_offer(services, seeded_users, trip):
    """(conversation_id, offer_id) of an offer the creator accepted."""
    conversations = services.conversations
    conversation_id = conversations.initialize_conversation(BRAND_ID, CREATOR_ID)
    offer = conversations.send_offer(
        conversation_id,
        BRAND_ID,
        OfferCreate(trip=TripSummary(**trip), description="Two reels", price=450.0),
    )
    conversations.accept_offer(conversation_id, offer.offer_id, CREATOR_ID)
    return conversation_id, offer.offer_id


def checkout_request(conversation_id: str, offer_id: str, **overrides) -> CheckoutRequest:
    fields = {
        "offer_id": offer_id,
        "conversation_id": conversation_id,
        "creator_id": CREATOR_ID,
        "amount": 450.0,
        **overrides,
    }
    return CheckoutRequest(**fields)


# =============================================================================
# Checkout
# =============================================================================

class TestToCents:
    def test_rounds(self):
        assert to_cents(450.0) == 45000
        assert to_cents(19.99) == 1999


class TestCreateCheckoutSession:
    """Tests for PaymentService.create_checkout_session."""

    def test_creates_session_with_metadata(self, payments, accepted_offer, settings):
        conversation_id, offer_id = accepted_offer
        session = MagicMock(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

        with patch(CHECKOUT_CREATE, return_value=session) as create:
            response = payments.create_checkout_session(BRAND_ID, checkout_request(conversation_id, offer_id))

        assert response.session_id == "cs_test_1"
        assert response.url == "https://checkout.stripe.test/cs_test_1"

        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == settings.STRIPE_SECRET_KEY
        assert kwargs["mode"] == "payment"
        line_item = kwargs["line_items"][0]
        assert line_item["price_data"]["unit_amount"] == 45000
        assert line_item["price_data"]["product_data"]["name"] == "UGC Content Creation - Lisbon"
        assert kwargs["metadata"] == {
            "offer_id": offer_id,
            "creator_id": CREATOR_ID,
            "brand_id": BRAND_ID,
            "trip_destination": "Lisbon",
            "trip_country": "Portugal",
        }
        assert kwargs["success_url"].startswith("https://lumo.test/dashboard/brand")

    def test_offer_must_be_accepted(self, payments, services, seeded_users, trip):
        conversation_id = services.conversations.initialize_conversation(BRAND_ID, CREATOR_ID)
        offer = services.conversations.send_offer(
            conversation_id, BRAND_ID, OfferCreate(trip=TripSummary(**trip), description="x", price=450.0)
        )

        with patch(CHECKOUT_CREATE) as create, pytest.raises(OfferActionError) as exc_info:
            payments.create_checkout_session(BRAND_ID, checkout_request(conversation_id, offer.offer_id))

        assert exc_info.value.status_code == 409
        create.assert_not_called()

    def test_amount_must_match_offer(self, payments, accepted_offer):
        conversation_id, offer_id = accepted_offer

        with patch(CHECKOUT_CREATE), pytest.raises(OfferActionError) as exc_info:
            payments.create_checkout_session(
                BRAND_ID, checkout_request(conversation_id, offer_id, amount=1.0)
            )
        assert exc_info.value.status_code == 400

    def test_creator_must_be_in_conversation(self, payments, accepted_offer):
        conversation_id, offer_id = accepted_offer

        with pytest.raises(OfferActionError):
            payments.create_checkout_session(
                BRAND_ID, checkout_request(conversation_id, offer_id, creator_id=OUTSIDER_ID)
            )

    def test_outsider_cannot_pay(self, payments, accepted_offer):
        conversation_id, offer_id = accepted_offer

        with pytest.raises(ConversationNotFoundError):
            payments.create_checkout_session(OUTSIDER_ID, checkout_request(conversation_id, offer_id))

    def test_stripe_error(self, payments, accepted_offer):
        conversation_id, offer_id = accepted_offer
        error = stripe.InvalidRequestError("Amount too small", param="unit_amount")

        with patch(CHECKOUT_CREATE, side_effect=error), pytest.raises(CheckoutSessionError) as exc_info:
            payments.create_checkout_session(BRAND_ID, checkout_request(conversation_id, offer_id))
        assert exc_info.value.status_code == 502

    def test_not_configured(self, services, settings, accepted_offer):
        unconfigured = PaymentService(
            settings.model_copy(update={"STRIPE_SECRET_KEY": ""}),
            services.conversations,
            services.orders,
        )
        conversation_id, offer_id = accepted_offer

        with pytest.raises(PaymentsNotConfiguredError):
            unconfigured.create_checkout_session(BRAND_ID, checkout_request(conversation_id, offer_id))


# =============================================================================
# Webhook
# =============================================================================

class TestConstructEvent:
    """Tests for webhook signature verification."""

    def test_valid_signature(self, payments, settings):
        payload = json.dumps(checkout_completed_event("offer_1")).encode()

        event = payments.construct_event(payload, sign_payload(payload, settings.STRIPE_WEBHOOK_SECRET))

        assert event["type"] == "checkout.session.completed"
        assert event["data"]["object"]["metadata"]["offer_id"] == "offer_1"

    def test_wrong_secret(self, payments):
        payload = json.dumps(checkout_completed_event("offer_1")).encode()

        with pytest.raises(WebhookSignatureError) as exc_info:
            payments.construct_event(payload, sign_payload(payload, "whsec_other"))
        assert exc_info.value.status_code == 400

    def test_missing_signature(self, payments):
        with pytest.raises(WebhookSignatureError):
            payments.construct_event(b"{}", None)


class TestHandleEvent:
    """Tests for applying verified events."""

    def test_checkout_completed_marks_offer_and_order_paid(self, payments, services, store, accepted_offer):
        conversation_id, offer_id = accepted_offer

        assert payments.handle_event(checkout_completed_event(offer_id)) is True

        offer = services.conversations.get_offer(conversation_id, offer_id)
        assert offer.offer_status == OfferStatus.PAID
        assert offer.payment_data.amount_paid == 450.0

        order = store.get("orders", offer_id)
        assert order["status"] == OrderStatus.PAID.value
        assert order["stripe_session_id"] == "cs_test_1"
        assert order["amount"] == 450.0

    def test_order_created_when_acceptance_did_not_write_it(self, payments, store, accepted_offer):
        _, offer_id = accepted_offer
        store.delete("orders", {"id": offer_id})

        payments.handle_event(checkout_completed_event(offer_id))

        assert store.get("orders", offer_id)["status"] == "paid"

    def test_missing_metadata_ignored(self, payments, store):
        event = checkout_completed_event("offer_1")
        event["data"]["object"]["metadata"] = {}

        assert payments.handle_event(event) is False
        assert store.all("orders") == []

    def test_other_events_ignored(self, payments):
        event = {"type": "customer.created", "data": {"object": {"id": "cus_1"}}}
        assert payments.handle_event(event) is False

    def test_payment_failed_logged(self, payments):
        event = {"type": "payment_intent.payment_failed", "data": {"object": {"id": "pi_1"}}}
        assert payments.handle_event(event) is False


class TestRedeliveredCheckout:
    """Stripe delivers webhooks at least once; a replay must not roll an order back."""

    @staticmethod
    def payment_messages(store) -> list[dict]:
        return [m for m in store.all("messages") if m.get("text") == PAYMENT_COMPLETED_TEXT]

    def test_replay_after_delivery_keeps_order_delivered(self, payments, services, store, accepted_offer):
        _, offer_id = accepted_offer
        event = checkout_completed_event(offer_id)
        payments.handle_event(event)
        reel = UploadSource(name="reel.mp4", content_type="video/mp4", size=4, stream=io.BytesIO(b"reel"))
        asyncio.run(services.deliveries.deliver_order(offer_id, CREATOR_ID, [reel]))

        assert payments.handle_event(event) is False

        assert store.get("orders", offer_id)["status"] == OrderStatus.DELIVERED.value
        assert store.all("order_deliveries")[0]["state"] == "committed"
        assert len(self.payment_messages(store)) == 1

    def test_replay_of_paid_order_changes_nothing(self, payments, store, accepted_offer):
        _, offer_id = accepted_offer
        event = checkout_completed_event(offer_id)
        payments.handle_event(event)
        paid_at = store.get("orders", offer_id)["paid_at"]

        assert payments.handle_event(event) is False

        assert store.get("orders", offer_id)["paid_at"] == paid_at
        assert len(self.payment_messages(store)) == 1

    def test_mark_paid_ignores_order_in_progress(self, services, store, accepted_offer):
        _, offer_id = accepted_offer
        store.update("orders", {"id": offer_id}, {"status": OrderStatus.IN_PROGRESS.value})

        order = services.orders.mark_paid(offer_id, BRAND_ID, CREATOR_ID, 450.0, "usd", "cs_test_2")

        assert order.status == OrderStatus.IN_PROGRESS
        assert "stripe_session_id" not in store.get("orders", offer_id)

    def test_offer_already_paid_not_announced_twice(self, services, store, accepted_offer):
        _, offer_id = accepted_offer
        conversations = services.conversations
        assert conversations.mark_offer_paid(offer_id, BRAND_ID, CREATOR_ID, "cs_test_1", 450.0) is True

        assert conversations.mark_offer_paid(offer_id, BRAND_ID, CREATOR_ID, "cs_test_1", 450.0) is False
        assert len(self.payment_messages(store)) == 1

    def test_replay_writes_order_missed_by_first_delivery(self, payments, services, store, accepted_offer):
        conversation_id, offer_id = accepted_offer
        event = checkout_completed_event(offer_id)
        services.conversations.mark_offer_paid(offer_id, BRAND_ID, CREATOR_ID, "cs_test_1", 450.0)

        assert payments.handle_event(event) is True

        assert store.get("orders", offer_id)["status"] == OrderStatus.PAID.value
        assert len(self.payment_messages(store)) == 1
