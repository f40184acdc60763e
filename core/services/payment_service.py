# =============================================================================
# core/services/payment_service.py - Stripe Checkout & Webhooks
# =============================================================================
# Brands pay for an accepted offer through a hosted Stripe Checkout page.
# Stripe then calls the webhook with `checkout.session.completed`; that event
# marks the offer paid in the conversation and writes the order as "paid".
#
# Amounts are stored in major units (dollars) and sent to Stripe in cents.
# =============================================================================

import json
import logging
from typing import Any

import stripe

from app.config import Settings
from app.exceptions import (
    CheckoutSessionError,
    OfferActionError,
    PaymentsNotConfiguredError,
    WebhookSignatureError,
)
from core.models.conversation import OfferStatus
from core.models.payment import CheckoutRequest, CheckoutResponse
from core.services.conversation_service import ConversationService
from core.services.order_service import OrderService

logger = logging.getLogger(__name__)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


class PaymentService:
    """
    Stripe integration.

    The Stripe key is passed per call instead of set on the `stripe` module,
    so several settings objects (tests) never share global state.
    """

    def __init__(
        self,
        settings: Settings,
        conversations: ConversationService,
        orders: OrderService,
    ):
        self.settings = settings
        self.conversations = conversations
        self.orders = orders

    def _require_configured(self) -> None:
        if not self.settings.stripe_enabled:
            raise PaymentsNotConfiguredError()

    @property
    def success_url(self) -> str:
        return f"{self.settings.frontend_base_url}/dashboard/brand?tab=messages&payment=success"

    @property
    def cancel_url(self) -> str:
        return f"{self.settings.frontend_base_url}/dashboard/brand?tab=messages&payment=cancelled"

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    def create_checkout_session(self, brand_id: str, request: CheckoutRequest) -> CheckoutResponse:
        """
        Create a hosted checkout session for an accepted offer.

        The brand must be a participant of the conversation, and the offer
        must be accepted (not pending, rejected or already paid).

        Raises:
            PaymentsNotConfiguredError: 503 when STRIPE_SECRET_KEY is unset
            OfferActionError: If the offer isn't awaiting payment
            CheckoutSessionError: If Stripe rejects the request
        """
        self._require_configured()

        conversation = self.conversations.get_conversation(request.conversation_id, brand_id)
        if conversation.other_participant(brand_id) != request.creator_id:
            raise OfferActionError(request.offer_id, "creator_id is not part of this conversation", status_code=400)
        offer = self.conversations.get_offer(request.conversation_id, request.offer_id)
        if offer.offer_status != OfferStatus.ACCEPTED:
            status = offer.offer_status.value if offer.offer_status else "unknown"
            raise OfferActionError(request.offer_id, f"offer is {status}, expected accepted")
        if offer.price is not None and abs(offer.price - request.amount) > 0.005:
            raise OfferActionError(
                request.offer_id,
                f"amount {request.amount} does not match offer price {offer.price}",
                status_code=400,
            )

        destination = offer.trip.destination if offer.trip else "Trip"
        country = offer.trip.country if offer.trip else ""
        description = request.description or (
            f"Payment for UGC content creation services for {destination}, {country or 'Unknown Location'}"
        )

        try:
            session = stripe.checkout.Session.create(
                api_key=self.settings.STRIPE_SECRET_KEY,
                payment_method_types=["card"],
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": self.settings.STRIPE_CURRENCY,
                        "product_data": {
                            "name": f"UGC Content Creation - {destination}",
                            "description": description,
                        },
                        "unit_amount": to_cents(request.amount),
                    },
                    "quantity": 1,
                }],
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                metadata={
                    "offer_id": request.offer_id,
                    "creator_id": request.creator_id,
                    "brand_id": brand_id,
                    "trip_destination": destination,
                    "trip_country": country,
                },
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout failed for offer {request.offer_id}: {e}")
            raise CheckoutSessionError(str(e))

        logger.info(f"Checkout session {session.id} created for offer {request.offer_id}")
        return CheckoutResponse(session_id=session.id, url=session.url)

    # -------------------------------------------------------------------------
    # Webhook
    # -------------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify the webhook signature and parse the event.

        Returns the event as plain JSON data; handle_event works on dicts.

        Raises:
            PaymentsNotConfiguredError: If STRIPE_WEBHOOK_SECRET is unset
            WebhookSignatureError: If the signature or payload is invalid
        """
        if not self.settings.STRIPE_WEBHOOK_SECRET:
            raise PaymentsNotConfiguredError()

        try:
            stripe.Webhook.construct_event(
                payload,
                signature or "",
                self.settings.STRIPE_WEBHOOK_SECRET,
            )
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError(str(e))

        return json.loads(payload)

    def handle_event(self, event: dict[str, Any]) -> bool:
        """
        Apply a verified event.

        Returns:
            True if the event changed state
        """
        event_type = event["type"]
        match event_type:
            case "checkout.session.completed":
                return self.handle_checkout_completed(event["data"]["object"])
            case "payment_intent.payment_failed":
                logger.warning(f"Payment failed: {event['data']['object'].get('id')}")
                return False
            case _:
                logger.info(f"Unhandled Stripe event type: {event_type}")
                return False

    def handle_checkout_completed(self, session: dict[str, Any]) -> bool:
        """
        Mark the offer paid and write the order as paid.

        Sessions missing the offer/brand/creator metadata are logged and
        ignored. A redelivered event for an order that is already paid or
        further along is acknowledged without changes.
        """
        metadata = dict(session.get("metadata") or {})
        offer_id = metadata.get("offer_id")
        brand_id = metadata.get("brand_id")
        creator_id = metadata.get("creator_id")

        if not offer_id or not brand_id or not creator_id:
            logger.error(f"Checkout session {session.get('id')} missing metadata: {metadata}")
            return False

        existing = self.orders.find_order(offer_id)
        if existing is not None and existing.status.is_earned:
            logger.info(f"Checkout session {session.get('id')} already applied to order {offer_id}")
            return False

        amount = (session.get("amount_total") or 0) / 100
        self.conversations.mark_offer_paid(
            offer_id=offer_id,
            brand_id=brand_id,
            creator_id=creator_id,
            stripe_session_id=session["id"],
            amount_paid=amount,
        )
        self.orders.mark_paid(
            offer_id=offer_id,
            brand_id=brand_id,
            creator_id=creator_id,
            amount=amount,
            currency=session.get("currency") or self.settings.STRIPE_CURRENCY,
            stripe_session_id=session["id"],
            trip_destination=metadata.get("trip_destination", ""),
            trip_country=metadata.get("trip_country", ""),
        )
        return True
