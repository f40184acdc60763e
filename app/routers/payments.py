# =============================================================================
# app/routers/payments.py - Stripe Endpoints
# =============================================================================
# Checkout for accepted offers and the Stripe webhook.
#
# The webhook reads the raw body: the signature is computed over the exact
# bytes Stripe sent, so the body must not be parsed before verification.
# =============================================================================

import logging

from fastapi import APIRouter, Depends, Header, Request

from app.auth import AuthUser, get_current_user
from app.dependencies import ServicesDep
from core.models.payment import CheckoutRequest, CheckoutResponse, WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Start a hosted checkout for an accepted offer.

    The caller must be the brand in the conversation. Redirect the browser
    to the returned `url`.
    """
    return services.payments.create_checkout_session(user.id, request)


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    services: ServicesDep,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
):
    """Receive Stripe events; 400 when the signature doesn't verify."""
    payload = await request.body()
    event = services.payments.construct_event(payload, stripe_signature)
    logger.info(f"Stripe event received: {event.get('type')} ({event.get('id')})")

    services.payments.handle_event(event)
    return WebhookAck(received=True, event_type=event.get("type"))
