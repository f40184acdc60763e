# =============================================================================
# core/models/payment.py - Checkout Schemas
# =============================================================================

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    """
    Body of POST /payments/checkout.

    Example:
        {
            "offer_id": "offer_1700000000_ab12cd34",
            "conversation_id": "4f1c..._9a2b...",
            "creator_id": "9a2b...",
            "amount": 450.0,
            "description": "Lisbon city break reel"
        }
    """

    offer_id: str = Field(..., min_length=1)
    conversation_id: str = Field(..., min_length=1)
    creator_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, description="Amount in major currency units")
    description: str | None = Field(default=None, max_length=500)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str | None = None
