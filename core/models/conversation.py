# =============================================================================
# core/models/conversation.py - Conversation & Message Schemas
# =============================================================================
# A conversation pairs exactly two users. Its id is derived from the two user
# ids (sorted, joined with "_") so both sides resolve to the same document.
#
# Messages live in their own table keyed by conversation_id. The conversation
# keeps a snapshot of the latest message for inbox listings.
# =============================================================================

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .user import ParticipantInfo


class MessageType(str, Enum):
    TEXT = "text"
    OFFER = "offer"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


class OfferStatus(str, Enum):
    """
    Offer lifecycle.

    Flow: pending -> accepted -> paid, or pending -> rejected
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PAID = "paid"


# Sender id used for messages written by the platform itself
SYSTEM_SENDER_ID = "system"


class TripSummary(BaseModel):
    """The creator trip an offer refers to."""

    id: str
    destination: str = Field(..., min_length=1)
    country: str = ""
    start_date: str
    end_date: str


class LastMessage(BaseModel):
    """Snapshot of the newest message, stored on the conversation."""

    text: str
    sender_id: str
    timestamp: datetime


class PaymentData(BaseModel):
    stripe_session_id: str
    amount_paid: float
    paid_at: datetime


class SystemMessageData(BaseModel):
    """Perspective-aware texts for system messages."""

    type: str
    creator_text: str
    brand_text: str


class Conversation(BaseModel):
    """
    A persisted conversation between one brand and one creator.

    Example:
        {
            "id": "4f1c..._9a2b...",
            "participants": ["4f1c...", "9a2b..."],
            "creator_id": "9a2b...",
            "brand_id": "4f1c...",
            "participant_info": {"4f1c...": {"name": "Acme", "role": "brand"}, ...},
            "last_message": null
        }
    """

    id: str
    participants: list[str] = Field(..., min_length=2, max_length=2)
    creator_id: str | None = None
    brand_id: str | None = None
    participant_info: dict[str, ParticipantInfo] = Field(default_factory=dict)
    last_message: LastMessage | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}

    def other_participant(self, user_id: str) -> str | None:
        return next((p for p in self.participants if p != user_id), None)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants


class Message(BaseModel):
    """One message in a conversation (text, offer or system)."""

    id: str | None = None
    conversation_id: str
    sender_id: str
    type: MessageType = MessageType.TEXT
    text: str | None = None
    status: MessageStatus = MessageStatus.DELIVERED
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None

    # Offer fields
    offer_id: str | None = None
    trip: TripSummary | None = None
    description: str | None = None
    price: float | None = None
    offer_status: OfferStatus | None = None
    payment_data: PaymentData | None = None

    system_message_data: SystemMessageData | None = None

    model_config = {"extra": "ignore"}

    @property
    def preview_text(self) -> str:
        """Text shown in the inbox for this message."""
        if self.type == MessageType.OFFER:
            destination = self.trip.destination if self.trip else "Trip"
            return f"Collaboration offer - {destination}"
        return self.text or ""


# =============================================================================
# Request / Response Models
# =============================================================================

class ConversationCreate(BaseModel):
    """
    Body of POST /conversations.

    Participant info is optional; missing entries are filled from the users'
    profiles.
    """

    recipient_id: str = Field(..., min_length=1)
    sender_info: ParticipantInfo | None = None
    recipient_info: ParticipantInfo | None = None


class ConversationSummary(BaseModel):
    """Inbox row: the conversation seen from one participant."""

    id: str
    other_user_id: str
    other_user: ParticipantInfo
    last_message: LastMessage | None = None
    updated_at: datetime | None = None


class SendMessageRequest(BaseModel):
    text: str = Field(..., max_length=4000)

    @field_validator("text")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message text cannot be blank")
        return value


class OfferCreate(BaseModel):
    trip: TripSummary
    description: str = Field(..., min_length=1, max_length=4000)
    price: float = Field(..., gt=0)
