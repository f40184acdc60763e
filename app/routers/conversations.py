# =============================================================================
# app/routers/conversations.py - Messaging Endpoints
# =============================================================================
# Conversations between a brand and a creator, their messages and the offers
# exchanged in them. Only the two participants can see a conversation; any
# other user gets 404.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.auth import AuthUser, get_current_user
from app.dependencies import ServicesDep
from core.models.conversation import (
    Conversation,
    ConversationCreate,
    ConversationSummary,
    Message,
    OfferCreate,
    SendMessageRequest,
)
from core.models.order import Order

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class ConversationCreateResponse(BaseModel):
    conversation_id: str = Field(..., example="4f1c2d_9a2b3c")


class ReadResponse(BaseModel):
    marked: int


class OfferAcceptResponse(BaseModel):
    """The accepted offer, plus the pending order when it could be written."""
    offer: Message
    order: Order | None = None


# =============================================================================
# Conversations
# =============================================================================

@router.post("", response_model=ConversationCreateResponse)
async def create_conversation(
    request: ConversationCreate,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Start (or reopen) the conversation with another user.

    Calling this twice, or from either side, returns the same id.
    """
    conversation_id = services.conversations.initialize_conversation(
        user.id,
        request.recipient_id,
        request.sender_info,
        request.recipient_info,
    )
    return ConversationCreateResponse(conversation_id=conversation_id)


@router.get("", response_model=list[ConversationSummary])
async def list_conversations(
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
    include_empty: Annotated[bool, Query(description="Include conversations without messages")] = False,
):
    return services.conversations.list_conversations(user.id, include_empty=include_empty)


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    return services.conversations.get_conversation(conversation_id, user.id)


# =============================================================================
# Messages
# =============================================================================

@router.get("/{conversation_id}/messages", response_model=list[Message])
async def list_messages(
    conversation_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
):
    """Messages oldest first."""
    return services.conversations.list_messages(conversation_id, user.id, limit=limit)


@router.post("/{conversation_id}/messages", response_model=Message, status_code=201)
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    return services.conversations.send_message(conversation_id, user.id, request.text)


@router.post("/{conversation_id}/read", response_model=ReadResponse)
async def mark_read(
    conversation_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    marked = services.conversations.mark_messages_read(conversation_id, user.id)
    return ReadResponse(marked=marked)


# =============================================================================
# Offers
# =============================================================================

@router.post("/{conversation_id}/offers", response_model=Message, status_code=201)
async def send_offer(
    conversation_id: str,
    request: OfferCreate,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """Brand sends a collaboration offer for one of the creator's trips."""
    return services.conversations.send_offer(conversation_id, user.id, request)


@router.post("/{conversation_id}/offers/{offer_id}/accept", response_model=OfferAcceptResponse)
async def accept_offer(
    conversation_id: str,
    offer_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Creator accepts a pending offer.

    Creates a pending order with the offer id; the brand then pays through
    POST /payments/checkout.
    """
    order = services.conversations.accept_offer(conversation_id, offer_id, user.id)
    offer = services.conversations.get_offer(conversation_id, offer_id)
    return OfferAcceptResponse(offer=offer, order=order)


@router.post("/{conversation_id}/offers/{offer_id}/reject", response_model=Message)
async def reject_offer(
    conversation_id: str,
    offer_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    return services.conversations.reject_offer(conversation_id, offer_id, user.id)
