# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - user.py: roles, profiles and participant info
# - conversation.py: conversations, messages and offers
# - order.py: orders, deliveries and dashboard stats
# - waitlist.py: landing-page waitlist and signup intake
# - instagram.py: Graph API payloads and manual posts
# - payment.py: Stripe checkout request/response
#
# These models define the "contract" between API and clients.
# =============================================================================

from .user import (
    ParticipantInfo,
    ProfileSetupRequest,
    PublicProfile,
    UserProfile,
    UserRole,
)

from .conversation import (
    Conversation,
    ConversationCreate,
    ConversationSummary,
    LastMessage,
    Message,
    MessageStatus,
    MessageType,
    OfferCreate,
    OfferStatus,
    PaymentData,
    SendMessageRequest,
    SystemMessageData,
    TripSummary,
)

from .order import (
    CreatorEarningsStats,
    Delivery,
    DeliveryFile,
    DeliveryState,
    Order,
    OrderStats,
    OrderStatus,
)

from .waitlist import (
    BrandRequest,
    BrandWaitlistEntry,
    CreatorWaitlistEntry,
    EarlyAccessRequest,
    QuickSignupRequest,
    QuickSignupResponse,
    TripEntry,
)

from .instagram import (
    FormattedMedia,
    InstagramPost,
    InstagramPostCreate,
    MediaResponse,
    OEmbedPreview,
)

from .payment import CheckoutRequest, CheckoutResponse

__all__ = [
    # User
    "ParticipantInfo",
    "ProfileSetupRequest",
    "PublicProfile",
    "UserProfile",
    "UserRole",
    # Conversation
    "Conversation",
    "ConversationCreate",
    "ConversationSummary",
    "LastMessage",
    "Message",
    "MessageStatus",
    "MessageType",
    "OfferCreate",
    "OfferStatus",
    "PaymentData",
    "SendMessageRequest",
    "SystemMessageData",
    "TripSummary",
    # Order
    "CreatorEarningsStats",
    "Delivery",
    "DeliveryFile",
    "DeliveryState",
    "Order",
    "OrderStats",
    "OrderStatus",
    # Waitlist
    "BrandRequest",
    "BrandWaitlistEntry",
    "CreatorWaitlistEntry",
    "EarlyAccessRequest",
    "QuickSignupRequest",
    "QuickSignupResponse",
    "TripEntry",
    # Instagram
    "FormattedMedia",
    "InstagramPost",
    "InstagramPostCreate",
    "MediaResponse",
    "OEmbedPreview",
    # Payment
    "CheckoutRequest",
    "CheckoutResponse",
]
