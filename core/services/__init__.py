# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================
# Services are plain classes constructed once at startup (see
# app/dependencies.build_services) and shared through app.state.
# =============================================================================

from .user_service import UserService
from .order_service import OrderService, calculate_creator_earnings_stats, calculate_order_stats
from .conversation_service import ConversationService, conversation_id_for
from .storage_service import CancellationToken, StorageService, UploadSource
from .delivery_service import DeliveryService
from .waitlist_service import WaitlistService
from .payment_service import PaymentService
from .instagram_service import InstagramService

__all__ = [
    "UserService",
    "OrderService",
    "calculate_order_stats",
    "calculate_creator_earnings_stats",
    "ConversationService",
    "conversation_id_for",
    "CancellationToken",
    "StorageService",
    "UploadSource",
    "DeliveryService",
    "WaitlistService",
    "PaymentService",
    "InstagramService",
]
