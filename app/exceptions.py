# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Errors carry a machine-readable code and, where possible, a suggestion that
# tells the client how to fix the request.
# =============================================================================

import logging
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from lib.supabase_client import SupabaseClientError

logger = logging.getLogger(__name__)


class LumoException(Exception):
    """
    Base exception for the Lumo API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "LUMO_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# User Exceptions
# =============================================================================

class UserNotFoundError(LumoException):
    def __init__(self, user_id: str):
        super().__init__(
            message=f"User not found: {user_id}",
            code="USER_NOT_FOUND",
            status_code=404,
            details={"user_id": user_id}
        )


# =============================================================================
# Conversation Exceptions
# =============================================================================

class ConversationNotFoundError(LumoException):
    """
    Raised when a conversation doesn't exist, or the caller isn't part of it.

    Non-participants get the same 404 so conversation ids can't be probed.
    """

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Conversation not found: {conversation_id}",
            code="CONVERSATION_NOT_FOUND",
            status_code=404,
            suggestion="Start the conversation with POST /api/v1/conversations first",
            details={"conversation_id": conversation_id}
        )


class SelfConversationError(LumoException):
    """Raised when a user tries to open a conversation with themselves."""

    def __init__(self, user_id: str):
        super().__init__(
            message="Cannot start a conversation with yourself",
            code="SELF_CONVERSATION",
            status_code=400,
            suggestion="Pass the other user's id as recipient_id",
            details={"user_id": user_id}
        )


class OfferNotFoundError(LumoException):
    def __init__(self, offer_id: str):
        super().__init__(
            message=f"Offer not found: {offer_id}",
            code="OFFER_NOT_FOUND",
            status_code=404,
            details={"offer_id": offer_id}
        )


class OfferActionError(LumoException):
    """Raised when an offer action isn't allowed for this user or offer state."""

    def __init__(self, offer_id: str, reason: str, status_code: int = 409):
        super().__init__(
            message=f"Cannot update offer {offer_id}: {reason}",
            code="OFFER_ACTION_NOT_ALLOWED",
            status_code=status_code,
            details={"offer_id": offer_id}
        )


# =============================================================================
# Order Exceptions
# =============================================================================

class OrderNotFoundError(LumoException):
    """Raised when an order doesn't exist or the caller has no access to it."""

    def __init__(self, order_id: str):
        super().__init__(
            message=f"Order not found: {order_id}",
            code="ORDER_NOT_FOUND",
            status_code=404,
            suggestion="Orders are created when a creator accepts an offer",
            details={"order_id": order_id}
        )


class OrderAccessDeniedError(LumoException):
    def __init__(self, order_id: str, required_role: str):
        super().__init__(
            message=f"Only the order's {required_role} can do this",
            code="ORDER_ACCESS_DENIED",
            status_code=403,
            details={"order_id": order_id, "required_role": required_role}
        )


class InvalidOrderStateError(LumoException):
    """Raised when an order transition isn't allowed from its current status."""

    def __init__(self, order_id: str, status: str, allowed: list[str]):
        super().__init__(
            message=f"Order {order_id} is '{status}'",
            code="INVALID_ORDER_STATE",
            status_code=409,
            suggestion=f"This action requires status: {', '.join(allowed)}",
            details={"order_id": order_id, "status": status, "allowed": allowed}
        )


# =============================================================================
# Delivery / Upload Exceptions
# =============================================================================

class TooManyFilesError(LumoException):
    def __init__(self, count: int, max_files: int):
        super().__init__(
            message=f"Too many files: {count} (max: {max_files})",
            code="TOO_MANY_FILES",
            status_code=400,
            suggestion=f"Deliver at most {max_files} files, or share the rest via external links",
            details={"count": count, "max_files": max_files}
        )


class NoDeliveryContentError(LumoException):
    def __init__(self, order_id: str):
        super().__init__(
            message="A delivery needs at least one file",
            suggestion="Attach the files to deliver; links alone go in external_links alongside them",
            code="EMPTY_DELIVERY",
            status_code=400,
            details={"order_id": order_id}
        )


class FileTooLargeError(LumoException):
    """Raised when uploaded file exceeds size limit."""

    def __init__(self, filename: str, size_mb: float, max_mb: int):
        super().__init__(
            message=f"File too large: {filename} is {size_mb:.1f}MB (max: {max_mb}MB)",
            code="FILE_TOO_LARGE",
            status_code=413,
            suggestion=f"Upload files smaller than {max_mb}MB or share a link instead",
            details={"filename": filename, "size_mb": size_mb, "max_mb": max_mb}
        )


class StorageUploadError(LumoException):
    """Raised when a single file upload to storage fails."""

    def __init__(self, path: str, error: str):
        super().__init__(
            message=f"Failed to upload file to storage: {error}",
            code="STORAGE_UPLOAD_ERROR",
            status_code=502,
            suggestion="Try again later or contact support if the issue persists",
            details={"path": path, "error": error}
        )


class UploadCancelledError(LumoException):
    def __init__(self, path: str):
        super().__init__(
            message=f"Upload cancelled: {path}",
            code="UPLOAD_CANCELLED",
            status_code=499,
            details={"path": path}
        )


class DeliveryUploadError(LumoException):
    """
    Raised when one or more files of a delivery failed to upload.

    Files that did upload are listed and left in storage.
    """

    def __init__(self, order_id: str, uploaded: list[str], failed: dict[str, str]):
        super().__init__(
            message=f"{len(failed)} of {len(uploaded) + len(failed)} files failed to upload",
            code="DELIVERY_UPLOAD_FAILED",
            status_code=502,
            suggestion="Retry the delivery; the files listed as uploaded are already in storage",
            details={"order_id": order_id, "uploaded": uploaded, "failed": failed}
        )


class DeliveryPersistenceError(LumoException):
    """Raised when the delivery was recorded but the order update failed."""

    def __init__(self, order_id: str, error: str):
        super().__init__(
            message=f"Delivery recorded but order could not be updated: {error}",
            code="DELIVERY_PERSISTENCE_FAILED",
            status_code=500,
            suggestion="The delivery will be completed automatically; no need to upload again",
            details={"order_id": order_id, "error": error}
        )


class DeliveryNotFoundError(LumoException):
    def __init__(self, order_id: str):
        super().__init__(
            message=f"No delivery for order: {order_id}",
            code="DELIVERY_NOT_FOUND",
            status_code=404,
            details={"order_id": order_id}
        )


# =============================================================================
# Intake Exceptions
# =============================================================================

class InvalidSignupError(LumoException):
    """Raised when a JSON signup body fails validation (bad email, bad role)."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="INVALID_SIGNUP",
            status_code=400,
            details={"field": field} if field else None
        )


# =============================================================================
# Instagram Exceptions
# =============================================================================

class InstagramNotConfiguredError(LumoException):
    def __init__(self):
        super().__init__(
            message="Instagram integration is not configured",
            code="INSTAGRAM_NOT_CONFIGURED",
            status_code=503,
            suggestion="Set INSTAGRAM_APP_ID and INSTAGRAM_APP_SECRET"
        )


class InstagramNotConnectedError(LumoException):
    def __init__(self, user_id: str):
        super().__init__(
            message="Instagram not connected",
            code="INSTAGRAM_NOT_CONNECTED",
            status_code=400,
            suggestion="Connect Instagram from your profile first",
            details={"user_id": user_id}
        )


class InstagramTokenExpiredError(LumoException):
    def __init__(self, user_id: str):
        super().__init__(
            message="Instagram token expired",
            code="INSTAGRAM_TOKEN_EXPIRED",
            status_code=401,
            suggestion="Reconnect Instagram to refresh access",
            details={"user_id": user_id}
        )


class InstagramFetchError(LumoException):
    def __init__(self, error: str, status_code: int = 500):
        super().__init__(
            message=f"Failed to fetch Instagram data: {error}",
            code="INSTAGRAM_API_ERROR",
            status_code=status_code,
            details={"error": error}
        )


class InvalidInstagramUrlError(LumoException):
    def __init__(self, url: str):
        super().__init__(
            message="Invalid Instagram URL",
            code="INVALID_INSTAGRAM_URL",
            status_code=400,
            suggestion="Use a post or reel link like https://www.instagram.com/p/<id>/",
            details={"url": url}
        )


class DuplicatePostError(LumoException):
    def __init__(self, url: str):
        super().__init__(
            message="This post has already been added",
            code="DUPLICATE_POST",
            status_code=400,
            details={"url": url}
        )


class PostNotFoundError(LumoException):
    def __init__(self, post_id: str):
        super().__init__(
            message=f"Post not found: {post_id}",
            code="POST_NOT_FOUND",
            status_code=404,
            details={"post_id": post_id}
        )


# =============================================================================
# Payment Exceptions
# =============================================================================

class PaymentsNotConfiguredError(LumoException):
    def __init__(self):
        super().__init__(
            message="Payments are not configured",
            code="PAYMENTS_NOT_CONFIGURED",
            status_code=503,
            suggestion="Set STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET"
        )


class CheckoutSessionError(LumoException):
    def __init__(self, error: str):
        super().__init__(
            message=f"Failed to create checkout session: {error}",
            code="CHECKOUT_FAILED",
            status_code=502,
            details={"error": error}
        )


class WebhookSignatureError(LumoException):
    def __init__(self, error: str):
        super().__init__(
            message=f"Webhook signature verification failed: {error}",
            code="INVALID_WEBHOOK_SIGNATURE",
            status_code=400
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def lumo_exception_handler(
    request: Request,
    exc: LumoException
) -> JSONResponse:
    """
    Convert LumoException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def database_exception_handler(
    request: Request,
    exc: SupabaseClientError
) -> JSONResponse:
    """Store failures surface as 500 DATABASE_ERROR."""
    logger.error(f"{request.method} {request.url.path} database error: {exc}")
    content = {
        "detail": exc.message,
        "code": "DATABASE_ERROR",
    }
    if exc.suggestion:
        content["suggestion"] = exc.suggestion
    return JSONResponse(status_code=500, content=content)


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Converts validation errors to user-friendly messages.
    """
    errors = jsonable_encoder(exc.errors()) if hasattr(exc, "errors") else str(exc)
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": errors
        }
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR"}
    )
