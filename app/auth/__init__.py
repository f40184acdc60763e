# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# Provides JWT-based authentication using Supabase Auth.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

from app.auth.dependencies import (
    InvalidTokenError,
    decode_access_token,
    get_current_user,
)
from app.auth.models import AuthUser

__all__ = [
    "InvalidTokenError",
    "decode_access_token",
    "get_current_user",
    "AuthUser",
]
