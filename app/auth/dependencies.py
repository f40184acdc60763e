# =============================================================================
# app/auth/dependencies.py - FastAPI Auth Dependencies
# =============================================================================
# Provides dependency injection for authentication.
#
# Tokens are Supabase access tokens signed with the project's HS256 secret.
# The same decoding is used for the websocket endpoint, where the token
# arrives as a query parameter instead of an Authorization header.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import ValidationError

from app.auth.models import AuthUser, TokenPayload
from app.dependencies import ServicesDep

logger = logging.getLogger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer()

TOKEN_AUDIENCE = "authenticated"
TOKEN_ALGORITHM = "HS256"


class InvalidTokenError(Exception):
    """Raised by decode_access_token; carries the reason shown to the client."""


def decode_access_token(token: str, secret: str) -> AuthUser:
    """
    Verify a Supabase access token and return the user it belongs to.

    Args:
        token: The raw JWT
        secret: The project's JWT secret (SUPABASE_JWT_SECRET)

    Raises:
        InvalidTokenError: If the token is expired, badly signed or lacks a subject
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALGORITHM],
            audience=TOKEN_AUDIENCE,
        )
    except ExpiredSignatureError:
        raise InvalidTokenError("Token has expired")
    except JWTError as e:
        raise InvalidTokenError(f"Invalid token: {e}")

    try:
        payload = TokenPayload(**claims)
    except ValidationError:
        raise InvalidTokenError("Invalid token: missing claims")

    if not payload.sub:
        raise InvalidTokenError("Invalid token: missing user ID")

    return AuthUser(id=payload.sub, email=payload.email)


async def get_current_user(
    services: ServicesDep,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthUser:
    """
    Extract and validate user from Supabase JWT token.

    Raises:
        HTTPException: 401 if token is invalid or expired
    """
    try:
        user = decode_access_token(credentials.credentials, services.settings.SUPABASE_JWT_SECRET)
    except InvalidTokenError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug(f"Authenticated user: {user.id}")
    return user

