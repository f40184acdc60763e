# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data.
# =============================================================================

from pydantic import BaseModel, ConfigDict


class AuthUser(BaseModel):
    """
    Authenticated user extracted from a Supabase JWT.

    This is the minimal user info available from the token itself,
    without querying the database. The role lives in the users table.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None


class TokenPayload(BaseModel):
    """
    Decoded JWT token payload from Supabase.

    Supabase tokens include standard JWT claims plus custom claims.
    """
    sub: str  # User ID
    email: str | None = None
    aud: str  # Audience (should be "authenticated")
    exp: int  # Expiration timestamp
    iat: int | None = None
    role: str | None = None  # Postgres role, not the marketplace role
