# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Signup and login happen client-side with Supabase Auth. These routes only
# read the identity behind a bearer token.
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.auth.dependencies import get_current_user
from app.auth.models import AuthUser
from app.dependencies import ServicesDep
from core.models.user import UserProfile

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=UserProfile)
async def get_current_user_info(
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
) -> UserProfile:
    """
    Profile of the authenticated user.

    A user who signed up but hasn't finished profile setup has no `users`
    row yet; the token identity is returned instead.
    """
    profile = services.users.find_profile(user.id)
    if profile is None:
        logger.debug(f"No profile row for {user.id}, answering from token")
        return UserProfile(id=user.id, email=user.email)
    return profile


@router.get("/verify")
async def verify_token(user: AuthUser = Depends(get_current_user)) -> dict:
    """Confirm that the bearer token is valid."""
    return {"valid": True, "user_id": user.id, "email": user.email}
