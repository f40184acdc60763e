# =============================================================================
# app/routers/users.py - Profile Endpoints
# =============================================================================
# Profile setup after signup and public profile lookup.
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.auth import AuthUser, get_current_user
from app.dependencies import ServicesDep
from core.models.user import ProfileSetupRequest, PublicProfile, UserProfile

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=UserProfile)
async def get_my_profile(
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """Full profile of the current user (404 until profile setup is done)."""
    return services.users.get_profile(user.id)


@router.put("/me/profile", response_model=UserProfile)
async def setup_profile(
    request: ProfileSetupRequest,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Create or update the current user's profile.

    Brands must send `brand_name`; creators `first_name` and `last_name`.
    """
    profile = services.users.setup_profile(user.id, user.email, request)
    logger.info(f"Profile set up for {user.id} as {request.role.value}")
    return profile


@router.get("/{user_id}", response_model=PublicProfile)
async def get_public_profile(
    user_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    return PublicProfile.from_profile(services.users.get_profile(user_id))
