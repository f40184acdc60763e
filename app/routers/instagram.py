# =============================================================================
# app/routers/instagram.py - Instagram Endpoints
# =============================================================================
# OAuth connect/callback, media feed, oEmbed previews and manually added posts.
#
# The OAuth callback is registered at the redirect URI Instagram knows
# (/api/auth/instagram/callback), so it lives on its own router.
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from app.auth import AuthUser, get_current_user
from app.dependencies import ServicesDep
from core.models.instagram import (
    ConnectResponse,
    InstagramPost,
    InstagramPostCreate,
    MediaResponse,
    OEmbedPreview,
)

router = APIRouter()
callback_router = APIRouter()


# =============================================================================
# OAuth
# =============================================================================

@router.get("/connect", response_model=ConnectResponse)
async def connect_instagram(
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """Authorize URL to send the creator to; 503 when Instagram isn't configured."""
    return ConnectResponse(auth_url=services.instagram.build_connect_url(user.id))


@callback_router.get("/instagram/callback", response_class=RedirectResponse)
async def instagram_callback(
    services: ServicesDep,
    code: str | None = None,
    error: str | None = None,
    state: str | None = None,
):
    """
    OAuth redirect target.

    Always redirects to profile setup with ?instagram=connected or
    ?error=<reason>.
    """
    return RedirectResponse(services.instagram.handle_callback(code, error, state))


# =============================================================================
# Media
# =============================================================================

@router.get("/media", response_model=MediaResponse)
async def get_media(
    services: ServicesDep,
    user_id: Annotated[str, Query(min_length=1, description="Creator whose feed to load")],
):
    """Latest images and videos of a connected creator (public portfolio)."""
    return services.instagram.get_media(user_id)


@router.get("/oembed", response_model=OEmbedPreview)
async def get_oembed(
    services: ServicesDep,
    url: Annotated[str, Query(min_length=1, description="Public post URL")],
):
    return services.instagram.get_oembed(url)


# =============================================================================
# Manual posts
# =============================================================================

@router.get("/posts", response_model=list[InstagramPost])
async def list_posts(
    services: ServicesDep,
    creator_id: Annotated[str, Query(min_length=1)],
):
    return services.instagram.list_posts(creator_id)


@router.post("/posts", response_model=InstagramPost, status_code=201)
async def add_post(
    request: InstagramPostCreate,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    return services.instagram.add_post(user.id, request)


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    services.instagram.delete_post(user.id, post_id)
