# =============================================================================
# core/services/instagram_service.py - Instagram Integration
# =============================================================================
# Connects a creator's Instagram account and serves their media:
#
# - connect: signed `state` JWT carries the user id through the OAuth round trip
# - callback: code -> short token -> long-lived token -> profile, stored on
#   the users row
# - media: latest images/videos fetched with the stored token
# - posts: manually added post/reel links (when OAuth isn't an option)
# - refresh_expiring_tokens: run daily by Celery beat
# =============================================================================

import logging
import re
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

from jose import JWTError, jwt
from pydantic import ValidationError

from app.config import Settings
from app.exceptions import (
    DuplicatePostError,
    InstagramFetchError,
    InstagramNotConfiguredError,
    InstagramNotConnectedError,
    InstagramTokenExpiredError,
    InvalidInstagramUrlError,
    PostNotFoundError,
)
from core.models.instagram import (
    INSTAGRAM_POST_PATTERN,
    FormattedMedia,
    InstagramMedia,
    InstagramPost,
    InstagramPostCreate,
    InstagramProfile,
    InstagramToken,
    MediaResponse,
    MediaType,
    OEmbedPreview,
    PostType,
)
from core.services.user_service import UserService
from lib import collections
from lib.instagram import InstagramAPI, InstagramAPIError
from lib.supabase_client import SupabaseClientError, SupabaseStore
from lib.utils import parse_timestamp, utc_now, utc_now_iso

logger = logging.getLogger(__name__)

STATE_PURPOSE = "instagram_connect"
STATE_TTL = timedelta(minutes=10)
CALLBACK_PATH = "/dashboard/creator/profile-setup"
REFRESH_WINDOW_DAYS = 7
MEDIA_LIMIT = 12

_EMBED_JPG = re.compile(r'src="([^"]*\.jpg[^"]*)"')
_FEED_TYPES = {MediaType.IMAGE.value, MediaType.VIDEO.value}


class InstagramService:
    def __init__(
        self,
        store: SupabaseStore,
        users: UserService,
        api: InstagramAPI,
        settings: Settings,
    ):
        self.store = store
        self.users = users
        self.api = api
        self.settings = settings

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    def create_state(self, user_id: str) -> str:
        claims = {
            "sub": user_id,
            "purpose": STATE_PURPOSE,
            "exp": utc_now() + STATE_TTL,
        }
        return jwt.encode(claims, self.settings.SECRET_KEY, algorithm="HS256")

    def read_state(self, state: str) -> str | None:
        """User id from a state token, or None if it is invalid or expired."""
        try:
            claims = jwt.decode(state, self.settings.SECRET_KEY, algorithms=["HS256"])
        except JWTError as e:
            logger.warning(f"Rejected Instagram state: {e}")
            return None
        if claims.get("purpose") != STATE_PURPOSE:
            return None
        return claims.get("sub")

    def build_connect_url(self, user_id: str) -> str:
        if not self.settings.instagram_enabled:
            raise InstagramNotConfiguredError()
        return self.api.build_auth_url(self.create_state(user_id))

    def handle_callback(self, code: str | None, error: str | None, state: str | None) -> str:
        """
        Finish the OAuth flow.

        Never raises; every outcome is a redirect back to profile setup with
        either ?instagram=connected or ?error=<reason>.

        Returns:
            The frontend URL to redirect to
        """
        if error:
            return self._callback_redirect(error=error)
        if not code:
            return self._callback_redirect(error="missing_code")

        user_id = self.read_state(state) if state else None
        if not user_id:
            return self._callback_redirect(error="invalid_state")

        try:
            short_token = self.api.exchange_code(code)
            token = InstagramToken(**self.api.exchange_token(short_token))
            profile = InstagramProfile(**self.api.get_user_profile(token.access_token))
            self.users.update_fields(user_id, {
                **_token_columns(token),
                "instagram_id": profile.id,
                "instagram_username": profile.username,
                "instagram_handle": profile.username,
                "instagram_connected": True,
                "follower_count": profile.followers_count,
            })
        except (InstagramAPIError, SupabaseClientError, ValidationError) as e:
            logger.error(f"Instagram auth failed for user {user_id}: {e}")
            return self._callback_redirect(error="auth_failed")

        logger.info(f"Instagram @{profile.username} connected for user {user_id}")
        return self._callback_redirect(instagram="connected")

    def _callback_redirect(self, **params: str) -> str:
        return f"{self.settings.frontend_base_url}{CALLBACK_PATH}?{urlencode(params)}"

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------

    def get_media(self, user_id: str) -> MediaResponse:
        """
        Latest images and videos of a connected creator.

        Raises:
            UserNotFoundError: 404
            InstagramNotConnectedError: 400
            InstagramTokenExpiredError: 401
            InstagramFetchError: 500 when the Graph API fails
        """
        user = self.users.get_raw(user_id)
        token = user.get("instagram_access_token")
        if not user.get("instagram_connected") or not token:
            raise InstagramNotConnectedError(user_id)

        expiry = parse_timestamp(user.get("instagram_token_expiry"))
        if expiry and expiry < utc_now():
            raise InstagramTokenExpiredError(user_id)

        try:
            items = self.api.get_user_media(token, limit=MEDIA_LIMIT)
        except InstagramAPIError as e:
            raise InstagramFetchError(e.message)

        media = [
            FormattedMedia.from_media(InstagramMedia(**item))
            for item in items
            if item.get("media_type") in _FEED_TYPES
        ]

        self.users.update_fields(user_id, {"instagram_last_sync": utc_now_iso()})
        return MediaResponse(media=media, total=len(media))

    def get_oembed(self, url: str) -> OEmbedPreview:
        """
        Preview image and metadata for a public post URL.

        The image is the oEmbed thumbnail_url, else the first .jpg in the
        embed HTML.
        """
        if "instagram.com" not in url:
            raise InvalidInstagramUrlError(url)

        try:
            data = self.api.get_oembed(url)
        except InstagramAPIError as e:
            raise InstagramFetchError(e.message, status_code=e.status_code or 500)

        image_url = data.get("thumbnail_url")
        if not image_url and data.get("html"):
            match = _EMBED_JPG.search(data["html"])
            if match:
                image_url = match.group(1)

        return OEmbedPreview(
            image_url=image_url,
            thumbnail_url=image_url,
            title=data.get("title") or "",
            author_name=data.get("author_name") or "",
            provider_name=data.get("provider_name") or "Instagram",
        )

    # -------------------------------------------------------------------------
    # Manual posts
    # -------------------------------------------------------------------------

    def list_posts(self, creator_id: str) -> list[InstagramPost]:
        rows = self.store.find(collections.INSTAGRAM_POSTS, eq={"creator_id": creator_id})
        posts = [InstagramPost(**row) for row in rows]
        return sorted(posts, key=_created_key, reverse=True)

    def add_post(self, creator_id: str, request: InstagramPostCreate) -> InstagramPost:
        """
        Add a post or reel link to a creator's portfolio.

        Raises:
            InvalidInstagramUrlError: If the URL isn't a /p/ or /reel/ link
            DuplicatePostError: If the creator already added this post
        """
        match = INSTAGRAM_POST_PATTERN.search(request.post_url)
        if not match:
            raise InvalidInstagramUrlError(request.post_url)

        post_id = request.post_id or match.group(3)
        post_type = request.type or (PostType.REEL if match.group(2) == "reel" else PostType.POST)

        existing = self.store.find(
            collections.INSTAGRAM_POSTS,
            eq={"creator_id": creator_id, "post_id": post_id},
            limit=1,
        )
        if existing:
            raise DuplicatePostError(request.post_url)

        now = utc_now_iso()
        row = self.store.insert(collections.INSTAGRAM_POSTS, {
            "creator_id": creator_id,
            "post_url": request.post_url,
            "post_id": post_id,
            "type": post_type.value,
            "created_at": now,
            "updated_at": now,
        })
        logger.info(f"Instagram post {post_id} added for creator {creator_id}")
        return InstagramPost(**row)

    def delete_post(self, creator_id: str, post_row_id: str) -> None:
        """Delete one of the creator's own posts."""
        row = self.store.get(collections.INSTAGRAM_POSTS, post_row_id)
        if row is None or row.get("creator_id") != creator_id:
            raise PostNotFoundError(post_row_id)
        self.store.delete(collections.INSTAGRAM_POSTS, {"id": post_row_id})

    # -------------------------------------------------------------------------
    # Token maintenance
    # -------------------------------------------------------------------------

    def refresh_expiring_tokens(self, within_days: int = REFRESH_WINDOW_DAYS) -> int:
        """
        Refresh long-lived tokens that expire within `within_days`.

        Tokens that already expired can't be refreshed; those users must
        reconnect.

        Returns:
            Number of tokens refreshed
        """
        now = utc_now()
        cutoff = (now + timedelta(days=within_days)).isoformat()
        rows = self.store.find(
            collections.USERS,
            eq={"instagram_connected": True},
            lt={"instagram_token_expiry": cutoff},
        )

        refreshed = 0
        for row in rows:
            user_id = row["id"]
            expiry = parse_timestamp(row.get("instagram_token_expiry"))
            token = row.get("instagram_access_token")
            if not token or (expiry and expiry < now):
                logger.info(f"Instagram token for {user_id} already expired; reconnect needed")
                continue

            try:
                result = InstagramToken(**self.api.refresh_token(token))
                self.users.update_fields(user_id, _token_columns(result))
            except (InstagramAPIError, SupabaseClientError, ValidationError) as e:
                logger.error(f"Instagram token refresh failed for {user_id}: {e}")
                continue
            refreshed += 1

        logger.info(f"Refreshed {refreshed} of {len(rows)} expiring Instagram tokens")
        return refreshed


def _token_columns(token: InstagramToken) -> dict[str, Any]:
    return {
        "instagram_access_token": token.access_token,
        "instagram_token_expiry": (utc_now() + timedelta(seconds=token.expires_in)).isoformat(),
        "updated_at": utc_now_iso(),
    }


def _created_key(post: InstagramPost) -> float:
    created = parse_timestamp(post.created_at)
    return created.timestamp() if created else 0.0
