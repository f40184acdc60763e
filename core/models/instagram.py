# =============================================================================
# core/models/instagram.py - Instagram Schemas
# =============================================================================
# Graph API payloads (InstagramProfile, InstagramMedia), the formatted media
# returned to the frontend, oEmbed previews and manually added posts.
# =============================================================================

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

# Post or reel permalink; group 3 is the shortcode
INSTAGRAM_POST_PATTERN = re.compile(r"(instagram\.com|instagr\.am)/(p|reel)/([A-Za-z0-9_-]+)")


class MediaType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    CAROUSEL_ALBUM = "CAROUSEL_ALBUM"


class InstagramProfile(BaseModel):
    id: str
    username: str
    followers_count: int | None = None
    media_count: int | None = None
    account_type: str | None = None

    model_config = {"extra": "ignore"}


class InstagramToken(BaseModel):
    """Long-lived token as returned by the exchange and refresh endpoints."""

    access_token: str
    token_type: str | None = None
    expires_in: int = Field(..., ge=0, description="Lifetime in seconds")

    model_config = {"extra": "ignore"}


class InstagramMedia(BaseModel):
    id: str
    media_type: MediaType
    media_url: str | None = None
    thumbnail_url: str | None = None
    permalink: str | None = None
    caption: str | None = None
    timestamp: str | None = None

    model_config = {"extra": "ignore"}


class FormattedMedia(BaseModel):
    """Media item as shown in a creator's portfolio feed."""

    id: str
    type: str
    url: str | None = None
    thumbnail: str | None = None
    permalink: str | None = None
    caption: str = ""
    timestamp: str | None = None

    @classmethod
    def from_media(cls, media: InstagramMedia) -> "FormattedMedia":
        return cls(
            id=media.id,
            type=media.media_type.value.lower(),
            url=media.media_url,
            thumbnail=media.thumbnail_url or media.media_url,
            permalink=media.permalink,
            caption=media.caption or "",
            timestamp=media.timestamp,
        )


class MediaResponse(BaseModel):
    success: bool = True
    media: list[FormattedMedia]
    total: int


class OEmbedPreview(BaseModel):
    success: bool = True
    image_url: str | None = None
    thumbnail_url: str | None = None
    title: str = ""
    author_name: str = ""
    provider_name: str = "Instagram"


class PostType(str, Enum):
    POST = "post"
    REEL = "reel"


class InstagramPostCreate(BaseModel):
    """Body of POST /instagram/posts."""

    post_url: str = Field(..., min_length=1)
    post_id: str | None = Field(default=None, description="Shortcode; derived from the URL when omitted")
    type: PostType | None = None

    @field_validator("post_url")
    @classmethod
    def strip_url(cls, value: str) -> str:
        return value.strip()


class InstagramPost(BaseModel):
    id: str
    creator_id: str
    post_url: str
    post_id: str
    type: PostType = PostType.POST
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}


class ConnectResponse(BaseModel):
    auth_url: str
