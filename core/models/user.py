# =============================================================================
# core/models/user.py - User & Profile Schemas
# =============================================================================
# A user is either a brand or a creator. The role is a closed enum and every
# role-dependent decision goes through a `match` over UserRole, so adding a
# role forces each call site to be revisited.
# =============================================================================

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class UserRole(str, Enum):
    """
    Marketplace roles.

    - brand: books creators and pays for content
    - creator: travels, publishes and delivers content
    """
    BRAND = "brand"
    CREATOR = "creator"

    @property
    def dashboard_path(self) -> str:
        match self:
            case UserRole.BRAND:
                return "/dashboard/brand"
            case UserRole.CREATOR:
                return "/dashboard/creator"
            case _:
                raise ValueError(f"Unhandled role: {self!r}")


class ParticipantInfo(BaseModel):
    """Display metadata for one side of a conversation."""

    name: str = Field(..., min_length=1, max_length=120, description="Display name")
    profile_pic: str | None = Field(default=None, description="Profile picture URL")
    role: UserRole = Field(..., description="Participant role")


class UserProfile(BaseModel):
    """
    Profile stored in the `users` table.

    Brands fill `brand_name`; creators fill first/last name, handle and
    follower count.
    """

    id: str
    email: str | None = None
    role: UserRole | None = None
    first_name: str | None = None
    last_name: str | None = None
    brand_name: str | None = None
    instagram_handle: str | None = None
    follower_count: int | None = None
    home_city: str | None = None
    profile_image_url: str | None = None
    instagram_connected: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @property
    def display_name(self) -> str:
        """Brand name, else "First Last", else email, else "User"."""
        if self.brand_name:
            return self.brand_name
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.email or "User"

    def participant_info(self, fallback_role: UserRole = UserRole.CREATOR) -> ParticipantInfo:
        return ParticipantInfo(
            name=self.display_name,
            profile_pic=self.profile_image_url,
            role=self.role or fallback_role,
        )


class PublicProfile(BaseModel):
    """Profile fields safe to show to other users."""

    id: str
    role: UserRole | None = None
    display_name: str
    instagram_handle: str | None = None
    follower_count: int | None = None
    home_city: str | None = None
    profile_image_url: str | None = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "PublicProfile":
        return cls(
            id=profile.id,
            role=profile.role,
            display_name=profile.display_name,
            instagram_handle=profile.instagram_handle,
            follower_count=profile.follower_count,
            home_city=profile.home_city,
            profile_image_url=profile.profile_image_url,
        )


class ProfileSetupRequest(BaseModel):
    """
    Body of PUT /users/me/profile.

    Required fields depend on the role:
    - brand: brand_name
    - creator: first_name and last_name
    """

    role: UserRole
    first_name: str | None = Field(default=None, max_length=60)
    last_name: str | None = Field(default=None, max_length=60)
    brand_name: str | None = Field(default=None, max_length=120)
    instagram_handle: str | None = Field(default=None, max_length=60)
    follower_count: int | None = Field(default=None, ge=0)
    home_city: str | None = Field(default=None, max_length=120)
    profile_image_url: str | None = None

    @model_validator(mode="after")
    def check_role_fields(self) -> "ProfileSetupRequest":
        match self.role:
            case UserRole.BRAND:
                if not (self.brand_name or "").strip():
                    raise ValueError("brand_name is required for brand profiles")
            case UserRole.CREATOR:
                if not (self.first_name or "").strip() or not (self.last_name or "").strip():
                    raise ValueError("first_name and last_name are required for creator profiles")
            case _:
                raise ValueError(f"Unhandled role: {self.role!r}")
        return self

    def to_update(self) -> dict:
        """Columns to write; the instagram handle is stored without a leading '@'."""
        data = self.model_dump(exclude_none=True, mode="json")
        if "instagram_handle" in data:
            data["instagram_handle"] = data["instagram_handle"].lstrip("@")
        return data
