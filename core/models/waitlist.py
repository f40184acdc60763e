# =============================================================================
# core/models/waitlist.py - Waitlist & Signup Schemas
# =============================================================================
# Intake documents are append-only. Form submissions are parsed into these
# models by core/services/waitlist_service.py; JSON signups validate directly.
# =============================================================================

from pydantic import BaseModel, Field, field_validator

from .user import UserRole

# Source tag stored on landing-page form submissions
LANDING_SOURCE = "landing_pl"


class BrandRequest(BaseModel):
    """One shoot request from the brand waitlist form (a req_city[] row)."""

    city: str = Field(..., min_length=1)
    window_from: str | None = None
    window_to: str | None = None
    job_type: list[str] = Field(default_factory=list)
    assets_qty: str = ""
    budget: str = ""
    tax_id: str = ""


class TripEntry(BaseModel):
    """One planned trip from the creator waitlist form (a trip_city[] row)."""

    city: str = Field(..., min_length=1)
    date_from: str | None = Field(default=None, serialization_alias="from")
    date_to: str | None = Field(default=None, serialization_alias="to")


class BrandWaitlistEntry(BaseModel):
    brand_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    website_or_ig: str = Field(..., min_length=1)
    requests: list[BrandRequest] = Field(default_factory=list)
    consent: bool = True
    source: str = LANDING_SOURCE


class CreatorWaitlistEntry(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    instagram: str = Field(..., min_length=1)
    followers: int | None = None
    trips: list[TripEntry] = Field(default_factory=list)
    content_types: list[str] = Field(default_factory=list)
    rates: str = ""
    language: str = ""
    consent: bool = True
    source: str = LANDING_SOURCE


class QuickSignupRequest(BaseModel):
    """
    Body of POST /api/quick-signup.

    The email pattern is checked by the service so that a bad address maps
    to a 400 rather than a 422.
    """

    email: str = Field(..., min_length=1)
    role: UserRole
    source: str | None = None
    timestamp: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class QuickSignupResponse(BaseModel):
    success: bool = True
    message: str = "Quick signup saved successfully"
    id: str


class EarlyAccessRequest(BaseModel):
    email: str = Field(..., min_length=1)
    source: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()
