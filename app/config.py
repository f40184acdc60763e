# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Third-party keys (Stripe, Instagram) default to empty strings so the API can
# boot without them; the services that need them refuse to run until set.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are accessed via the global `settings` instance, or via
    `get_settings()` where a fresh dependency is preferred.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration (document store, blob storage, auth)
    # -------------------------------------------------------------------------

    SUPABASE_URL: str = Field(
        ...,
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Supabase anon/public API key"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    SUPABASE_JWT_SECRET: str = Field(
        default="dev-jwt-secret-change-in-production",
        description="Legacy HS256 secret used to verify Supabase auth tokens"
    )

    STORAGE_BUCKET: str = Field(
        default="deliveries",
        description="Storage bucket holding order delivery files"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (Celery broker + websocket fan-out)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery broker and pub/sub"
    )

    # -------------------------------------------------------------------------
    # Stripe Configuration
    # -------------------------------------------------------------------------

    STRIPE_SECRET_KEY: str = Field(
        default="",
        description="Stripe secret API key (payments are disabled when empty)"
    )

    STRIPE_WEBHOOK_SECRET: str = Field(
        default="",
        description="Signing secret for the Stripe webhook endpoint"
    )

    STRIPE_CURRENCY: str = Field(
        default="usd",
        min_length=3,
        max_length=3,
        description="Currency for checkout sessions"
    )

    # -------------------------------------------------------------------------
    # Instagram Configuration
    # -------------------------------------------------------------------------

    INSTAGRAM_APP_ID: str = Field(default="", description="Instagram app client id")

    INSTAGRAM_APP_SECRET: str = Field(default="", description="Instagram app client secret")

    INSTAGRAM_REDIRECT_URI: str = Field(
        default="http://localhost:8000/api/auth/instagram/callback",
        description="OAuth redirect URI registered with Instagram"
    )

    # -------------------------------------------------------------------------
    # Frontend / Redirects
    # -------------------------------------------------------------------------

    FRONTEND_URL: str = Field(
        default="http://localhost:3000",
        description="Base URL of the web frontend (redirect target)"
    )

    WAITLIST_REDIRECT_PATH: str = Field(
        default="/pl/lumo",
        description="Landing page that receives ?ok= flags after form intake"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for outbound calls (Instagram, storage uploads)"
    )

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------

    SECRET_KEY: str = Field(
        default="dev-secret-key-change-in-production",
        min_length=16,
        description="Secret key for signing OAuth state tokens"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Delivery Upload Settings
    # -------------------------------------------------------------------------

    MAX_UPLOAD_SIZE_MB: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Maximum size of a single delivery file in MB"
    )

    MAX_DELIVERY_FILES: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum number of files in one delivery"
    )

    UPLOAD_MAX_CONCURRENCY: int = Field(
        default=3,
        ge=1,
        le=16,
        description="How many files of one delivery upload at the same time"
    )

    UPLOAD_CHUNK_SIZE_KB: int = Field(
        default=256,
        ge=16,
        le=8192,
        description="Chunk size used for streamed uploads (progress granularity)"
    )

    DELIVERY_RECONCILE_GRACE_SECONDS: int = Field(
        default=300,
        ge=0,
        description="Age after which a recorded-but-uncommitted delivery is reconciled"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://lumo.app" -> ["http://localhost:3000", "https://lumo.app"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Convert MB to bytes for file size validation."""
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def upload_chunk_size_bytes(self) -> int:
        return self.UPLOAD_CHUNK_SIZE_KB * 1024

    @property
    def frontend_base_url(self) -> str:
        return self.FRONTEND_URL.rstrip("/")

    @property
    def stripe_enabled(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)

    @property
    def instagram_enabled(self) -> bool:
        return bool(self.INSTAGRAM_APP_ID and self.INSTAGRAM_APP_SECRET)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
settings = get_settings()
