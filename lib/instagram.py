# =============================================================================
# lib/instagram.py - Instagram API Client
# =============================================================================
# Thin httpx wrapper around the Instagram OAuth and Graph endpoints:
#
#   OAuth:  https://api.instagram.com/oauth/authorize
#           https://api.instagram.com/oauth/access_token  (code -> short token)
#   Graph:  https://graph.instagram.com/access_token      (short -> long-lived)
#           https://graph.instagram.com/refresh_access_token
#           https://graph.instagram.com/me, /me/media
#           https://graph.instagram.com/instagram_oembed
#
# The httpx.Client is passed in so tests can use httpx.MockTransport.
# =============================================================================

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from lib.utils import ApplicationError

logger = logging.getLogger(__name__)

OAUTH_BASE_URL = "https://api.instagram.com/oauth"
GRAPH_BASE_URL = "https://graph.instagram.com"

OAUTH_SCOPE = "user_profile,user_media"
PROFILE_FIELDS = "id,username,followers_count,media_count,account_type"
MEDIA_FIELDS = "id,caption,media_type,media_url,permalink,thumbnail_url,timestamp"
OEMBED_USER_AGENT = "Mozilla/5.0 (compatible; InstagramBot/1.0)"


class InstagramAPIError(ApplicationError):
    """
    Error returned by an Instagram endpoint.

    Attributes:
        status_code: HTTP status of the failed response (None for transport errors)
    """

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, code="INSTAGRAM_API_ERROR", **kwargs)
        self.status_code = status_code


class InstagramAPI:
    """
    Instagram OAuth + Graph API client.

    Example:
        api = InstagramAPI(httpx.Client(timeout=30), app_id, app_secret, redirect_uri)
        short = api.exchange_code(code)
        token = api.exchange_token(short)
        profile = api.get_user_profile(token["access_token"])
    """

    def __init__(
        self,
        http: httpx.Client,
        app_id: str,
        app_secret: str,
        redirect_uri: str,
    ):
        self.http = http
        self.app_id = app_id
        self.app_secret = app_secret
        self.redirect_uri = redirect_uri

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise InstagramAPIError(f"Request to {url} failed: {e}")

        if response.status_code >= 400:
            logger.warning(f"Instagram API {response.status_code} for {url}: {response.text[:200]}")
            raise InstagramAPIError(
                f"Instagram API error: HTTP {response.status_code}",
                status_code=response.status_code,
                details={"url": url},
            )
        return response.json()

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    def build_auth_url(self, state: str) -> str:
        params = {
            "client_id": self.app_id,
            "redirect_uri": self.redirect_uri,
            "scope": OAUTH_SCOPE,
            "response_type": "code",
            "state": state,
        }
        return f"{OAUTH_BASE_URL}/authorize?{urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for a short-lived access token."""
        data = self._request(
            "POST",
            f"{OAUTH_BASE_URL}/access_token",
            data={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
        )
        token = data.get("access_token")
        if not token:
            raise InstagramAPIError("Token response missing access_token")
        return token

    def exchange_token(self, short_lived_token: str) -> dict[str, Any]:
        """Exchange a short-lived token for a long-lived one (~60 days)."""
        return self._request(
            "GET",
            f"{GRAPH_BASE_URL}/access_token",
            params={
                "grant_type": "ig_exchange_token",
                "client_secret": self.app_secret,
                "access_token": short_lived_token,
            },
        )

    def refresh_token(self, access_token: str) -> dict[str, Any]:
        """Refresh a long-lived token that hasn't expired yet."""
        return self._request(
            "GET",
            f"{GRAPH_BASE_URL}/refresh_access_token",
            params={"grant_type": "ig_refresh_token", "access_token": access_token},
        )

    # -------------------------------------------------------------------------
    # Graph
    # -------------------------------------------------------------------------

    def get_user_profile(self, access_token: str) -> dict[str, Any]:
        return self._request(
            "GET",
            f"{GRAPH_BASE_URL}/me",
            params={"fields": PROFILE_FIELDS, "access_token": access_token},
        )

    def get_user_media(self, access_token: str, limit: int = 12) -> list[dict[str, Any]]:
        data = self._request(
            "GET",
            f"{GRAPH_BASE_URL}/me/media",
            params={"fields": MEDIA_FIELDS, "limit": limit, "access_token": access_token},
        )
        return data.get("data") or []

    def get_oembed(self, url: str) -> dict[str, Any]:
        return self._request(
            "GET",
            f"{GRAPH_BASE_URL}/instagram_oembed",
            params={"url": url, "omitscript": "true"},
            headers={"User-Agent": OEMBED_USER_AGENT},
        )
