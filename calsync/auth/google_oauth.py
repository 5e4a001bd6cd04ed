"""
Google OAuth 2.0 implementation for calendar access.

Implements the OAuth 2.0 authorization code flow:
1. Generate authorization URL → user redirected to Google
2. User grants permission → Google redirects back with code
3. Exchange code for tokens → access_token + refresh_token
4. Refresh access_token when expired using refresh_token
5. Revoke tokens on disconnect
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx

from calsync.config import Settings, get_settings
from calsync.exceptions import (
    AuthExchangeError,
    CredentialExpiredError,
    ProviderError,
    ProviderTransientError,
)
from calsync.models.base import utcnow

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Calendar API scopes
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]


@dataclass
class OAuthTokens:
    """OAuth token response from Google."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    token_type: str = "Bearer"
    scope: str = ""
    issued_at: datetime = field(default_factory=utcnow)

    @property
    def expiry(self) -> datetime:
        """When the access token expires."""
        return self.issued_at + timedelta(seconds=self.expires_in)


@dataclass
class GoogleUserInfo:
    """User info from Google OAuth."""

    email: str
    name: Optional[str] = None


def _error_code(response: httpx.Response) -> str:
    """Extract the OAuth error code from a token endpoint response."""
    try:
        return response.json().get("error", "")
    except ValueError:
        return ""


class GoogleOAuthFlow:
    """
    Manages the Google OAuth 2.0 flow.

    Every request carries the provider timeout from settings. Token endpoint
    failures are translated into the calsync exception hierarchy:
    4xx on exchange → AuthExchangeError, 4xx on refresh → CredentialExpiredError,
    5xx and network errors → ProviderTransientError.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.client_id = settings.google_oauth_client_id
        self.client_secret = settings.google_oauth_client_secret
        self.redirect_uri = settings.google_oauth_redirect_uri
        self.timeout = settings.provider_timeout_seconds

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_OAUTH_CLIENT_ID and "
                "GOOGLE_OAUTH_CLIENT_SECRET in environment."
            )

    def get_authorization_url(self, state: str) -> str:
        """
        Generate the Google OAuth authorization URL.

        Args:
            state: Random string to prevent CSRF attacks

        Returns:
            URL to redirect user to for authorization
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(CALENDAR_SCOPES),
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Always show consent screen (ensures refresh token)
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _post(self, url: str, data: dict) -> httpx.Response:
        """POST a form to a Google endpoint, mapping network failures."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(url, data=data)
        except httpx.TimeoutException as e:
            raise ProviderTransientError(f"Timed out calling {url}", original_error=e)
        except httpx.RequestError as e:
            raise ProviderTransientError(f"Request to {url} failed: {e}", original_error=e)

    async def exchange_code(self, code: str) -> OAuthTokens:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            code: Authorization code from OAuth callback

        Returns:
            OAuthTokens with access_token and refresh_token

        Raises:
            AuthExchangeError: If the code is invalid, expired or already used
            ProviderTransientError: If Google is unreachable or failing
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        response = await self._post(GOOGLE_TOKEN_URL, data)
        if response.status_code >= 500:
            raise ProviderTransientError(
                f"Token endpoint error ({response.status_code})",
                status=response.status_code,
            )
        if response.status_code >= 400:
            raise AuthExchangeError(
                f"Authorization code rejected ({response.status_code}): {_error_code(response)}"
            )
        token_data = response.json()

        logger.info("Successfully exchanged authorization code for tokens")

        return OAuthTokens(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_in=int(token_data["expires_in"]),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """
        Refresh an expired access token.

        Args:
            refresh_token: The refresh token from initial authorization

        Returns:
            New OAuthTokens with fresh access_token

        Raises:
            CredentialExpiredError: If the refresh token is revoked or invalid
            ProviderTransientError: If Google is unreachable or failing
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        response = await self._post(GOOGLE_TOKEN_URL, data)
        if response.status_code >= 500 or response.status_code == 429:
            raise ProviderTransientError(
                f"Token endpoint error ({response.status_code})",
                status=response.status_code,
            )
        if response.status_code >= 400:
            raise CredentialExpiredError(
                f"Refresh token rejected ({response.status_code}): {_error_code(response)}"
            )
        token_data = response.json()

        logger.info("Successfully refreshed access token")

        return OAuthTokens(
            access_token=token_data["access_token"],
            # Google only rotates the refresh token occasionally
            refresh_token=token_data.get("refresh_token", refresh_token),
            expires_in=int(token_data["expires_in"]),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )

    async def revoke_token(self, token: str) -> None:
        """
        Revoke an access or refresh token at Google.

        Raises:
            ProviderError: If Google does not confirm the revocation
        """
        response = await self._post(GOOGLE_REVOKE_URL, {"token": token})
        if response.status_code >= 400:
            raise ProviderError(
                f"Token revocation failed ({response.status_code}): {_error_code(response)}",
                status=response.status_code,
            )
        logger.info("Revoked token at Google")

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        """
        Get user info from Google using access token.

        Args:
            access_token: Valid OAuth access token

        Returns:
            GoogleUserInfo with user's email and profile
        """
        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(GOOGLE_USERINFO_URL, headers=headers)
                response.raise_for_status()
                user_data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Userinfo request failed ({e.response.status_code})",
                original_error=e,
                status=e.response.status_code,
            )
        except httpx.RequestError as e:
            raise ProviderTransientError(f"Userinfo request failed: {e}", original_error=e)

        return GoogleUserInfo(
            email=user_data["email"],
            name=user_data.get("name"),
        )
