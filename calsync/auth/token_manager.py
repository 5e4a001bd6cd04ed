"""
Token lifecycle management.

Obtains, refreshes and revokes OAuth tokens for calendar integrations and
hands out access tokens that are guaranteed not to be expired at call time.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from calsync.auth.google_oauth import GoogleOAuthFlow, OAuthTokens
from calsync.auth.token_storage import (
    delete_integration,
    disable_integration,
    get_integration_by_id,
    save_integration,
    store_refreshed_tokens,
)
from calsync.config import Settings, get_settings
from calsync.exceptions import CalendarSyncError, CredentialExpiredError, ProviderError
from calsync.models.integrations import CalendarIntegration

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """
    Manages OAuth credentials of calendar integrations.

    Refreshes are serialized per integration: concurrent callers that need
    a fresh token for the same integration wait for a single refresh call
    and then reuse its result. No token material is cached here; every
    call works on the integration row it is given.

    Usage:
        manager = TokenLifecycleManager()
        integration = await manager.connect(session, owner_id, code)
        token = await manager.ensure_valid(session, integration)
    """

    def __init__(
        self,
        flow: Optional[GoogleOAuthFlow] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or get_settings()
        self._flow = flow or GoogleOAuthFlow(self._settings)
        self._refresh_locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def flow(self) -> GoogleOAuthFlow:
        """OAuth flow used for provider calls."""
        return self._flow

    @property
    def refresh_buffer(self) -> timedelta:
        """Lead time before expiry at which tokens are refreshed."""
        return timedelta(seconds=self._settings.token_refresh_buffer_seconds)

    async def authorize(self, code: str) -> OAuthTokens:
        """
        Exchange a one-time authorization code for a token pair.

        Has no side effects; the caller persists the result.

        Raises:
            AuthExchangeError: If the code is invalid, expired or already used
        """
        return await self._flow.exchange_code(code)

    async def connect(
        self,
        session: AsyncSession,
        owner_id: str,
        code: str,
    ) -> CalendarIntegration:
        """
        Authorize and persist an integration for an owner.

        The account email is looked up best-effort; a failing userinfo call
        does not fail the connection.
        """
        tokens = await self.authorize(code)

        user_info = None
        try:
            user_info = await self._flow.get_user_info(tokens.access_token)
        except ProviderError as e:
            logger.warning(f"Could not fetch account info for owner {owner_id}: {e}")

        return await save_integration(session, owner_id, tokens, user_info)

    async def ensure_valid(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
    ) -> str:
        """
        Get an access token that is valid at call time, refreshing if needed.

        Args:
            session: Database session the integration is attached to
            integration: Integration whose token is needed

        Returns:
            Valid access token

        Raises:
            CredentialExpiredError: If the refresh token is dead (integration disabled)
            ProviderTransientError: If the token endpoint is temporarily failing
        """
        if not integration.needs_refresh(self.refresh_buffer):
            return integration.access_token

        async with self._refresh_locks[integration.id]:
            current = await self._reload(session, integration)
            if not current.needs_refresh(self.refresh_buffer):
                # Refreshed by a concurrent caller while we waited
                return current.access_token
            return await self._refresh(session, current)

    async def refresh_after_unauthorized(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        stale_token: str,
    ) -> str:
        """
        Force a refresh after the provider rejected ``stale_token`` with 401.

        If another caller already replaced the stale token, the stored token
        is returned without calling the provider.
        """
        async with self._refresh_locks[integration.id]:
            current = await self._reload(session, integration)
            if current.access_token != stale_token:
                return current.access_token
            return await self._refresh(session, current)

    async def revoke(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
    ) -> None:
        """
        Disconnect an integration.

        Revocation at the provider is best-effort; local credentials and
        ledger rows are always deleted.
        """
        token = integration.refresh_token or integration.access_token
        try:
            await self._flow.revoke_token(token)
        except CalendarSyncError as e:
            logger.warning(f"Provider revoke failed for integration {integration.id}: {e}")
        finally:
            await delete_integration(session, integration)
            self._refresh_locks.pop(integration.id, None)

    async def _reload(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
    ) -> CalendarIntegration:
        current = await get_integration_by_id(session, integration.id)
        if current is None:
            raise CredentialExpiredError(
                f"Integration {integration.id} was disconnected"
            )
        return current

    async def _refresh(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
    ) -> str:
        if not integration.refresh_token:
            error = "Access token expired and no refresh token is available"
            await disable_integration(session, integration, error)
            raise CredentialExpiredError(error)

        try:
            tokens = await self._flow.refresh_token(integration.refresh_token)
        except CredentialExpiredError as e:
            await disable_integration(session, integration, e.message)
            raise

        await store_refreshed_tokens(session, integration, tokens)
        logger.info(f"Refreshed access token for integration {integration.id}")
        return tokens.access_token
