"""Tests for TokenLifecycleManager."""

import asyncio

import pytest

from calsync.auth.token_storage import get_integration, get_integration_by_id
from calsync.exceptions import CredentialExpiredError, ProviderError, ProviderTransientError
from calsync.sync.ledger import get_sync_row, mark_synced


class TestConnect:
    """Tests for authorize/connect."""

    async def test_connect_creates_integration(self, session_factory, token_manager):
        """A successful callback stores tokens and the account email."""
        async with session_factory() as session:
            integration = await token_manager.connect(session, "owner-1", "code-1")

        assert integration.access_token == "access-code-1"
        assert integration.refresh_token == "refresh-code-1"
        assert integration.account_email == "owner@example.com"
        assert integration.sync_enabled is True

    async def test_connect_without_user_info(self, session_factory, token_manager, oauth_flow):
        """A failing userinfo call does not fail the connection."""
        oauth_flow.user_info_error = ProviderError("userinfo down", status=500)

        async with session_factory() as session:
            integration = await token_manager.connect(session, "owner-1", "code-1")

        assert integration.account_email is None

    async def test_reconnect_reenables_disabled_integration(
        self, session_factory, token_manager, make_integration
    ):
        """Re-authorizing replaces tokens, clears the error and re-enables sync."""
        existing = await make_integration(sync_enabled=False)
        async with session_factory() as session:
            stored = await get_integration_by_id(session, existing.id)
            stored.last_error = "Refresh token rejected"
            await session.commit()

            integration = await token_manager.connect(session, "owner-1", "code-2")

        assert integration.id == existing.id
        assert integration.access_token == "access-code-2"
        assert integration.sync_enabled is True
        assert integration.last_error is None


class TestEnsureValid:
    """Tests for ensure_valid."""

    async def test_fresh_token_is_returned_as_is(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        await make_integration(access_token="still-good")

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            token = await token_manager.ensure_valid(session, integration)

        assert token == "still-good"
        assert oauth_flow.refresh_calls == 0

    async def test_token_inside_refresh_buffer_is_refreshed(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """Tokens expiring within the buffer are refreshed before use."""
        await make_integration(expires_in=60)

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            token = await token_manager.ensure_valid(session, integration)

        assert token == "refreshed-1"
        assert oauth_flow.refresh_calls == 1

        async with session_factory() as session:
            stored = await get_integration(session, "owner-1")
        assert stored.access_token == "refreshed-1"
        assert stored.refresh_token == "refresh-initial"
        assert not stored.needs_refresh(token_manager.refresh_buffer)

    async def test_concurrent_callers_share_one_refresh(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """N concurrent callers with an expired token cause exactly one refresh."""
        oauth_flow.refresh_delay = 0.05
        await make_integration(expires_in=-10)

        async def caller():
            async with session_factory() as session:
                integration = await get_integration(session, "owner-1")
                return await token_manager.ensure_valid(session, integration)

        tokens = await asyncio.gather(*[caller() for _ in range(5)])

        assert oauth_flow.refresh_calls == 1
        assert set(tokens) == {"refreshed-1"}

    async def test_dead_refresh_token_disables_integration(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """invalid_grant disables sync and stops further refresh attempts."""
        oauth_flow.refresh_error = CredentialExpiredError("Refresh token rejected (400): invalid_grant")
        await make_integration(expires_in=-10)

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            with pytest.raises(CredentialExpiredError):
                await token_manager.ensure_valid(session, integration)

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            assert integration.sync_enabled is False
            assert integration.refresh_token is None
            assert "invalid_grant" in integration.last_error

            with pytest.raises(CredentialExpiredError):
                await token_manager.ensure_valid(session, integration)

        assert oauth_flow.refresh_calls == 1

    async def test_transient_refresh_failure_keeps_integration(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """A token endpoint outage is retryable and changes nothing."""
        oauth_flow.refresh_error = ProviderTransientError("Token endpoint error (503)", status=503)
        await make_integration(expires_in=-10)

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            with pytest.raises(ProviderTransientError):
                await token_manager.ensure_valid(session, integration)

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
        assert integration.sync_enabled is True
        assert integration.refresh_token == "refresh-initial"

    async def test_tenants_are_isolated(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """Refreshing one owner's token never touches another owner's."""
        await make_integration(owner_id="owner-a", access_token="a-token", expires_in=-10)
        await make_integration(owner_id="owner-b", access_token="b-token")

        async with session_factory() as session:
            a = await get_integration(session, "owner-a")
            b = await get_integration(session, "owner-b")
            assert await token_manager.ensure_valid(session, a) == "refreshed-1"
            assert await token_manager.ensure_valid(session, b) == "b-token"

        async with session_factory() as session:
            b = await get_integration(session, "owner-b")
        assert b.access_token == "b-token"
        assert oauth_flow.refresh_calls == 1


class TestRefreshAfterUnauthorized:
    """Tests for refresh_after_unauthorized."""

    async def test_refreshes_stale_token(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        await make_integration(access_token="rejected")

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            token = await token_manager.refresh_after_unauthorized(session, integration, "rejected")

        assert token == "refreshed-1"
        assert oauth_flow.refresh_calls == 1

    async def test_skips_refresh_if_already_replaced(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """Another caller already refreshed; reuse its token."""
        await make_integration(access_token="newer")

        async with session_factory() as session:
            integration = await get_integration(session, "owner-1")
            token = await token_manager.refresh_after_unauthorized(session, integration, "older")

        assert token == "newer"
        assert oauth_flow.refresh_calls == 0


class TestRevoke:
    """Tests for revoke."""

    async def test_revoke_deletes_credentials_and_ledger(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        integration = await make_integration()
        async with session_factory() as session:
            await mark_synced(session, integration.id, "shoot", "1", "evt1", "hash")

        async with session_factory() as session:
            stored = await get_integration(session, "owner-1")
            await token_manager.revoke(session, stored)

        assert oauth_flow.revoked == ["refresh-initial"]
        async with session_factory() as session:
            assert await get_integration(session, "owner-1") is None
            assert await get_sync_row(session, integration.id, "shoot", "1") is None

    async def test_revoke_deletes_locally_when_provider_fails(
        self, session_factory, token_manager, oauth_flow, make_integration
    ):
        """Local credentials are deleted even if Google cannot be reached."""
        oauth_flow.revoke_error = ProviderTransientError("Timed out")
        await make_integration()

        async with session_factory() as session:
            stored = await get_integration(session, "owner-1")
            await token_manager.revoke(session, stored)

        async with session_factory() as session:
            assert await get_integration(session, "owner-1") is None
