"""
Credential store for calendar integrations.

Provides database persistence for OAuth tokens and per-integration sync
state. Only the token lifecycle manager writes token material.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.auth.google_oauth import GoogleUserInfo, OAuthTokens
from calsync.models.base import utcnow
from calsync.models.integrations import CalendarIntegration
from calsync.models.sync import CalendarEventSync

logger = logging.getLogger(__name__)


async def get_integration(
    session: AsyncSession,
    owner_id: str,
    provider: str = "google",
) -> Optional[CalendarIntegration]:
    """
    Get an owner's integration for a provider.

    Args:
        session: Database session
        owner_id: Owner of the integration
        provider: Calendar provider (default: google)

    Returns:
        CalendarIntegration if found, None otherwise
    """
    stmt = select(CalendarIntegration).where(
        CalendarIntegration.owner_id == owner_id,
        CalendarIntegration.provider == provider,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_integration_by_id(
    session: AsyncSession,
    integration_id: uuid.UUID,
) -> Optional[CalendarIntegration]:
    """Load an integration by primary key, bypassing the identity map cache."""
    stmt = (
        select(CalendarIntegration)
        .where(CalendarIntegration.id == integration_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_integrations(
    session: AsyncSession,
    owner_id: str,
    enabled_only: bool = False,
) -> Sequence[CalendarIntegration]:
    """
    List every integration of an owner.

    Args:
        session: Database session
        owner_id: Owner of the integrations
        enabled_only: Only return integrations with sync enabled

    Returns:
        Integrations ordered by creation time
    """
    stmt = select(CalendarIntegration).where(CalendarIntegration.owner_id == owner_id)
    if enabled_only:
        stmt = stmt.where(CalendarIntegration.sync_enabled.is_(True))
    stmt = stmt.order_by(CalendarIntegration.created_at, CalendarIntegration.provider)
    result = await session.execute(stmt)
    return result.scalars().all()


async def save_integration(
    session: AsyncSession,
    owner_id: str,
    tokens: OAuthTokens,
    user_info: Optional[GoogleUserInfo] = None,
    provider: str = "google",
) -> CalendarIntegration:
    """
    Save or update an owner's integration after authorization.

    Re-authorizing an existing integration replaces its tokens, re-enables
    sync and clears the last error. The chosen calendar is kept.

    Args:
        session: Database session
        owner_id: Owner of the integration
        tokens: OAuth tokens from authorization
        user_info: Account info from the provider
        provider: Calendar provider (default: google)

    Returns:
        The saved CalendarIntegration
    """
    existing = await get_integration(session, owner_id, provider)
    email = user_info.email if user_info else None

    if existing:
        existing.access_token = tokens.access_token
        if tokens.refresh_token:
            existing.refresh_token = tokens.refresh_token
        existing.token_expiry = tokens.expiry
        existing.scopes = tokens.scope
        if email:
            existing.account_email = email
        existing.sync_enabled = True
        existing.last_error = None

        await session.commit()
        logger.info(f"Updated {provider} integration for owner {owner_id}")
        return existing

    integration = CalendarIntegration(
        owner_id=owner_id,
        provider=provider,
        account_email=email,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expiry=tokens.expiry,
        scopes=tokens.scope,
        sync_enabled=True,
    )
    session.add(integration)
    await session.commit()
    await session.refresh(integration)

    logger.info(f"Created {provider} integration for owner {owner_id}")
    return integration


async def store_refreshed_tokens(
    session: AsyncSession,
    integration: CalendarIntegration,
    tokens: OAuthTokens,
) -> None:
    """Persist a refreshed access token and expiry."""
    integration.access_token = tokens.access_token
    integration.token_expiry = tokens.expiry
    if tokens.refresh_token:
        integration.refresh_token = tokens.refresh_token
    await session.commit()


async def disable_integration(
    session: AsyncSession,
    integration: CalendarIntegration,
    error: str,
) -> None:
    """
    Disable sync after an irrecoverable credential failure.

    The dead refresh token is dropped so later operations fail fast
    without calling the provider again.
    """
    integration.sync_enabled = False
    integration.refresh_token = None
    integration.last_error = error
    await session.commit()
    logger.warning(f"Disabled integration {integration.id} for owner {integration.owner_id}: {error}")


async def record_integration_error(
    session: AsyncSession,
    integration: CalendarIntegration,
    error: str,
) -> None:
    """Record the last sync error on an integration."""
    integration.last_error = error
    await session.commit()


async def record_integration_success(
    session: AsyncSession,
    integration: CalendarIntegration,
    when: Optional[datetime] = None,
) -> None:
    """Record a successful provider write and clear the error field."""
    integration.last_sync_at = when or utcnow()
    integration.last_error = None
    await session.commit()


async def update_integration_settings(
    session: AsyncSession,
    integration: CalendarIntegration,
    calendar_id: Optional[str] = None,
    sync_enabled: Optional[bool] = None,
) -> CalendarIntegration:
    """
    Change the chosen calendar or the sync toggle.

    Args:
        session: Database session
        integration: Integration to update
        calendar_id: New target calendar (None keeps the current one)
        sync_enabled: New sync flag (None keeps the current one)

    Returns:
        The updated integration
    """
    if calendar_id is not None:
        integration.calendar_id = calendar_id
    if sync_enabled is not None:
        integration.sync_enabled = sync_enabled
    await session.commit()
    logger.info(
        f"Updated settings for integration {integration.id}: "
        f"calendar={integration.calendar_id}, sync_enabled={integration.sync_enabled}"
    )
    return integration


async def delete_integration(
    session: AsyncSession,
    integration: CalendarIntegration,
) -> None:
    """
    Delete an integration together with its ledger rows.

    Returns once local credential material is gone.
    """
    await session.execute(
        delete(CalendarEventSync).where(CalendarEventSync.integration_id == integration.id)
    )
    await session.execute(
        delete(CalendarIntegration).where(CalendarIntegration.id == integration.id)
    )
    await session.commit()
    logger.info(f"Deleted integration {integration.id} for owner {integration.owner_id}")
