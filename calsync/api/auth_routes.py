"""
Calendar connection API routes.

Handles the OAuth 2.0 authorization code flow and integration settings:
1. /auth/google/login - Start OAuth flow (returns the Google consent URL)
2. /auth/google/callback - Handle OAuth callback (exchange code for tokens)
3. /auth/status - Connection status and last sync error
4. /auth/logout - Disconnect calendar (revoke access, delete local state)
5. /auth/calendars - List calendars the account can write to
6. /auth/settings - Choose the target calendar or pause sync
"""

import logging
import secrets
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.api.dependencies import get_synchronizer, get_token_manager
from calsync.api.models import (
    AuthCallbackResponse,
    AuthLoginResponse,
    AuthStatusResponse,
    CalendarListResponse,
    CalendarResponse,
    IntegrationSettingsRequest,
)
from calsync.auth.token_manager import TokenLifecycleManager
from calsync.auth.token_storage import get_integration, update_integration_settings
from calsync.database import get_async_session
from calsync.models.integrations import CalendarIntegration
from calsync.sync.synchronizer import EventSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

PROVIDER = "google"

# State tokens expire after 10 minutes
STATE_TTL_SECONDS = 600

# In-memory state storage: state -> (owner_id, issued at)
_oauth_states: dict[str, tuple[str, float]] = {}


def _generate_state(owner_id: str) -> str:
    """Generate a random state token and store the owner mapping."""
    _purge_expired_states()
    state = secrets.token_urlsafe(32)
    _oauth_states[state] = (owner_id, time.monotonic())
    return state


def _validate_state(state: str) -> Optional[str]:
    """Consume a state token and return its owner if still valid."""
    entry = _oauth_states.pop(state, None)
    if entry is None:
        return None
    owner_id, issued_at = entry
    if time.monotonic() - issued_at > STATE_TTL_SECONDS:
        return None
    return owner_id


def _purge_expired_states() -> None:
    cutoff = time.monotonic() - STATE_TTL_SECONDS
    for state in [s for s, (_, issued_at) in _oauth_states.items() if issued_at < cutoff]:
        del _oauth_states[state]


async def _require_integration(session: AsyncSession, owner_id: str) -> CalendarIntegration:
    integration = await get_integration(session, owner_id, PROVIDER)
    if integration is None:
        raise HTTPException(
            status_code=404,
            detail="Calendar not connected. Please authorize via /auth/google/login",
        )
    return integration


@router.get("/google/login", response_model=AuthLoginResponse)
async def google_login(
    owner_id: str = Query(..., description="Owner to associate the calendar with"),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
) -> AuthLoginResponse:
    """
    Start the Google OAuth flow.

    Returns the authorization URL that the client should redirect to.
    The state parameter prevents CSRF and maps the callback to the owner.
    """
    state = _generate_state(owner_id)
    auth_url = token_manager.flow.get_authorization_url(state)

    logger.info(f"Generated OAuth URL for owner {owner_id}")

    return AuthLoginResponse(authorization_url=auth_url, state=state)


@router.get("/google/callback", response_model=AuthCallbackResponse)
async def google_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: str = Query(..., description="State token for CSRF protection"),
    error: Optional[str] = Query(None, description="Error from Google OAuth"),
    session: AsyncSession = Depends(get_async_session),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
) -> AuthCallbackResponse:
    """
    Handle the Google OAuth callback.

    On success, exchanges the authorization code for tokens and stores the
    integration. Exchange failures surface as AuthExchangeError (400).
    """
    # User denied access
    if error:
        logger.warning(f"OAuth error: {error}")
        raise HTTPException(status_code=400, detail=f"OAuth authorization failed: {error}")

    owner_id = _validate_state(state)
    if not owner_id:
        logger.warning("Invalid or expired OAuth state token")
        raise HTTPException(
            status_code=400,
            detail="Invalid or expired state token. Please restart the OAuth flow.",
        )

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    integration = await token_manager.connect(session, owner_id, code)

    logger.info(f"Connected Google Calendar for owner {owner_id} ({integration.account_email})")

    return AuthCallbackResponse(
        success=True,
        email=integration.account_email,
        message="Successfully connected Google Calendar",
    )


@router.get("/status", response_model=AuthStatusResponse)
async def auth_status(
    owner_id: str = Query(..., description="Owner to check"),
    session: AsyncSession = Depends(get_async_session),
) -> AuthStatusResponse:
    """
    Check if an owner has connected a calendar.

    ``last_error`` carries the last sync failure so the admin UI can show
    a degradation notice.
    """
    integration = await get_integration(session, owner_id, PROVIDER)

    if integration is None:
        return AuthStatusResponse(connected=False, provider=PROVIDER)

    return AuthStatusResponse(
        connected=True,
        provider=integration.provider,
        email=integration.account_email,
        calendar_id=integration.target_calendar_id,
        sync_enabled=integration.sync_enabled,
        last_sync_at=integration.last_sync_at,
        last_error=integration.last_error,
    )


@router.post("/logout")
async def logout(
    owner_id: str = Query(..., description="Owner to disconnect"),
    session: AsyncSession = Depends(get_async_session),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
) -> dict:
    """
    Disconnect an owner's Google Calendar.

    Revokes the grant at Google (best-effort) and deletes the stored
    tokens and sync ledger. Events already in the calendar stay there.
    """
    integration = await get_integration(session, owner_id, PROVIDER)

    if integration is None:
        return {"message": "No connected calendar found"}

    await token_manager.revoke(session, integration)
    logger.info(f"Owner {owner_id} disconnected Google Calendar")
    return {"message": "Successfully disconnected Google Calendar"}


@router.get("/calendars", response_model=CalendarListResponse)
async def list_calendars(
    owner_id: str = Query(..., description="Owner whose calendars to list"),
    writable_only: bool = Query(True, description="Only calendars events can be written to"),
    session: AsyncSession = Depends(get_async_session),
    synchronizer: EventSynchronizer = Depends(get_synchronizer),
) -> CalendarListResponse:
    """List the connected account's calendars."""
    integration = await _require_integration(session, owner_id)
    calendars = await synchronizer.list_calendars(session, integration)

    return CalendarListResponse(
        calendars=[
            CalendarResponse(
                id=calendar.id,
                summary=calendar.summary,
                primary=calendar.primary,
                writable=calendar.writable,
            )
            for calendar in calendars
            if calendar.writable or not writable_only
        ]
    )


@router.put("/settings", response_model=AuthStatusResponse)
async def update_settings(
    request: IntegrationSettingsRequest,
    session: AsyncSession = Depends(get_async_session),
) -> AuthStatusResponse:
    """Choose the target calendar or pause/resume sync."""
    integration = await _require_integration(session, request.owner_id)
    integration = await update_integration_settings(
        session,
        integration,
        calendar_id=request.calendar_id,
        sync_enabled=request.sync_enabled,
    )

    return AuthStatusResponse(
        connected=True,
        provider=integration.provider,
        email=integration.account_email,
        calendar_id=integration.target_calendar_id,
        sync_enabled=integration.sync_enabled,
        last_sync_at=integration.last_sync_at,
        last_error=integration.last_error,
    )
