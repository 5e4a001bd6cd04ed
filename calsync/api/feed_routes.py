"""
Calendar feed API routes.

1. GET /feeds/{token}.ics - The iCalendar feed polled by calendar clients
2. /feeds/tokens - Create, list and revoke subscription links
"""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.api.dependencies import get_feed_renderer
from calsync.api.models import (
    CreatedFeedTokenResponse,
    CreateFeedTokenRequest,
    FeedTokenListResponse,
    FeedTokenResponse,
)
from calsync.config import Settings, get_settings
from calsync.database import get_async_session
from calsync.feed.renderer import FEED_CONTENT_TYPE, FeedRenderer
from calsync.feed.tokens import (
    create_feed_token,
    list_feed_tokens,
    resolve_feed_token,
    revoke_feed_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feeds", tags=["feeds"])


def feed_url(settings: Settings, token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/feeds/{token}.ics"


@router.post(
    "/tokens",
    response_model=CreatedFeedTokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_token(
    request: CreateFeedTokenRequest,
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> CreatedFeedTokenResponse:
    """
    Create a subscription link.

    The token is returned only in this response; store the link, it
    cannot be shown again.
    """
    ttl_days = request.ttl_days or settings.feed_token_ttl_days
    issued = await create_feed_token(
        session,
        request.owner_id,
        ttl=timedelta(days=ttl_days) if ttl_days else None,
        label=request.label,
    )

    return CreatedFeedTokenResponse(
        id=issued.record.id,
        token_prefix=issued.record.token_prefix,
        label=issued.record.label,
        expires_at=issued.record.expires_at,
        created_at=issued.record.created_at,
        token=issued.token,
        feed_url=feed_url(settings, issued.token),
    )


@router.get("/tokens", response_model=FeedTokenListResponse)
async def list_tokens(
    owner_id: str = Query(..., description="Owner whose links to list"),
    session: AsyncSession = Depends(get_async_session),
) -> FeedTokenListResponse:
    """List an owner's subscription links (without the tokens)."""
    records = await list_feed_tokens(session, owner_id)
    return FeedTokenListResponse(
        tokens=[FeedTokenResponse.model_validate(record) for record in records]
    )


@router.delete("/tokens/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_token(
    token: str,
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    """Revoke a subscription link; subscribed clients lose access at once."""
    if not await revoke_feed_token(session, token):
        raise HTTPException(status_code=404, detail="Feed token not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{token}.ics")
async def calendar_feed(
    token: str,
    session: AsyncSession = Depends(get_async_session),
    renderer: FeedRenderer = Depends(get_feed_renderer),
) -> Response:
    """
    Serve the iCalendar feed of the token's owner.

    Unknown or revoked tokens answer 404, expired ones 410.
    """
    owner_id = await resolve_feed_token(session, token)
    body = await renderer.render(owner_id)

    return Response(
        content=body,
        media_type=FEED_CONTENT_TYPE,
        headers={
            "Content-Disposition": 'inline; filename="calendar.ics"',
            "Cache-Control": "private, max-age=300",
        },
    )
