"""
Feed token management.

Feed tokens are bearer secrets embedded in subscription URLs. Only their
SHA-256 digest is stored, so a database leak does not expose live feeds.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.exceptions import ExpiredFeedTokenError, InvalidFeedTokenError
from calsync.models.base import utcnow
from calsync.models.feed import CalendarFeedToken

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
PREFIX_LENGTH = 8


@dataclass
class IssuedFeedToken:
    """A newly created token; the only place the plaintext ever appears."""

    token: str
    record: CalendarFeedToken


def hash_feed_token(token: str) -> str:
    """SHA-256 hex digest of a feed token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def create_feed_token(
    session: AsyncSession,
    owner_id: str,
    ttl: Optional[timedelta] = None,
    label: Optional[str] = None,
    now: Optional[datetime] = None,
) -> IssuedFeedToken:
    """
    Create a feed token for an owner.

    Args:
        session: Database session
        owner_id: Owner whose schedule the feed exposes
        ttl: Lifetime of the token (None = valid until revoked)
        label: Optional label for management listings
        now: Creation time (defaults to now)

    Returns:
        IssuedFeedToken with the plaintext token and the stored record
    """
    token = secrets.token_urlsafe(TOKEN_BYTES)
    expires_at = (now or utcnow()) + ttl if ttl else None

    record = CalendarFeedToken(
        owner_id=owner_id,
        token_hash=hash_feed_token(token),
        token_prefix=token[:PREFIX_LENGTH],
        expires_at=expires_at,
        label=label,
    )
    session.add(record)
    await session.commit()
    await session.refresh(record)

    logger.info(f"Created feed token {record.token_prefix}… for owner {owner_id}")
    return IssuedFeedToken(token=token, record=record)


async def resolve_feed_token(
    session: AsyncSession,
    token: str,
    now: Optional[datetime] = None,
) -> str:
    """
    Resolve a feed token to its owner.

    Returns:
        Owner ID the token grants access to

    Raises:
        InvalidFeedTokenError: If the token is unknown or was revoked
        ExpiredFeedTokenError: If the token is past its expiry
    """
    stmt = select(CalendarFeedToken).where(
        CalendarFeedToken.token_hash == hash_feed_token(token)
    )
    result = await session.execute(stmt)
    record = result.scalar_one_or_none()

    if record is None:
        raise InvalidFeedTokenError("Unknown or revoked feed token")
    if record.is_expired(now):
        raise ExpiredFeedTokenError(f"Feed token {record.token_prefix}… has expired")
    return record.owner_id


async def list_feed_tokens(
    session: AsyncSession,
    owner_id: str,
) -> Sequence[CalendarFeedToken]:
    """List an owner's feed tokens, newest first."""
    stmt = (
        select(CalendarFeedToken)
        .where(CalendarFeedToken.owner_id == owner_id)
        .order_by(CalendarFeedToken.created_at.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def revoke_feed_token(session: AsyncSession, token: str) -> bool:
    """
    Revoke a feed token. Every subscription using it stops working at once.

    Returns:
        True if a token was revoked, False if it did not exist
    """
    result = await session.execute(
        delete(CalendarFeedToken).where(CalendarFeedToken.token_hash == hash_feed_token(token))
    )
    await session.commit()

    revoked = result.rowcount > 0
    if revoked:
        logger.info(f"Revoked feed token {token[:PREFIX_LENGTH]}…")
    return revoked
