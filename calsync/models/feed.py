"""
Feed token model.

A feed token grants read access to an owner's calendar feed. Only a SHA-256
digest of the token is stored; the plaintext is handed out once.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from calsync.models.base import BaseModel, as_utc, utcnow


class CalendarFeedToken(BaseModel):
    """
    Opaque token mapped to an owner for calendar feed subscriptions.

    Attributes:
        owner_id: Owner whose schedule the token exposes
        token_hash: SHA-256 hex digest of the token
        token_prefix: Leading characters of the token, for identification
        expires_at: Optional expiry (NULL = valid until revoked)
        label: Optional human readable label
    """

    __tablename__ = "calendar_feed_tokens"

    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Owner whose schedule the token exposes"
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 hex digest of the token"
    )

    token_prefix: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        doc="Leading characters of the token"
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the token stops being accepted"
    )

    label: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Optional label shown in management listings"
    )

    __table_args__ = (
        Index("ix_calendar_feed_tokens_hash", "token_hash", unique=True),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the token has passed its expiry."""
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return (now or utcnow()) >= expires_at

    def __repr__(self) -> str:
        return f"<CalendarFeedToken(owner_id={self.owner_id}, prefix={self.token_prefix})>"
