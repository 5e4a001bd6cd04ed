"""
Calendar integration (credential store) model.

Stores the OAuth connection of an owner to an external calendar provider.
One row per (owner, provider); an owner may hold several providers.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from calsync.models.base import BaseModel, as_utc, utcnow

DEFAULT_CALENDAR_ID = "primary"


class CalendarIntegration(BaseModel):
    """
    External calendar connection for one owner and provider.

    Attributes:
        owner_id: Tenant/user that owns the connection
        provider: Calendar provider (currently only 'google')
        account_email: Provider account the tokens belong to
        access_token: Current OAuth access token
        refresh_token: Refresh token (cleared when it is known to be dead)
        token_expiry: When the access token expires
        scopes: OAuth scopes granted (space-separated)
        calendar_id: External calendar chosen for pushed events
        sync_enabled: Whether entities are pushed to this calendar
        last_sync_at: Last successful provider write
        last_error: Last sync or credential error, cleared on success
    """

    __tablename__ = "calendar_integrations"

    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Owner (tenant/user) of the connection"
    )

    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="google",
        doc="Calendar provider"
    )

    account_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Account email reported by the provider"
    )

    # Token storage
    access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="OAuth access token"
    )

    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth refresh token"
    )

    token_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the access token expires"
    )

    scopes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth scopes granted (space-separated)"
    )

    # Sync configuration and state
    calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="External calendar receiving events (defaults to 'primary')"
    )

    sync_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether entities are pushed to this calendar"
    )

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last successful provider write"
    )

    last_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Last error message (NULL when healthy)"
    )

    __table_args__ = (
        Index("ix_calendar_integrations_owner_provider", "owner_id", "provider", unique=True),
    )

    @property
    def target_calendar_id(self) -> str:
        """Calendar that receives pushed events."""
        return self.calendar_id or DEFAULT_CALENDAR_ID

    def needs_refresh(self, buffer: timedelta, now: Optional[datetime] = None) -> bool:
        """Check if the access token is expired or expires within ``buffer``."""
        expiry = as_utc(self.token_expiry)
        if expiry is None:
            return False
        now = now or utcnow()
        return now >= expiry - buffer

    def __repr__(self) -> str:
        return (
            f"<CalendarIntegration(owner_id={self.owner_id}, provider={self.provider}, "
            f"sync_enabled={self.sync_enabled})>"
        )
