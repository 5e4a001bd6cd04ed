"""
Sync ledger model.

Tracks, per (integration, entity), which external event mirrors the entity
and the content hash of the last payload that was successfully pushed.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from calsync.models.base import BaseModel


class SyncStatus(str, Enum):
    """Status of a ledger row."""

    SYNCED = "synced"
    ERROR = "error"
    DELETED = "deleted"


class CalendarEventSync(BaseModel):
    """
    Ledger row linking a domain entity to its external event.

    A NULL external_event_id means no external event exists, whatever the
    status says; the next push must create one. Updates and deletes go to
    calendar_id, not to the integration's current target calendar.
    """

    __tablename__ = "calendar_event_syncs"

    integration_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"),
        nullable=False,
        doc="Integration the external event lives in"
    )

    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Domain entity type (shoot, session, order, ...)"
    )

    entity_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Domain entity identifier"
    )

    external_event_id: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        doc="Provider event identifier (NULL until first successful push)"
    )

    calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Calendar the external event was written to"
    )

    content_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="SHA-256 of the last successfully pushed payload"
    )

    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last successful push or delete"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncStatus.SYNCED.value,
        doc="synced, error or deleted"
    )

    last_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Last error message"
    )

    __table_args__ = (
        Index(
            "ix_calendar_event_syncs_entity",
            "integration_id", "entity_type", "entity_id",
            unique=True,
        ),
        Index("ix_calendar_event_syncs_status", "status"),
    )

    @property
    def has_external_event(self) -> bool:
        """True when an external event currently mirrors the entity."""
        return self.external_event_id is not None and self.status != SyncStatus.DELETED.value

    def __repr__(self) -> str:
        return (
            f"<CalendarEventSync({self.entity_type}:{self.entity_id}, "
            f"status={self.status}, external_event_id={self.external_event_id})>"
        )
