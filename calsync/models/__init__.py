"""
SQLAlchemy models for calsync.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

from calsync.models.base import Base, BaseModel, GUID, as_utc, utcnow
from calsync.models.integrations import CalendarIntegration, DEFAULT_CALENDAR_ID
from calsync.models.sync import CalendarEventSync, SyncStatus
from calsync.models.feed import CalendarFeedToken

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "as_utc",
    "utcnow",
    # Credential store
    "CalendarIntegration",
    "DEFAULT_CALENDAR_ID",
    # Sync ledger
    "CalendarEventSync",
    "SyncStatus",
    # Feed
    "CalendarFeedToken",
]
