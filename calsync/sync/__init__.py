"""
Event synchronization for calsync.

Maps domain entities to calendar events and mirrors them into push
calendar providers, tracking every external event in the sync ledger.
"""

from calsync.sync.mapper import (
    FALLBACK_EVENT_DURATION,
    build_event_payload,
    content_hash,
    is_calendar_visible,
)
from calsync.sync.synchronizer import EventSynchronizer, SyncAction, SyncResult
from calsync.sync.dispatcher import SyncDispatcher

__all__ = [
    # Mapping
    "FALLBACK_EVENT_DURATION",
    "build_event_payload",
    "content_hash",
    "is_calendar_visible",
    # Synchronizer
    "EventSynchronizer",
    "SyncAction",
    "SyncResult",
    "SyncDispatcher",
]
