"""
External calendar integrations for calsync.

Provides the provider abstraction the synchronizer writes through.
"""

from calsync.integrations.base import CalendarInfo, CalendarProvider, EventPayload

__all__ = ["CalendarInfo", "CalendarProvider", "EventPayload"]
