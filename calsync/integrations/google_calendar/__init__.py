"""
Google Calendar integration for calsync.

Pushes scheduled entities into users' Google calendars.
"""

from calsync.integrations.google_calendar.adapter import (
    GoogleCalendarAdapter,
    external_event_id,
)
from calsync.integrations.google_calendar.client import GoogleCalendarClient
from calsync.integrations.google_calendar.provider import GoogleCalendarProvider

__all__ = [
    "GoogleCalendarAdapter",
    "GoogleCalendarClient",
    "GoogleCalendarProvider",
    "external_event_id",
]
