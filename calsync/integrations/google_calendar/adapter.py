"""
Mapping between calsync event payloads and Google Calendar API format.

Handles:
- DateTime formatting (RFC 3339 with the event timezone)
- Deterministic event identifiers
- Reminders and calendar list entries
"""

import base64
import hashlib
import uuid

from calsync.integrations.base import CalendarInfo, EventPayload

DEFAULT_REMINDERS = [
    {"method": "email", "minutes": 24 * 60},  # 1 day before
    {"method": "popup", "minutes": 60},  # 1 hour before
]


def external_event_id(integration_id: uuid.UUID, entity_type: str, entity_id: str) -> str:
    """
    Deterministic Google event ID for an entity in an integration.

    Google accepts client-chosen IDs made of base32hex characters (a-v, 0-9).
    Reusing the same ID makes a repeated create fail with 409 instead of
    producing a second event.
    """
    key = f"{integration_id}:{entity_type}:{entity_id}".encode("utf-8")
    digest = hashlib.sha1(key).digest()
    return base64.b32hexencode(digest).decode("ascii").rstrip("=").lower()


class GoogleCalendarAdapter:
    """Maps calsync payloads to Google Calendar API bodies."""

    @staticmethod
    def to_google_event(payload: EventPayload) -> dict:
        """
        Convert an event payload to Google Calendar API format.

        Args:
            payload: Event to write

        Returns:
            Dict suitable for Google Calendar API insert/update
        """
        google_event: dict = {
            "summary": payload.title,
            "start": {
                "dateTime": payload.start.isoformat(),
                "timeZone": payload.timezone,
            },
            "end": {
                "dateTime": payload.end.isoformat(),
                "timeZone": payload.timezone,
            },
            "status": payload.status,
            "reminders": {
                "useDefault": False,
                "overrides": DEFAULT_REMINDERS,
            },
        }

        if payload.description:
            google_event["description"] = payload.description

        if payload.location:
            google_event["location"] = payload.location

        return google_event

    @staticmethod
    def from_calendar_list_entry(entry: dict) -> CalendarInfo:
        """Convert a calendarList item to CalendarInfo."""
        return CalendarInfo(
            id=entry["id"],
            summary=entry.get("summaryOverride") or entry.get("summary", entry["id"]),
            primary=bool(entry.get("primary", False)),
            access_role=entry.get("accessRole", "reader"),
        )
