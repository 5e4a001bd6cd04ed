"""Tests for Google Calendar payload mapping and event identifiers."""

import re
import uuid
from datetime import datetime
from zoneinfo import ZoneInfo

from calsync.integrations.base import EventPayload
from calsync.integrations.google_calendar.adapter import (
    DEFAULT_REMINDERS,
    GoogleCalendarAdapter,
    external_event_id,
)

PRAGUE = ZoneInfo("Europe/Prague")


def make_payload(**overrides) -> EventPayload:
    values = dict(
        title="Wedding shoot",
        start=datetime(2026, 3, 14, 14, 0, tzinfo=PRAGUE),
        end=datetime(2026, 3, 14, 15, 30, tzinfo=PRAGUE),
        timezone="Europe/Prague",
        status="confirmed",
    )
    values.update(overrides)
    return EventPayload(**values)


class TestToGoogleEvent:
    """Tests for GoogleCalendarAdapter.to_google_event."""

    def test_basic_event(self):
        """Should map times as RFC 3339 with the event timezone."""
        body = GoogleCalendarAdapter.to_google_event(make_payload())

        assert body["summary"] == "Wedding shoot"
        assert body["start"] == {
            "dateTime": "2026-03-14T14:00:00+01:00",
            "timeZone": "Europe/Prague",
        }
        assert body["end"]["dateTime"] == "2026-03-14T15:30:00+01:00"
        assert body["status"] == "confirmed"
        assert "description" not in body
        assert "location" not in body

    def test_reminders(self):
        """Should override the calendar's default reminders."""
        body = GoogleCalendarAdapter.to_google_event(make_payload())
        assert body["reminders"] == {"useDefault": False, "overrides": DEFAULT_REMINDERS}

    def test_optional_fields(self):
        body = GoogleCalendarAdapter.to_google_event(
            make_payload(description="Bring lenses", location="Villa Richter", status="tentative")
        )

        assert body["description"] == "Bring lenses"
        assert body["location"] == "Villa Richter"
        assert body["status"] == "tentative"


class TestExternalEventId:
    """Tests for deterministic event identifiers."""

    def test_valid_google_event_id(self):
        """Google requires base32hex characters, 5 to 1024 long."""
        event_id = external_event_id(uuid.uuid4(), "shoot", "42")
        assert re.fullmatch(r"[a-v0-9]{5,1024}", event_id)

    def test_deterministic(self):
        integration_id = uuid.uuid4()
        assert external_event_id(integration_id, "shoot", "42") == external_event_id(
            integration_id, "shoot", "42"
        )

    def test_distinct_per_integration_and_entity(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        ids = {
            external_event_id(a, "shoot", "42"),
            external_event_id(b, "shoot", "42"),
            external_event_id(a, "session", "42"),
            external_event_id(a, "shoot", "43"),
        }
        assert len(ids) == 4


class TestFromCalendarListEntry:
    """Tests for GoogleCalendarAdapter.from_calendar_list_entry."""

    def test_primary_calendar(self):
        info = GoogleCalendarAdapter.from_calendar_list_entry(
            {"id": "me@example.com", "summary": "me@example.com", "primary": True, "accessRole": "owner"}
        )
        assert info.primary is True
        assert info.writable is True

    def test_summary_override_and_read_only(self):
        info = GoogleCalendarAdapter.from_calendar_list_entry(
            {
                "id": "holidays",
                "summary": "Holidays in Czechia",
                "summaryOverride": "Holidays",
                "accessRole": "reader",
            }
        )
        assert info.summary == "Holidays"
        assert info.primary is False
        assert info.writable is False
