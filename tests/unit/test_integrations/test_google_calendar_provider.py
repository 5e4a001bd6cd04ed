"""Tests for GoogleCalendarProvider."""

from datetime import datetime
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from calsync.exceptions import ProviderConflictError
from calsync.integrations.base import EventPayload
from calsync.integrations.google_calendar.provider import GoogleCalendarProvider

PRAGUE = ZoneInfo("Europe/Prague")

PAYLOAD = EventPayload(
    title="Wedding shoot",
    start=datetime(2026, 3, 14, 14, 0, tzinfo=PRAGUE),
    end=datetime(2026, 3, 14, 15, 30, tzinfo=PRAGUE),
    timezone="Europe/Prague",
    status="confirmed",
)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def tokens_seen():
    return []


@pytest.fixture
def google_provider(client, tokens_seen):
    def factory(access_token):
        tokens_seen.append(access_token)
        return client

    provider = GoogleCalendarProvider(client_factory=factory)
    yield provider
    provider.close()


class TestGoogleCalendarProvider:
    """Tests for the async provider over the sync client."""

    async def test_create_event(self, google_provider, client, tokens_seen):
        """Should build a client for the given token and insert the event."""
        client.insert_event.return_value = {"id": "abc123"}

        event_id = await google_provider.create_event("ya29.token", "primary", "abc123", PAYLOAD)

        assert event_id == "abc123"
        assert tokens_seen == ["ya29.token"]
        kwargs = client.insert_event.call_args.kwargs
        assert kwargs["calendar_id"] == "primary"
        assert kwargs["event_id"] == "abc123"
        assert kwargs["body"]["summary"] == "Wedding shoot"

    async def test_update_event(self, google_provider, client):
        client.update_event.return_value = {"id": "abc123"}

        assert await google_provider.update_event("t", "primary", "abc123", PAYLOAD) == "abc123"

    async def test_delete_event(self, google_provider, client):
        client.delete_event.return_value = False

        assert await google_provider.delete_event("t", "primary", "abc123") is False

    async def test_list_calendars(self, google_provider, client):
        client.list_all_calendars.return_value = [
            {"id": "primary", "summary": "Main", "primary": True, "accessRole": "owner"},
            {"id": "holidays", "summary": "Holidays", "accessRole": "reader"},
        ]

        calendars = await google_provider.list_calendars("t")

        assert [(c.id, c.writable) for c in calendars] == [("primary", True), ("holidays", False)]
        client.list_all_calendars.assert_called_once_with(backoff=False)

    async def test_errors_propagate(self, google_provider, client):
        """Client errors reach the caller unchanged."""
        client.insert_event.side_effect = ProviderConflictError("exists", status=409)

        with pytest.raises(ProviderConflictError):
            await google_provider.create_event("t", "primary", "abc123", PAYLOAD)

    async def test_fresh_client_per_call(self, google_provider, client, tokens_seen):
        """No token outlives the call it was issued for."""
        client.delete_event.return_value = True

        await google_provider.delete_event("first", "primary", "a")
        await google_provider.delete_event("second", "primary", "b")

        assert tokens_seen == ["first", "second"]
