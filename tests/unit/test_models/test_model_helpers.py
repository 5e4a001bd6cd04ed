"""
Tests for model helpers: timestamps, token expiry and ledger state.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from calsync.models import (
    GUID,
    CalendarEventSync,
    CalendarFeedToken,
    CalendarIntegration,
    DEFAULT_CALENDAR_ID,
    SyncStatus,
    as_utc,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestGuid:
    """Tests for the GUID column type."""

    VALUE = uuid.UUID("0f8fad5b-d9cb-469f-a165-70867728950e")

    def test_sqlite_stores_hex(self):
        assert GUID().process_bind_param(self.VALUE, sqlite.dialect()) == self.VALUE.hex

    def test_postgresql_stores_canonical_string(self):
        bound = GUID().process_bind_param(self.VALUE, postgresql.dialect())
        assert bound == "0f8fad5b-d9cb-469f-a165-70867728950e"

    def test_string_input_is_accepted(self):
        bound = GUID().process_bind_param(str(self.VALUE), sqlite.dialect())
        assert bound == self.VALUE.hex

    @pytest.mark.parametrize("stored", [VALUE.hex, str(VALUE), VALUE])
    def test_result_is_uuid(self, stored):
        assert GUID().process_result_value(stored, sqlite.dialect()) == self.VALUE

    def test_none_passes_through(self):
        assert GUID().process_bind_param(None, sqlite.dialect()) is None
        assert GUID().process_result_value(None, sqlite.dialect()) is None


class TestAsUtc:
    """Tests for as_utc normalization."""

    def test_none(self):
        assert as_utc(None) is None

    def test_naive_is_treated_as_utc(self):
        """SQLite returns naive values; they were written in UTC."""
        value = as_utc(datetime(2026, 3, 1, 12, 0))
        assert value == NOW
        assert value.tzinfo == timezone.utc

    def test_aware_is_converted(self):
        prague = timezone(timedelta(hours=1))
        value = as_utc(datetime(2026, 3, 1, 13, 0, tzinfo=prague))
        assert value == NOW
        assert value.utcoffset() == timedelta(0)


class TestIntegrationNeedsRefresh:
    """Tests for CalendarIntegration.needs_refresh."""

    def make(self, expiry):
        return CalendarIntegration(owner_id="owner-1", access_token="token", token_expiry=expiry)

    def test_fresh_token(self):
        integration = self.make(NOW + timedelta(hours=1))
        assert integration.needs_refresh(timedelta(minutes=5), now=NOW) is False

    def test_within_buffer(self):
        """A token expiring inside the buffer is refreshed early."""
        integration = self.make(NOW + timedelta(minutes=4))
        assert integration.needs_refresh(timedelta(minutes=5), now=NOW) is True

    def test_expired(self):
        integration = self.make(NOW - timedelta(seconds=1))
        assert integration.needs_refresh(timedelta(0), now=NOW) is True

    def test_naive_expiry_from_sqlite(self):
        integration = self.make(datetime(2026, 3, 1, 12, 30))
        assert integration.needs_refresh(timedelta(minutes=5), now=NOW) is False

    def test_unknown_expiry(self):
        assert self.make(None).needs_refresh(timedelta(minutes=5), now=NOW) is False

    def test_target_calendar_defaults_to_primary(self):
        integration = self.make(None)
        assert integration.target_calendar_id == DEFAULT_CALENDAR_ID

        integration.calendar_id = "team@group.calendar.google.com"
        assert integration.target_calendar_id == "team@group.calendar.google.com"


class TestFeedTokenExpiry:
    """Tests for CalendarFeedToken.is_expired."""

    def test_no_expiry(self):
        token = CalendarFeedToken(owner_id="o", token_hash="h", token_prefix="p")
        assert token.is_expired(NOW) is False

    def test_expired_at_boundary(self):
        token = CalendarFeedToken(owner_id="o", token_hash="h", token_prefix="p", expires_at=NOW)
        assert token.is_expired(NOW) is True

    def test_not_yet_expired(self):
        token = CalendarFeedToken(
            owner_id="o",
            token_hash="h",
            token_prefix="p",
            expires_at=NOW + timedelta(days=1),
        )
        assert token.is_expired(NOW) is False


class TestLedgerRowState:
    """Tests for CalendarEventSync.has_external_event."""

    def make(self, external_event_id, status):
        return CalendarEventSync(
            integration_id=uuid.uuid4(),
            entity_type="shoot",
            entity_id="1",
            external_event_id=external_event_id,
            status=status,
        )

    def test_synced_row(self):
        assert self.make("abc", SyncStatus.SYNCED.value).has_external_event is True

    def test_error_row_keeps_event(self):
        """A failed update still has its event."""
        assert self.make("abc", SyncStatus.ERROR.value).has_external_event is True

    def test_failed_create(self):
        assert self.make(None, SyncStatus.ERROR.value).has_external_event is False

    def test_deleted_row(self):
        assert self.make(None, SyncStatus.DELETED.value).has_external_event is False
