"""Tests for entity to calendar event mapping."""

from dataclasses import replace
from datetime import date, datetime, time, timedelta

import pytest

from calsync.domain import EntityStatus
from calsync.sync.mapper import (
    FALLBACK_EVENT_DURATION,
    build_description,
    build_event_payload,
    build_location,
    build_title,
    calendar_status,
    content_hash,
    event_times,
    is_calendar_visible,
)


class TestEventTimes:
    """Tests for start/end computation."""

    def test_start_plus_duration_in_local_time(self, make_entity, settings):
        """14:00 for 90 minutes in Prague is 14:00+01:00 to 15:30+01:00."""
        start, end = event_times(make_entity(), settings)

        assert start.isoformat() == "2026-03-14T14:00:00+01:00"
        assert end.isoformat() == "2026-03-14T15:30:00+01:00"

    def test_explicit_end_time_wins_over_duration(self, make_entity, settings):
        entity = make_entity(end_time=time(18, 0), duration_minutes=30)
        _, end = event_times(entity, settings)
        assert end.time() == time(18, 0)

    def test_end_after_midnight(self, make_entity, settings):
        """An end time before the start time falls on the next day."""
        entity = make_entity(start_time=time(22, 0), end_time=time(1, 0))
        start, end = event_times(entity, settings)

        assert end.date() == date(2026, 3, 15)
        assert end - start == timedelta(hours=3)

    def test_default_start_time(self, make_entity, settings):
        entity = make_entity(start_time=None)
        start, _ = event_times(entity, settings)
        assert start.time() == settings.default_start_time

    def test_configured_default_duration(self, make_entity, settings):
        settings = settings.model_copy(update={"default_event_duration_minutes": 45})
        entity = make_entity(duration_minutes=None)
        start, end = event_times(entity, settings)
        assert end - start == timedelta(minutes=45)

    def test_fallback_duration(self, make_entity, settings):
        entity = make_entity(duration_minutes=None)
        start, end = event_times(entity, settings)
        assert end - start == FALLBACK_EVENT_DURATION

    def test_entity_timezone_overrides_default(self, make_entity, settings):
        entity = make_entity(timezone="America/New_York")
        start, _ = event_times(entity, settings)
        assert start.utcoffset() == timedelta(hours=-4)


class TestTextFields:
    """Tests for title, description and location."""

    def test_location_joins_parts(self, make_entity):
        assert build_location(make_entity()) == (
            "Villa Richter, Staré zámecké schody 6, 118 00 Praha 1"
        )

    def test_location_city_without_postal_code(self, make_entity):
        entity = make_entity(venue=None, street=None, postal_code=None)
        assert build_location(entity) == "Praha 1"

    def test_no_location(self, make_entity):
        entity = make_entity(venue=None, street=None, city=None, postal_code=None)
        assert build_location(entity) is None

    def test_title_with_reference(self, make_entity):
        assert build_title(make_entity(reference="REF-42")) == "Wedding shoot - REF-42"

    def test_blank_title(self, make_entity):
        assert build_title(make_entity(title="   ")) == "Untitled"

    def test_description_lines(self, make_entity):
        entity = make_entity(
            notes="Bring the long lens\n",
            reference="REF-42",
            url="https://studio.example.com/shoots/1",
        )
        assert build_description(entity) == (
            "Bring the long lens\n"
            "Reference: REF-42\n"
            "Details: https://studio.example.com/shoots/1"
        )

    def test_empty_description(self, make_entity):
        assert build_description(make_entity()) is None


class TestStatus:
    """Tests for calendar visibility and status."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            (EntityStatus.PENDING, "tentative"),
            (EntityStatus.TENTATIVE, "tentative"),
            (EntityStatus.CONFIRMED, "confirmed"),
            (EntityStatus.COMPLETED, "confirmed"),
        ],
    )
    def test_visible_statuses(self, make_entity, status, expected):
        entity = make_entity(status=status)
        assert is_calendar_visible(entity) is True
        assert calendar_status(entity) == expected

    @pytest.mark.parametrize(
        "status", [EntityStatus.DRAFT, EntityStatus.CANCELLED, EntityStatus.DELETED]
    )
    def test_invisible_statuses(self, make_entity, status):
        entity = make_entity(status=status)
        assert is_calendar_visible(entity) is False
        with pytest.raises(ValueError):
            calendar_status(entity)

    def test_plain_string_status(self, make_entity):
        """Host applications may pass status values as strings."""
        assert is_calendar_visible(make_entity(status="confirmed")) is True


class TestContentHash:
    """Tests for content_hash."""

    def test_stable(self, make_entity, settings):
        payload = build_event_payload(make_entity(), settings)
        assert content_hash(payload) == content_hash(build_event_payload(make_entity(), settings))

    def test_changes_with_visible_fields(self, make_entity, settings):
        base = content_hash(build_event_payload(make_entity(), settings))

        assert content_hash(build_event_payload(make_entity(title="Other"), settings)) != base
        assert content_hash(build_event_payload(make_entity(start_time=time(15, 0)), settings)) != base
        assert content_hash(build_event_payload(make_entity(status=EntityStatus.PENDING), settings)) != base
        assert content_hash(build_event_payload(make_entity(notes="Note"), settings)) != base

    def test_timezone_label_is_not_a_change(self, make_entity, settings):
        """The same instant under another timezone label hashes the same."""
        prague = build_event_payload(make_entity(), settings)
        utc = build_event_payload(make_entity(start_time=time(13, 0), timezone="UTC"), settings)

        assert utc.timezone == "UTC"
        assert utc.start == prague.start
        assert content_hash(utc) == content_hash(prague)

    def test_payload_is_immutable(self, make_entity, settings):
        payload = build_event_payload(make_entity(), settings)
        changed = replace(payload, start=payload.start + timedelta(minutes=1))

        assert isinstance(payload.start, datetime)
        assert content_hash(changed) != content_hash(payload)
