"""
iCalendar feed rendering.

Builds a read-only RFC 5545 calendar of an owner's calendar-visible
entities. Uses the same entity mapping as the push synchronizer, so the
feed and the pushed events never disagree.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event, Timezone

from calsync.config import Settings, get_settings
from calsync.domain import EntitySource, ScheduledEntity
from calsync.integrations.base import EventPayload
from calsync.models.base import utcnow
from calsync.sync.mapper import build_event_payload, is_calendar_visible

logger = logging.getLogger(__name__)

FEED_CONTENT_TYPE = "text/calendar; charset=utf-8"

# Polling hint for subscribing clients
PUBLISHED_TTL = "PT1H"


class FeedRenderer:
    """
    Renders an owner's schedule as an iCalendar document.

    Rendering is read-only. Entities are ordered by start instant, then
    entity type and ID, so unchanged data renders to the same events in
    the same order.
    """

    def __init__(self, entity_source: EntitySource, settings: Optional[Settings] = None):
        self._entity_source = entity_source
        self._settings = settings or get_settings()

    @property
    def tzid(self) -> str:
        return self._settings.timezone

    def event_uid(self, entity: ScheduledEntity) -> str:
        """Stable UID of an entity's feed event."""
        return f"{entity.entity_type}-{entity.entity_id}@{self._settings.feed_uid_domain}"

    async def render(self, owner_id: str, now: Optional[datetime] = None) -> bytes:
        """
        Render the feed of an owner.

        Args:
            owner_id: Owner whose entities are listed
            now: Generation time used for DTSTAMP (defaults to now)

        Returns:
            The serialized VCALENDAR
        """
        stamp = (now or utcnow()).astimezone(timezone.utc)
        entities = await self._entity_source.list_entities(owner_id)

        events = []
        for entity in entities:
            if not is_calendar_visible(entity):
                continue
            payload = build_event_payload(entity, self._settings)
            events.append((entity, payload))

        events.sort(
            key=lambda item: (
                item[1].start.astimezone(timezone.utc),
                item[0].entity_type,
                item[0].entity_id,
            )
        )

        calendar = self._new_calendar()
        for entity, payload in events:
            calendar.add_component(self._to_vevent(entity, payload, stamp))

        logger.debug(f"Rendered feed for owner {owner_id} with {len(events)} events")
        return calendar.to_ical()

    def _new_calendar(self) -> Calendar:
        calendar = Calendar()
        calendar.add("prodid", self._settings.feed_product_id)
        calendar.add("version", "2.0")
        calendar.add("calscale", "GREGORIAN")
        calendar.add("method", "PUBLISH")
        calendar.add("x-wr-calname", self._settings.feed_calendar_name)
        calendar.add("x-wr-timezone", self.tzid)
        calendar.add("x-published-ttl", PUBLISHED_TTL)
        calendar.add_component(Timezone.from_tzid(self.tzid))
        return calendar

    def _to_vevent(
        self,
        entity: ScheduledEntity,
        payload: EventPayload,
        stamp: datetime,
    ) -> Event:
        zone = ZoneInfo(self.tzid)

        event = Event()
        event.add("uid", self.event_uid(entity))
        event.add("dtstamp", stamp)
        event.add("dtstart", payload.start.astimezone(zone))
        event.add("dtend", payload.end.astimezone(zone))
        event.add("summary", payload.title)
        if payload.description:
            event.add("description", payload.description)
        if payload.location:
            event.add("location", payload.location)
        event.add("status", payload.status.upper())
        return event
