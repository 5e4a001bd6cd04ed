"""
Mapping from domain entities to provider-agnostic calendar events.

The same mapping feeds the push synchronizer and the iCalendar feed, so
both views always show the same title, description, location and times.
Everything here is pure and deterministic.
"""

import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from calsync.config import Settings
from calsync.domain import EntityStatus, ScheduledEntity
from calsync.integrations.base import EventPayload

# Last-resort duration for entities with no end time, no duration and no
# configured default duration.
FALLBACK_EVENT_DURATION = timedelta(minutes=120)

STATUS_CONFIRMED = "confirmed"
STATUS_TENTATIVE = "tentative"

# Entity status → calendar status. Statuses missing here are not shown.
CALENDAR_STATUS = {
    EntityStatus.PENDING: STATUS_TENTATIVE,
    EntityStatus.TENTATIVE: STATUS_TENTATIVE,
    EntityStatus.CONFIRMED: STATUS_CONFIRMED,
    EntityStatus.COMPLETED: STATUS_CONFIRMED,
}


def is_calendar_visible(entity: ScheduledEntity) -> bool:
    """Check if the entity should have a calendar event at all."""
    return EntityStatus(entity.status) in CALENDAR_STATUS


def calendar_status(entity: ScheduledEntity) -> str:
    """Calendar status of a visible entity (draft/cancelled map to nothing)."""
    try:
        return CALENDAR_STATUS[EntityStatus(entity.status)]
    except KeyError:
        raise ValueError(f"Entity status {entity.status!r} is not calendar-visible")


def event_times(entity: ScheduledEntity, settings: Settings) -> tuple[datetime, datetime]:
    """
    Compute aware start and end datetimes for an entity.

    Start is the entity date at its start time (or the configured default
    start time). End is the explicit end time, else start plus the entity
    duration, the configured default duration or FALLBACK_EVENT_DURATION.
    Arithmetic is on wall-clock time in the entity's timezone.
    """
    zone = ZoneInfo(entity.timezone or settings.timezone)
    start_time = entity.start_time or settings.default_start_time
    start = datetime.combine(entity.starts_on, start_time, tzinfo=zone)

    if entity.end_time is not None:
        end = datetime.combine(entity.starts_on, entity.end_time, tzinfo=zone)
        if end <= start:
            # Ends after midnight
            end += timedelta(days=1)
    elif entity.duration_minutes:
        end = start + timedelta(minutes=entity.duration_minutes)
    elif settings.default_event_duration_minutes:
        end = start + timedelta(minutes=settings.default_event_duration_minutes)
    else:
        end = start + FALLBACK_EVENT_DURATION

    return start, end


def build_location(entity: ScheduledEntity) -> Optional[str]:
    """Join venue, street and 'postal code city', skipping empty parts."""
    parts = []
    if entity.venue:
        parts.append(entity.venue)
    if entity.street:
        parts.append(entity.street)
    if entity.city:
        parts.append(f"{entity.postal_code or ''} {entity.city}".strip())
    return ", ".join(parts) or None


def build_title(entity: ScheduledEntity) -> str:
    title = entity.title.strip() or "Untitled"
    if entity.reference:
        return f"{title} - {entity.reference}"
    return title


def build_description(entity: ScheduledEntity) -> Optional[str]:
    lines = []
    if entity.notes:
        lines.append(entity.notes.strip())
    if entity.reference:
        lines.append(f"Reference: {entity.reference}")
    if entity.url:
        lines.append(f"Details: {entity.url}")
    return "\n".join(lines) or None


def build_event_payload(entity: ScheduledEntity, settings: Settings) -> EventPayload:
    """
    Map a domain entity to a calendar event.

    Args:
        entity: Calendar-visible domain entity
        settings: Provides default timezone, start time and duration

    Returns:
        EventPayload for the entity
    """
    start, end = event_times(entity, settings)
    return EventPayload(
        title=build_title(entity),
        start=start,
        end=end,
        timezone=entity.timezone or settings.timezone,
        status=calendar_status(entity),
        description=build_description(entity),
        location=build_location(entity),
    )


def content_hash(payload: EventPayload) -> str:
    """
    Digest of the fields that make an event different to a calendar user.

    Start and end are hashed as UTC instants; the timezone label is display
    only and left out, so relabelling the same instant is not a change.
    """
    canonical = {
        "title": payload.title,
        "description": payload.description,
        "location": payload.location,
        "status": payload.status,
        "start": payload.start.astimezone(timezone.utc).isoformat(),
        "end": payload.end.astimezone(timezone.utc).isoformat(),
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
