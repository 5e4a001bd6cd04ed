"""
Domain collaborator interface.

The synchronizer only reads domain entities. The host application provides
an EntitySource and sends change notifications; it never hands out write
access to its entities.
"""

from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Optional, Protocol, Sequence


class EntityStatus(str, Enum):
    """Lifecycle status of a schedulable entity."""

    DRAFT = "draft"
    PENDING = "pending"
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DELETED = "deleted"


class EntityChange(str, Enum):
    """Kind of domain mutation that triggers a sync."""

    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    DELETED = "deleted"


@dataclass(frozen=True)
class EntityRef:
    """Identity of a domain entity and its owner."""

    owner_id: str
    entity_type: str
    entity_id: str


@dataclass(frozen=True)
class ScheduledEntity:
    """
    Read-only view of a bookable entity (session, shoot, event).

    Times are wall-clock values in ``timezone``; when no timezone is given
    the configured default applies.
    """

    owner_id: str
    entity_type: str
    entity_id: str
    title: str
    starts_on: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    duration_minutes: Optional[int] = None
    timezone: Optional[str] = None
    status: EntityStatus = EntityStatus.CONFIRMED
    venue: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    url: Optional[str] = None

    @property
    def ref(self) -> EntityRef:
        """Identity of this entity."""
        return EntityRef(self.owner_id, self.entity_type, self.entity_id)


class EntitySource(Protocol):
    """Read accessor for domain entities, implemented by the host application."""

    async def get_entity(self, entity_type: str, entity_id: str) -> Optional[ScheduledEntity]:
        """Return the entity, or None if it no longer exists."""
        ...

    async def list_entities(self, owner_id: str) -> Sequence[ScheduledEntity]:
        """Return every entity owned by ``owner_id``, in any status."""
        ...
