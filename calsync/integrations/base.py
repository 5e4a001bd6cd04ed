"""
Calendar provider protocol and base types.

Defines the interface the synchronizer uses to write events into an
external calendar (Google Calendar today).
"""

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class EventPayload:
    """
    Provider-agnostic calendar event.

    Built from a domain entity by calsync.sync.mapper; start and end are
    timezone-aware.
    """

    title: str
    start: datetime
    end: datetime
    timezone: str
    status: str
    description: Optional[str] = None
    location: Optional[str] = None


@dataclass
class CalendarInfo:
    """External calendar the user can choose as sync target."""

    id: str
    summary: str
    primary: bool = False
    access_role: str = "owner"

    @property
    def writable(self) -> bool:
        return self.access_role in ("owner", "writer")


class CalendarProvider(Protocol):
    """
    Protocol for push calendar providers.

    Implementations:
    - GoogleCalendarProvider: Uses Google Calendar API v3

    Every call receives the access token explicitly; providers keep no
    credentials. Errors are raised as calsync ProviderError subclasses.
    """

    @abstractmethod
    async def list_calendars(self, access_token: str) -> Sequence[CalendarInfo]:
        """List calendars the account can see."""
        ...

    @abstractmethod
    async def create_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> str:
        """
        Create an event with a client-chosen identifier.

        Returns:
            The external event identifier

        Raises:
            ProviderConflictError: If an event with ``event_id`` already exists
        """
        ...

    @abstractmethod
    async def update_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> str:
        """
        Replace an existing event.

        Raises:
            ProviderNotFoundError: If the event no longer exists
        """
        ...

    @abstractmethod
    async def delete_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
    ) -> bool:
        """
        Delete an event.

        Returns:
            True if deleted, False if it was already gone (404/410)
        """
        ...
