"""
Google Calendar provider implementation.

Implements the CalendarProvider protocol using Google Calendar API.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Optional, Sequence

from calsync.integrations.base import CalendarInfo, CalendarProvider, EventPayload
from calsync.integrations.google_calendar.adapter import GoogleCalendarAdapter
from calsync.integrations.google_calendar.client import (
    DEFAULT_TIMEOUT_SECONDS,
    GoogleCalendarClient,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GoogleCalendarClient]


class GoogleCalendarProvider(CalendarProvider):
    """
    CalendarProvider implementation using Google Calendar API.

    Uses per-user OAuth access tokens; a client is built for each call
    so no token outlives the call it was issued for. The Google API
    client is synchronous, so operations run in a thread pool.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        executor: Optional[ThreadPoolExecutor] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        """
        Initialize the provider.

        Args:
            timeout: Request timeout for every API call, in seconds
            executor: Thread pool for running sync API calls (creates default if None)
            client_factory: Builds a client for an access token (for tests)
        """
        self._timeout = timeout
        self._executor = executor or ThreadPoolExecutor(max_workers=4)
        self._client_factory = client_factory or self._default_client
        self._adapter = GoogleCalendarAdapter()

    def _default_client(self, access_token: str) -> GoogleCalendarClient:
        return GoogleCalendarClient(access_token, timeout=self._timeout)

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(func, *args, **kwargs),
        )

    async def _call(self, access_token: str, method: str, *args, **kwargs):
        """Build a client for the token and run one of its methods."""
        def run():
            client = self._client_factory(access_token)
            return getattr(client, method)(*args, **kwargs)

        return await self._run_in_executor(run)

    async def list_calendars(self, access_token: str) -> Sequence[CalendarInfo]:
        """Single attempt per page: callers are interactive requests."""
        entries = await self._call(access_token, "list_all_calendars", backoff=False)
        return [self._adapter.from_calendar_list_entry(entry) for entry in entries]

    async def create_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> str:
        body = self._adapter.to_google_event(payload)
        result = await self._call(
            access_token,
            "insert_event",
            calendar_id=calendar_id,
            event_id=event_id,
            body=body,
        )
        return result.get("id", event_id)

    async def update_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> str:
        body = self._adapter.to_google_event(payload)
        result = await self._call(
            access_token,
            "update_event",
            calendar_id=calendar_id,
            event_id=event_id,
            body=body,
        )
        return result.get("id", event_id)

    async def delete_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
    ) -> bool:
        deleted = await self._call(
            access_token,
            "delete_event",
            calendar_id=calendar_id,
            event_id=event_id,
        )
        if not deleted:
            logger.debug(f"Event {event_id} was already gone from {calendar_id}")
        return deleted

    def close(self) -> None:
        """Shut down the thread pool."""
        self._executor.shutdown(wait=False)
