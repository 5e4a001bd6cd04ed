"""
Google Calendar API client wrapper with retry and error handling.

Provides a clean interface over the Google Calendar API v3 for a single
access token. Token refresh is not done here; a 401 surfaces as
ProviderUnauthorizedError and is handled by the synchronizer.
"""

import logging
from typing import Optional

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from calsync.exceptions import (
    CalendarSyncError,
    ProviderConflictError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderTransientError,
    ProviderUnauthorizedError,
    ProviderValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

# Errors raised by httplib2 when no HTTP response arrived
TRANSPORT_ERRORS = (TimeoutError, OSError, httplib2.HttpLib2Error)


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exception, CalendarSyncError):
        return exception.retryable
    return False


def _handle_http_error(error: HttpError) -> None:
    """Convert HttpError to the matching ProviderError."""
    status = error.resp.status
    message = str(error)

    if status == 401:
        raise ProviderUnauthorizedError(
            "Authentication failed - access token was rejected",
            original_error=error,
            status=status,
        )
    elif status == 403:
        if "quota" in message.lower() or "rate limit" in message.lower():
            raise ProviderRateLimitError(
                "API quota exceeded",
                original_error=error,
                status=status,
            )
        raise ProviderValidationError(
            "Access denied - check calendar sharing permissions",
            original_error=error,
            status=status,
        )
    elif status in (404, 410):
        raise ProviderNotFoundError(
            "Event or calendar not found",
            original_error=error,
            status=status,
        )
    elif status == 409:
        raise ProviderConflictError(
            "Event with this identifier already exists",
            original_error=error,
            status=status,
        )
    elif status == 429:
        raise ProviderRateLimitError(
            "Rate limit exceeded - too many requests",
            original_error=error,
            status=status,
        )
    elif status >= 500:
        raise ProviderTransientError(
            f"Google Calendar API unavailable ({status})",
            original_error=error,
            status=status,
        )
    else:
        raise ProviderValidationError(
            f"Google Calendar API error ({status}): {message}",
            original_error=error,
            status=status,
        )


def _handle_transport_error(error: Exception) -> None:
    raise ProviderTransientError(
        f"Google Calendar API unreachable: {error}",
        original_error=error,
    )


_with_backoff = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_retryable_error),
    reraise=True,
)


class GoogleCalendarClient:
    """
    Wrapper around Google Calendar API v3.

    Provides:
    - Automatic retry with exponential backoff on transient errors
    - Bounded request timeouts
    - Consistent error handling
    - Pagination handling for list operations
    """

    def __init__(self, access_token: str, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        """
        Initialize the client.

        Args:
            access_token: OAuth access token valid for this call
            timeout: Socket timeout for each HTTP request, in seconds
        """
        # No refresh token: google-auth must never refresh on its own
        credentials = Credentials(token=access_token)
        http = AuthorizedHttp(
            credentials,
            http=httplib2.Http(timeout=timeout),
            refresh_status_codes=(),
        )
        self._service: Resource = build(
            "calendar",
            "v3",
            http=http,
            cache_discovery=False,
        )

    @property
    def service(self) -> Resource:
        """Get the underlying Google API service."""
        return self._service

    def _calendar_page(self, page_token: Optional[str] = None) -> dict:
        try:
            return self._service.calendarList().list(pageToken=page_token).execute()
        except HttpError as e:
            _handle_http_error(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    @_with_backoff
    def list_calendars(self, page_token: Optional[str] = None) -> dict:
        """
        List one page of the account's calendar list.

        Returns:
            API response with items and nextPageToken
        """
        return self._calendar_page(page_token)

    def list_all_calendars(self, backoff: bool = True) -> list[dict]:
        """
        List all calendars with automatic pagination.

        Args:
            backoff: Retry transient errors; pass False when a user is
                waiting for the answer
        """
        fetch_page = self.list_calendars if backoff else self._calendar_page
        calendars = []
        page_token = None

        while True:
            response = fetch_page(page_token=page_token)
            calendars.extend(response.get("items", []))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(calendars)} calendars")
        return calendars

    @_with_backoff
    def insert_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """
        Create a new event with a client-chosen ID.

        Args:
            calendar_id: Calendar to create event in
            event_id: Event ID to assign
            body: Event data in Google Calendar format

        Returns:
            Created event
        """
        try:
            result = self._service.events().insert(
                calendarId=calendar_id,
                body={**body, "id": event_id},
            ).execute()
            logger.info(f"Created event {result.get('id')} in {calendar_id}")
            return result
        except HttpError as e:
            _handle_http_error(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    @_with_backoff
    def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """
        Replace an existing event.

        Args:
            calendar_id: Calendar containing the event
            event_id: Event to update
            body: Full event data

        Returns:
            Updated event
        """
        try:
            result = self._service.events().update(
                calendarId=calendar_id,
                eventId=event_id,
                body=body,
            ).execute()
            logger.info(f"Updated event {event_id} in {calendar_id}")
            return result
        except HttpError as e:
            _handle_http_error(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    @_with_backoff
    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        """
        Delete an event.

        Args:
            calendar_id: Calendar containing the event
            event_id: Event to delete

        Returns:
            True if deleted, False if the event was already gone
        """
        try:
            self._service.events().delete(
                calendarId=calendar_id,
                eventId=event_id,
            ).execute()
            logger.info(f"Deleted event {event_id} from {calendar_id}")
            return True
        except HttpError as e:
            if e.resp.status in (404, 410):
                # Already deleted - consider success
                logger.warning(f"Event {event_id} already deleted")
                return False
            _handle_http_error(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)
