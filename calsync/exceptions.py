"""
Exceptions for calendar synchronization.

Provides structured error handling with retryable flags and the message
shown to the user for each failure class.
"""

from typing import Optional


class CalendarSyncError(Exception):
    """Base exception for calendar synchronization."""

    retryable: bool = False
    user_message: str = "Calendar synchronization failed"

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class AuthExchangeError(CalendarSyncError):
    """
    Authorization code could not be exchanged for tokens.

    Causes:
    - Code is invalid, expired or was already used
    - Redirect URI mismatch
    """

    user_message = "Could not connect the calendar, please try connecting again"


class CredentialExpiredError(CalendarSyncError):
    """
    Refresh token is dead; the integration has been disabled.

    Requires the user to authorize again. Never retried automatically.
    """

    user_message = "Calendar access expired, please reconnect your calendar"


class AuthExpiredError(CalendarSyncError):
    """Provider kept answering 401 after one refresh-and-retry."""

    user_message = "Calendar access expired, please reconnect your calendar"


class SyncError(CalendarSyncError):
    """A provider write failed; recorded on the ledger and the integration."""

    user_message = "Calendar sync is degraded"


class ProviderError(SyncError):
    """Error response (or no response) from the calendar provider."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, original_error)
        self.status = status


class ProviderUnauthorizedError(ProviderError):
    """Provider answered 401; triggers the single refresh-and-retry."""


class ProviderNotFoundError(ProviderError):
    """
    Event or calendar not found (404 or 410).

    Causes:
    - Event was deleted in the external calendar
    - Calendar ID is invalid
    """


class ProviderConflictError(ProviderError):
    """
    Event identifier already exists (409).

    Happens when a create is repeated after a response was lost.
    """


class ProviderValidationError(ProviderError):
    """
    Provider rejected the request (4xx other than 401/404/409/410/429).

    Causes:
    - Invalid datetime format
    - Missing required fields
    - Insufficient permissions on the calendar
    """


class ProviderTransientError(ProviderError):
    """
    Temporary provider failure (5xx, timeout, network).

    Retryable after exponential backoff.
    """

    retryable = True


class ProviderRateLimitError(ProviderTransientError):
    """
    Rate limit or quota hit (429, or 403 with a rate limit reason).

    Retryable after exponential backoff.
    """

    retryable = True


class FeedAccessError(CalendarSyncError):
    """Feed token does not grant access."""


class InvalidFeedTokenError(FeedAccessError):
    """Feed token is unknown or was revoked."""

    user_message = "This calendar link was revoked"


class ExpiredFeedTokenError(FeedAccessError):
    """Feed token is past its expiry."""

    user_message = "This calendar link has expired, please request a new link"
