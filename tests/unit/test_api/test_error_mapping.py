"""Tests for exception-to-HTTP mapping and request path redaction."""

import pytest

from calsync.api.main import error_type_for, status_code_for
from calsync.api.middleware import redact_path
from calsync.exceptions import (
    AuthExchangeError,
    AuthExpiredError,
    CalendarSyncError,
    CredentialExpiredError,
    ExpiredFeedTokenError,
    InvalidFeedTokenError,
    ProviderConflictError,
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderTransientError,
    ProviderValidationError,
    SyncError,
)


class TestStatusCodeFor:
    """Tests for status_code_for."""

    @pytest.mark.parametrize(
        "exc, expected",
        [
            (InvalidFeedTokenError("unknown"), 404),
            (ExpiredFeedTokenError("expired"), 410),
            (AuthExchangeError("invalid_grant"), 400),
            (CredentialExpiredError("dead refresh token"), 401),
            (AuthExpiredError("401 after refresh"), 401),
            (ProviderNotFoundError("calendar missing", status=404), 404),
            (ProviderValidationError("bad request", status=400), 422),
            (ProviderTransientError("timeout"), 503),
            (ProviderRateLimitError("quota", status=429), 503),
            (ProviderConflictError("exists", status=409), 502),
            (ProviderError("teapot", status=418), 502),
        ],
    )
    def test_mapping(self, exc, expected):
        assert status_code_for(exc) == expected

    def test_unmapped_errors_are_internal(self):
        assert status_code_for(SyncError("write failed")) == 500
        assert status_code_for(CalendarSyncError("boom")) == 500


class TestErrorTypeFor:
    """Tests for error_type_for."""

    def test_snake_case_without_suffix(self):
        assert error_type_for(InvalidFeedTokenError("x")) == "invalid_feed_token"
        assert error_type_for(ProviderTransientError("x")) == "provider_transient"

    def test_retryable_flag(self):
        """Only transient provider failures are worth retrying."""
        assert ProviderRateLimitError("x").retryable is True
        assert CredentialExpiredError("x").retryable is False


class TestRedactPath:
    """Feed tokens never reach the request log."""

    def test_feed_path(self):
        assert redact_path("/feeds/abcdefghijkl.ics") == "/feeds/abcdefgh….ics"

    def test_token_management_path(self):
        assert redact_path("/feeds/tokens/abcdefghijkl") == "/feeds/tokens/abcdefgh…"

    def test_collection_path_unchanged(self):
        assert redact_path("/feeds/tokens") == "/feeds/tokens"

    def test_other_paths_unchanged(self):
        assert redact_path("/auth/status") == "/auth/status"
