"""
Pydantic request and response models for the calsync API.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from calsync.domain import EntityChange


# =============================================================================
# Request Models
# =============================================================================


class SyncNotification(BaseModel):
    """Domain change notification sent by the host application."""

    owner_id: str = Field(..., min_length=1, description="Owner of the entity")
    entity_type: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Domain entity type",
        examples=["shoot"],
    )
    entity_id: str = Field(..., min_length=1, max_length=255, description="Domain entity ID")
    change: EntityChange = Field(..., description="Kind of change")


class IntegrationSettingsRequest(BaseModel):
    """Change the target calendar or the sync toggle of an integration."""

    owner_id: str = Field(..., min_length=1)
    calendar_id: Optional[str] = Field(
        None,
        description="Calendar to write events to (None keeps the current one)",
    )
    sync_enabled: Optional[bool] = Field(
        None,
        description="Enable or pause sync (None keeps the current value)",
    )

    @field_validator("calendar_id")
    @classmethod
    def validate_calendar_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Calendar ID cannot be empty")
        return v.strip() if v else v


class CreateFeedTokenRequest(BaseModel):
    """Request a new feed subscription link."""

    owner_id: str = Field(..., min_length=1)
    ttl_days: Optional[int] = Field(
        None,
        gt=0,
        le=3650,
        description="Lifetime in days (defaults to the configured TTL)",
    )
    label: Optional[str] = Field(None, max_length=255)


# =============================================================================
# Response Models
# =============================================================================


class AuthLoginResponse(BaseModel):
    """Response with OAuth authorization URL."""

    authorization_url: str
    state: str


class AuthCallbackResponse(BaseModel):
    """Response after successful OAuth callback."""

    success: bool
    email: Optional[str] = None
    message: str


class AuthStatusResponse(BaseModel):
    """Connection status of an owner's calendar."""

    connected: bool
    provider: str = "google"
    email: Optional[str] = None
    calendar_id: Optional[str] = None
    sync_enabled: bool = False
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = Field(
        None,
        description="Last sync failure, shown as a dismissible degradation notice",
    )


class CalendarResponse(BaseModel):
    """External calendar the owner can choose."""

    id: str
    summary: str
    primary: bool = False
    writable: bool = True


class CalendarListResponse(BaseModel):
    calendars: list[CalendarResponse]


class ReconcileAcceptedResponse(BaseModel):
    """Reconcile was scheduled; results go to the log and the ledger."""

    accepted: bool = True
    already_running: bool = False


class NotifyAcceptedResponse(BaseModel):
    accepted: bool = True
    entity_type: str
    entity_id: str
    change: EntityChange


class FeedTokenResponse(BaseModel):
    """Stored feed token (never contains the token itself)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    token_prefix: str
    label: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreatedFeedTokenResponse(FeedTokenResponse):
    """Newly created feed token; the only response carrying the token."""

    token: str
    feed_url: str


class FeedTokenListResponse(BaseModel):
    tokens: list[FeedTokenResponse]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="healthy or unhealthy")
    version: str
    database_connected: bool
    google_oauth_configured: bool
    pending_sync_tasks: int = 0


class ErrorResponse(BaseModel):
    """Error response body."""

    error_type: str
    message: str
    retryable: bool = False
