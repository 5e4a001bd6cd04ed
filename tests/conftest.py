"""
Pytest configuration and fixtures for calsync tests.

Provides an async SQLite database per test, in-memory stand-ins for the
host application's entity source, the OAuth flow and the calendar
provider, and sample entities.
"""

import asyncio
from datetime import date, time
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calsync.auth.google_oauth import GoogleUserInfo, OAuthTokens
from calsync.auth.token_manager import TokenLifecycleManager
from calsync.auth.token_storage import save_integration
from calsync.config import Settings
from calsync.database import build_engine, build_session_factory, init_db
from calsync.domain import EntityStatus, ScheduledEntity
from calsync.exceptions import ProviderConflictError, ProviderNotFoundError
from calsync.integrations.base import CalendarInfo, EventPayload
from calsync.models.integrations import CalendarIntegration
from calsync.sync.synchronizer import EventSynchronizer


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory bound to a fresh SQLite database file.

    A file (not :memory:) so that every session sees the same database,
    as they do in production.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'calsync.db'}")
    await init_db(engine)

    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A single session for direct storage assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        google_oauth_client_id="test-client-id",
        google_oauth_client_secret="test-client-secret",
        timezone="Europe/Prague",
        public_base_url="https://calendar.example.com",
    )


# =============================================================================
# Test doubles
# =============================================================================


class InMemoryEntitySource:
    """EntitySource backed by a dict, as a host application would provide."""

    def __init__(self, *entities: ScheduledEntity):
        self.entities: dict[tuple[str, str], ScheduledEntity] = {}
        for entity in entities:
            self.put(entity)

    def put(self, entity: ScheduledEntity) -> None:
        self.entities[(entity.entity_type, entity.entity_id)] = entity

    def drop(self, entity_type: str, entity_id: str) -> None:
        self.entities.pop((entity_type, entity_id), None)

    async def get_entity(self, entity_type: str, entity_id: str) -> Optional[ScheduledEntity]:
        return self.entities.get((entity_type, entity_id))

    async def list_entities(self, owner_id: str) -> list[ScheduledEntity]:
        return [e for e in self.entities.values() if e.owner_id == owner_id]


class FakeOAuthFlow:
    """
    Stand-in for GoogleOAuthFlow.

    Issues numbered access tokens so tests can tell which refresh produced
    the token a provider call received.
    """

    def __init__(self, refresh_delay: float = 0.0):
        self.refresh_delay = refresh_delay
        self.refresh_calls = 0
        self.revoked: list[str] = []
        self.refresh_error: Optional[Exception] = None
        self.revoke_error: Optional[Exception] = None
        self.user_info_error: Optional[Exception] = None

    def get_authorization_url(self, state: str) -> str:
        return f"https://accounts.example.com/auth?state={state}"

    async def exchange_code(self, code: str) -> OAuthTokens:
        return OAuthTokens(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_in=3600,
        )

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        self.refresh_calls += 1
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        return OAuthTokens(
            access_token=f"refreshed-{self.refresh_calls}",
            refresh_token=None,
            expires_in=3600,
        )

    async def revoke_token(self, token: str) -> None:
        if self.revoke_error is not None:
            raise self.revoke_error
        self.revoked.append(token)

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        if self.user_info_error is not None:
            raise self.user_info_error
        return GoogleUserInfo(email="owner@example.com", name="Owner")


class FakeProvider:
    """
    In-memory CalendarProvider.

    Events live in ``events`` keyed by (calendar_id, event_id). Errors can
    be queued per method with ``fail(method, *errors)``; each queued error
    is raised by one call. ``calls`` records (method, token, event_id).
    """

    def __init__(self, calendars: Optional[list[CalendarInfo]] = None):
        self.events: dict[tuple[str, str], EventPayload] = {}
        self.calls: list[tuple[str, str, Optional[str]]] = []
        self.calendars = calendars or [CalendarInfo(id="primary", summary="Main", primary=True)]
        self._errors: dict[str, list[Exception]] = {}

    def fail(self, method: str, *errors: Exception) -> None:
        self._errors.setdefault(method, []).extend(errors)

    def _record(self, method: str, token: str, event_id: Optional[str] = None) -> None:
        self.calls.append((method, token, event_id))
        queued = self._errors.get(method)
        if queued:
            raise queued.pop(0)

    def calls_to(self, method: str) -> list[tuple[str, str, Optional[str]]]:
        return [call for call in self.calls if call[0] == method]

    async def list_calendars(self, access_token: str) -> list[CalendarInfo]:
        self._record("list_calendars", access_token)
        return list(self.calendars)

    async def create_event(self, access_token, calendar_id, event_id, payload) -> str:
        self._record("create_event", access_token, event_id)
        if (calendar_id, event_id) in self.events:
            raise ProviderConflictError("Event with this identifier already exists", status=409)
        self.events[(calendar_id, event_id)] = payload
        return event_id

    async def update_event(self, access_token, calendar_id, event_id, payload) -> str:
        self._record("update_event", access_token, event_id)
        if (calendar_id, event_id) not in self.events:
            raise ProviderNotFoundError("Event or calendar not found", status=404)
        self.events[(calendar_id, event_id)] = payload
        return event_id

    async def delete_event(self, access_token, calendar_id, event_id) -> bool:
        self._record("delete_event", access_token, event_id)
        return self.events.pop((calendar_id, event_id), None) is not None


# =============================================================================
# Wiring
# =============================================================================


@pytest.fixture
def oauth_flow() -> FakeOAuthFlow:
    return FakeOAuthFlow()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_provider():
    """Factory for additional in-memory providers."""
    return FakeProvider


@pytest.fixture
def entity_source() -> InMemoryEntitySource:
    return InMemoryEntitySource()


@pytest.fixture
def token_manager(oauth_flow, settings) -> TokenLifecycleManager:
    return TokenLifecycleManager(flow=oauth_flow, settings=settings)


@pytest.fixture
def synchronizer(session_factory, token_manager, provider, settings) -> EventSynchronizer:
    return EventSynchronizer(session_factory, token_manager, {"google": provider}, settings)


@pytest.fixture
def make_integration(session_factory):
    """Factory persisting a Google integration for an owner."""

    async def _make(
        owner_id: str = "owner-1",
        access_token: str = "access-initial",
        refresh_token: Optional[str] = "refresh-initial",
        expires_in: int = 3600,
        sync_enabled: bool = True,
        provider: str = "google",
    ) -> CalendarIntegration:
        tokens = OAuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )
        async with session_factory() as session:
            integration = await save_integration(
                session,
                owner_id,
                tokens,
                GoogleUserInfo(email=f"{owner_id}@example.com"),
                provider=provider,
            )
            if not sync_enabled:
                integration.sync_enabled = False
                await session.commit()
            return integration

    return _make


@pytest.fixture
def make_entity():
    """Factory for calendar-visible sample entities."""

    def _make(**overrides) -> ScheduledEntity:
        values = dict(
            owner_id="owner-1",
            entity_type="shoot",
            entity_id="shoot-1",
            title="Wedding shoot",
            starts_on=date(2026, 3, 14),
            start_time=time(14, 0),
            duration_minutes=90,
            status=EntityStatus.CONFIRMED,
            venue="Villa Richter",
            street="Staré zámecké schody 6",
            city="Praha 1",
            postal_code="118 00",
        )
        values.update(overrides)
        return ScheduledEntity(**values)

    return _make
