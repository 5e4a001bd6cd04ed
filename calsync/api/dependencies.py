"""
FastAPI dependency injection providers.

Provides the token manager, synchronizer, dispatcher and feed renderer.
Services are created once at application startup.
"""

import importlib
import logging
from typing import Mapping, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calsync.auth.google_oauth import GoogleOAuthFlow
from calsync.auth.token_manager import TokenLifecycleManager
from calsync.config import Settings, get_settings
from calsync.domain import EntitySource
from calsync.feed.renderer import FeedRenderer
from calsync.integrations.base import CalendarProvider
from calsync.integrations.google_calendar.provider import GoogleCalendarProvider
from calsync.sync.dispatcher import SyncDispatcher
from calsync.sync.synchronizer import EventSynchronizer

logger = logging.getLogger(__name__)

# Global service instances (initialized at startup)
_token_manager: Optional[TokenLifecycleManager] = None
_synchronizer: Optional[EventSynchronizer] = None
_dispatcher: Optional[SyncDispatcher] = None
_feed_renderer: Optional[FeedRenderer] = None
_providers: dict[str, CalendarProvider] = {}


def load_entity_source(path: str) -> EntitySource:
    """
    Load the host application's EntitySource from an import path.

    Args:
        path: "package.module:attribute"; a callable attribute is called
            without arguments to build the source

    Raises:
        ValueError: If the path is malformed
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Entity source must look like 'module:attribute', got {path!r}")

    target = getattr(importlib.import_module(module_name), attribute)
    return target() if callable(target) else target


def init_services(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    entity_source: Optional[EntitySource] = None,
    settings: Optional[Settings] = None,
    flow: Optional[GoogleOAuthFlow] = None,
    providers: Optional[Mapping[str, CalendarProvider]] = None,
) -> None:
    """Initialize services at application startup."""
    global _token_manager, _synchronizer, _dispatcher, _feed_renderer, _providers

    settings = settings or get_settings()
    if session_factory is None:
        from calsync.database import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    if entity_source is None and settings.entity_source:
        entity_source = load_entity_source(settings.entity_source)

    _providers = dict(providers or {
        "google": GoogleCalendarProvider(timeout=settings.provider_timeout_seconds),
    })
    _token_manager = TokenLifecycleManager(flow=flow, settings=settings)
    _synchronizer = EventSynchronizer(session_factory, _token_manager, _providers, settings)

    if entity_source is not None:
        _dispatcher = SyncDispatcher(_synchronizer, entity_source)
        _feed_renderer = FeedRenderer(entity_source, settings)
        logger.info("Calendar services initialized")
    else:
        _dispatcher = None
        _feed_renderer = None
        logger.warning("No entity source configured; sync notifications and feeds are disabled")


async def shutdown_services(timeout: Optional[float] = 30.0) -> None:
    """Wait for running sync tasks and release provider resources."""
    global _token_manager, _synchronizer, _dispatcher, _feed_renderer

    if _dispatcher is not None:
        await _dispatcher.drain(timeout=timeout)
    for provider in _providers.values():
        close = getattr(provider, "close", None)
        if close is not None:
            close()

    _token_manager = _synchronizer = _dispatcher = _feed_renderer = None
    _providers.clear()


def _unavailable(what: str) -> HTTPException:
    logger.error(f"{what} not initialized")
    return HTTPException(
        status_code=503,
        detail=f"Service temporarily unavailable - {what.lower()} not initialized",
    )


def get_token_manager() -> TokenLifecycleManager:
    """
    Dependency injection for the token lifecycle manager.

    Raises:
        HTTPException: If services are not initialized
    """
    if _token_manager is None:
        raise _unavailable("Token manager")
    return _token_manager


def get_synchronizer() -> EventSynchronizer:
    """Dependency injection for the event synchronizer."""
    if _synchronizer is None:
        raise _unavailable("Synchronizer")
    return _synchronizer


def get_dispatcher() -> SyncDispatcher:
    """Dependency injection for the sync dispatcher (needs an entity source)."""
    if _dispatcher is None:
        raise _unavailable("Sync dispatcher")
    return _dispatcher


def get_feed_renderer() -> FeedRenderer:
    """Dependency injection for the feed renderer (needs an entity source)."""
    if _feed_renderer is None:
        raise _unavailable("Feed renderer")
    return _feed_renderer


def get_pending_sync_tasks() -> int:
    return _dispatcher.pending if _dispatcher is not None else 0
