"""
Event synchronizer.

Pushes domain entities into external calendars and removes them again,
using the token lifecycle manager for credentials and the sync ledger to
keep at most one external event per (integration, entity).

Flow for a push:
    integration lookup -> map entity -> content hash -> ledger check
    -> valid token -> create or update (one 401 refresh-and-retry)
    -> ledger + integration bookkeeping
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Hashable, Mapping, Optional, Sequence, TypeVar, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calsync.auth.token_manager import TokenLifecycleManager
from calsync.auth.token_storage import (
    get_integration,
    get_integration_by_id,
    list_integrations,
    record_integration_error,
    record_integration_success,
)
from calsync.config import Settings, get_settings
from calsync.domain import EntityRef, EntitySource, ScheduledEntity
from calsync.exceptions import (
    AuthExpiredError,
    CalendarSyncError,
    ProviderConflictError,
    ProviderNotFoundError,
    ProviderUnauthorizedError,
)
from calsync.integrations.base import CalendarInfo, CalendarProvider, EventPayload
from calsync.integrations.google_calendar.adapter import external_event_id
from calsync.models.integrations import CalendarIntegration
from calsync.models.sync import CalendarEventSync, SyncStatus
from calsync.sync.ledger import (
    get_sync_row,
    list_error_rows,
    list_rows_for_entity,
    mark_deleted,
    mark_error,
    mark_synced,
)
from calsync.sync.mapper import build_event_payload, content_hash, is_calendar_visible

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PROVIDER = "google"


class SyncAction(str, Enum):
    """Outcome of a sync operation for one integration."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Result of syncing one entity into one integration."""

    action: SyncAction
    entity_type: str
    entity_id: str
    integration_id: Optional[uuid.UUID] = None
    external_event_id: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.action != SyncAction.FAILED

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, CalendarSyncError):
            return self.error.message
        return str(self.error)


class KeyedLock:
    """
    Per-key asyncio locks.

    Locks are created on first use and dropped once nobody holds or waits
    for them.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class EventSynchronizer:
    """
    Mirrors domain entities into push calendar providers.

    Each operation opens its own database session. Operations on the same
    (integration, entity) are serialized; everything else runs in parallel.

    Usage:
        synchronizer = EventSynchronizer(
            AsyncSessionLocal,
            TokenLifecycleManager(),
            {"google": GoogleCalendarProvider()},
        )
        result = await synchronizer.push(entity)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        token_manager: TokenLifecycleManager,
        providers: Mapping[str, CalendarProvider],
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._tokens = token_manager
        self._providers = dict(providers)
        self._settings = settings or get_settings()
        self._locks = KeyedLock()

    # =========================================================================
    # Public operations
    # =========================================================================

    async def push(
        self,
        entity: ScheduledEntity,
        provider: str = DEFAULT_PROVIDER,
    ) -> SyncResult:
        """
        Create or update the external event of an entity.

        Entities that are not calendar-visible (draft, cancelled, deleted)
        are removed instead.

        Args:
            entity: Entity to mirror
            provider: Calendar provider of the owner's integration

        Returns:
            SyncResult with action created, updated, unchanged or skipped

        Raises:
            SyncError: If the provider write failed (recorded on the ledger)
            CredentialExpiredError: If the integration had to be disabled
            AuthExpiredError: If the provider rejected a freshly refreshed token
        """
        if not is_calendar_visible(entity):
            return await self.remove(entity, provider)

        async with self._session_factory() as session:
            integration = await get_integration(session, entity.owner_id, provider)
            if integration is None:
                return _skipped(entity.ref, None, "no integration")
            if not integration.sync_enabled:
                return _skipped(entity.ref, integration.id, "sync disabled")
            return await self._push(session, integration, entity)

    async def remove(
        self,
        entity: Union[ScheduledEntity, EntityRef],
        provider: str = DEFAULT_PROVIDER,
    ) -> SyncResult:
        """
        Delete the external event of an entity.

        Runs even when the user disabled sync, as long as the integration
        exists. A missing ledger row or an event already gone at the
        provider counts as success.
        """
        ref = entity.ref if isinstance(entity, ScheduledEntity) else entity

        async with self._session_factory() as session:
            integration = await get_integration(session, ref.owner_id, provider)
            if integration is None:
                return _skipped(ref, None, "no integration")
            return await self._remove(session, integration, ref)

    async def fan_out(self, entity: ScheduledEntity) -> list[SyncResult]:
        """
        Sync an entity into every integration of its owner concurrently.

        Visible entities are pushed to integrations with sync enabled;
        invisible ones are removed everywhere. A failing integration yields
        a failed result and does not affect the others.
        """
        async with self._session_factory() as session:
            integrations = await list_integrations(session, entity.owner_id)
            integration_ids = [integration.id for integration in integrations]

        if not integration_ids:
            logger.debug(f"No calendar integrations for owner {entity.owner_id}")
            return [_skipped(entity.ref, None, "no integration")]

        visible = is_calendar_visible(entity)
        results = await asyncio.gather(*[
            self._guarded(
                entity.ref,
                integration_id,
                self._sync_one(integration_id, entity, visible),
            )
            for integration_id in integration_ids
        ])
        return list(results)

    async def remove_everywhere(self, ref: EntityRef) -> list[SyncResult]:
        """
        Remove an entity the domain no longer returns (hard-deleted).

        Driven by the ledger: every integration of the owner holding a row
        for the entity gets a removal.
        """
        async with self._session_factory() as session:
            rows = await list_rows_for_entity(session, ref.entity_type, ref.entity_id)
            integration_ids = []
            for row in rows:
                integration = await get_integration_by_id(session, row.integration_id)
                if integration is not None and integration.owner_id == ref.owner_id:
                    integration_ids.append(integration.id)

        if not integration_ids:
            return [_skipped(ref, None, "no ledger rows")]

        results = await asyncio.gather(*[
            self._guarded(ref, integration_id, self._remove_one(integration_id, ref))
            for integration_id in integration_ids
        ])
        return list(results)

    async def reconcile(self, entity_source: EntitySource) -> list[SyncResult]:
        """
        Re-attempt every ledger row in error status.

        Each row is retried from the entity's current state: pushed if it
        is still calendar-visible, removed otherwise. Rows are processed
        one at a time to stay gentle on provider rate limits.
        """
        async with self._session_factory() as session:
            rows = await list_error_rows(session)
            targets = [(row.integration_id, row.entity_type, row.entity_id) for row in rows]

        if not targets:
            logger.debug("Reconcile: no failed ledger rows")
            return []

        logger.info(f"Reconcile: retrying {len(targets)} failed ledger rows")
        results = []
        for integration_id, entity_type, entity_id in targets:
            result = await self._guarded(
                EntityRef("", entity_type, entity_id),
                integration_id,
                self._reconcile_one(integration_id, entity_type, entity_id, entity_source),
            )
            results.append(result)

        failed = sum(1 for result in results if not result.ok)
        logger.info(f"Reconcile finished: {len(results) - failed} recovered, {failed} still failing")
        return results

    async def list_calendars(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
    ) -> Sequence[CalendarInfo]:
        """List calendars of an integration's account, with the usual auth retry."""
        calendar = self._provider_for(integration)
        return await self._call_with_auth_retry(
            session,
            integration,
            lambda token: calendar.list_calendars(token),
        )

    # =========================================================================
    # Per-integration work
    # =========================================================================

    async def _push(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        entity: ScheduledEntity,
    ) -> SyncResult:
        calendar = self._provider_for(integration)
        key = (integration.id, entity.entity_type, entity.entity_id)

        async with self._locks.hold(key):
            payload = build_event_payload(entity, self._settings)
            digest = content_hash(payload)
            target = integration.target_calendar_id

            row = await get_sync_row(session, integration.id, entity.entity_type, entity.entity_id)
            if (
                row is not None
                and row.has_external_event
                and row.status == SyncStatus.SYNCED.value
                and row.content_hash == digest
                and _event_calendar(row, integration) == target
            ):
                logger.debug(
                    f"Event for {entity.entity_type}:{entity.entity_id} unchanged "
                    f"in integration {integration.id}"
                )
                return SyncResult(
                    action=SyncAction.UNCHANGED,
                    entity_type=entity.entity_type,
                    entity_id=entity.entity_id,
                    integration_id=integration.id,
                    external_event_id=row.external_event_id,
                )

            try:
                if row is not None and row.has_external_event:
                    current = _event_calendar(row, integration)
                    if current != target:
                        action, event_id = await self._move(
                            session, integration, calendar, entity.ref,
                            row.external_event_id, current, payload,
                        )
                    else:
                        action, event_id = await self._update_or_recreate(
                            session, integration, calendar, entity.ref,
                            row.external_event_id, payload,
                        )
                else:
                    action, event_id = await self._create(
                        session, integration, calendar, entity.ref, payload
                    )
            except CalendarSyncError as e:
                await self._record_failure(session, integration, entity.ref, e)
                raise

            await mark_synced(
                session, integration.id, entity.entity_type, entity.entity_id,
                event_id, digest, calendar_id=target,
            )
            await record_integration_success(session, integration)

        logger.info(
            f"Event {action.value} for {entity.entity_type}:{entity.entity_id} "
            f"in integration {integration.id}"
        )
        return SyncResult(
            action=action,
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            integration_id=integration.id,
            external_event_id=event_id,
        )

    async def _create(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        calendar: CalendarProvider,
        ref: EntityRef,
        payload: EventPayload,
    ) -> tuple[SyncAction, str]:
        calendar_id = integration.target_calendar_id
        event_id = external_event_id(integration.id, ref.entity_type, ref.entity_id)
        try:
            created = await self._call_with_auth_retry(
                session,
                integration,
                lambda token: calendar.create_event(token, calendar_id, event_id, payload),
            )
            return SyncAction.CREATED, created
        except ProviderConflictError:
            # An earlier create went through without us seeing the response
            logger.info(f"Event {event_id} already exists in {calendar_id}, updating instead")

        updated = await self._call_with_auth_retry(
            session,
            integration,
            lambda token: calendar.update_event(token, calendar_id, event_id, payload),
        )
        return SyncAction.UPDATED, updated

    async def _update_or_recreate(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        calendar: CalendarProvider,
        ref: EntityRef,
        event_id: str,
        payload: EventPayload,
    ) -> tuple[SyncAction, str]:
        calendar_id = integration.target_calendar_id
        try:
            updated = await self._call_with_auth_retry(
                session,
                integration,
                lambda token: calendar.update_event(token, calendar_id, event_id, payload),
            )
            return SyncAction.UPDATED, updated
        except ProviderNotFoundError:
            logger.warning(f"Event {event_id} was deleted externally, recreating")

        return await self._create(session, integration, calendar, ref, payload)

    async def _move(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        calendar: CalendarProvider,
        ref: EntityRef,
        event_id: str,
        old_calendar_id: str,
        payload: EventPayload,
    ) -> tuple[SyncAction, str]:
        """
        Recreate an event after the target calendar changed.

        The old event is deleted first, so a failure leaves at most the
        old event behind and the ledger still points at it.
        """
        try:
            await self._call_with_auth_retry(
                session,
                integration,
                lambda token: calendar.delete_event(token, old_calendar_id, event_id),
            )
        except ProviderNotFoundError:
            logger.info(f"Event {event_id} was already gone from {old_calendar_id}")

        # Old event is gone; a failing create below must not leave the row pointing at it
        await mark_deleted(session, integration.id, ref.entity_type, ref.entity_id)
        logger.info(
            f"Moving event for {ref.entity_type}:{ref.entity_id} from {old_calendar_id} "
            f"to {integration.target_calendar_id}"
        )
        return await self._create(session, integration, calendar, ref, payload)

    async def _remove(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        ref: EntityRef,
    ) -> SyncResult:
        calendar = self._provider_for(integration)
        key = (integration.id, ref.entity_type, ref.entity_id)

        async with self._locks.hold(key):
            row = await get_sync_row(session, integration.id, ref.entity_type, ref.entity_id)
            if row is None:
                return _skipped(ref, integration.id, "no external event")
            if not row.has_external_event:
                if row.status != SyncStatus.DELETED.value:
                    # Failed create: nothing exists externally, stop retrying it
                    await mark_deleted(session, integration.id, ref.entity_type, ref.entity_id)
                return _skipped(ref, integration.id, "no external event")

            event_id = row.external_event_id
            calendar_id = _event_calendar(row, integration)
            try:
                deleted = await self._call_with_auth_retry(
                    session,
                    integration,
                    lambda token: calendar.delete_event(token, calendar_id, event_id),
                )
            except ProviderNotFoundError:
                deleted = False
            except CalendarSyncError as e:
                await self._record_failure(session, integration, ref, e)
                raise

            if not deleted:
                logger.info(f"Event {event_id} was already gone from {calendar_id}")

            await mark_deleted(session, integration.id, ref.entity_type, ref.entity_id)
            await record_integration_success(session, integration)

        logger.info(
            f"Event deleted for {ref.entity_type}:{ref.entity_id} in integration {integration.id}"
        )
        return SyncResult(
            action=SyncAction.DELETED,
            entity_type=ref.entity_type,
            entity_id=ref.entity_id,
            integration_id=integration.id,
            external_event_id=event_id,
        )

    async def _sync_one(
        self,
        integration_id: uuid.UUID,
        entity: ScheduledEntity,
        visible: bool,
    ) -> SyncResult:
        async with self._session_factory() as session:
            integration = await get_integration_by_id(session, integration_id)
            if integration is None:
                return _skipped(entity.ref, integration_id, "integration removed")
            if not visible:
                return await self._remove(session, integration, entity.ref)
            if not integration.sync_enabled:
                return _skipped(entity.ref, integration_id, "sync disabled")
            return await self._push(session, integration, entity)

    async def _remove_one(self, integration_id: uuid.UUID, ref: EntityRef) -> SyncResult:
        async with self._session_factory() as session:
            integration = await get_integration_by_id(session, integration_id)
            if integration is None:
                return _skipped(ref, integration_id, "integration removed")
            return await self._remove(session, integration, ref)

    async def _reconcile_one(
        self,
        integration_id: uuid.UUID,
        entity_type: str,
        entity_id: str,
        entity_source: EntitySource,
    ) -> SyncResult:
        entity = await entity_source.get_entity(entity_type, entity_id)
        async with self._session_factory() as session:
            integration = await get_integration_by_id(session, integration_id)
            if integration is None:
                ref = EntityRef(owner_id="", entity_type=entity_type, entity_id=entity_id)
                return _skipped(ref, integration_id, "integration removed")

            if entity is None or not is_calendar_visible(entity):
                ref = EntityRef(integration.owner_id, entity_type, entity_id)
                return await self._remove(session, integration, ref)
            if not integration.sync_enabled:
                return _skipped(entity.ref, integration_id, "sync disabled")
            return await self._push(session, integration, entity)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call_with_auth_retry(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        call: Callable[[str], Awaitable[T]],
    ) -> T:
        """
        Run one provider call with at most one refresh-and-retry on 401.

        States: call with valid token -> (401) forced refresh -> call again
        -> (401) AuthExpiredError. Transient errors are retried inside the
        provider client and never reach this loop.
        """
        token = await self._tokens.ensure_valid(session, integration)
        try:
            return await call(token)
        except ProviderUnauthorizedError:
            logger.info(f"Provider rejected access token of integration {integration.id}, refreshing")

        fresh_token = await self._tokens.refresh_after_unauthorized(session, integration, token)
        try:
            return await call(fresh_token)
        except ProviderUnauthorizedError as e:
            raise AuthExpiredError(
                f"Provider rejected a freshly refreshed token for integration {integration.id}",
                original_error=e,
            )

    async def _record_failure(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        ref: EntityRef,
        error: CalendarSyncError,
    ) -> None:
        logger.warning(
            f"Sync of {ref.entity_type}:{ref.entity_id} into integration {integration.id} "
            f"failed: {error.message}"
        )
        await mark_error(session, integration.id, ref.entity_type, ref.entity_id, error.message)
        await record_integration_error(session, integration, error.message)

    async def _guarded(
        self,
        ref: EntityRef,
        integration_id: uuid.UUID,
        operation: Awaitable[SyncResult],
    ) -> SyncResult:
        """Turn a failing per-integration operation into a failed result."""
        try:
            return await operation
        except Exception as e:
            if isinstance(e, CalendarSyncError):
                logger.warning(f"Sync into integration {integration_id} failed: {e.message}")
            else:
                logger.exception(f"Unexpected error syncing into integration {integration_id}")
            return SyncResult(
                action=SyncAction.FAILED,
                entity_type=ref.entity_type,
                entity_id=ref.entity_id,
                integration_id=integration_id,
                error=e,
            )

    def _provider_for(self, integration: CalendarIntegration) -> CalendarProvider:
        try:
            return self._providers[integration.provider]
        except KeyError:
            raise ValueError(f"No calendar provider registered for {integration.provider!r}")


def _event_calendar(row: CalendarEventSync, integration: CalendarIntegration) -> str:
    """Calendar holding the row's external event."""
    return row.calendar_id or integration.target_calendar_id


def _skipped(ref: EntityRef, integration_id: Optional[uuid.UUID], reason: str) -> SyncResult:
    return SyncResult(
        action=SyncAction.SKIPPED,
        entity_type=ref.entity_type,
        entity_id=ref.entity_id,
        integration_id=integration_id,
        reason=reason,
    )
