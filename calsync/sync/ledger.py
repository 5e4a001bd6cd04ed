"""
Sync ledger persistence.

Reads and writes CalendarEventSync rows. Writes are single-statement
upserts on (integration_id, entity_type, entity_id) so concurrent workers
never create duplicate rows.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.models.base import utcnow
from calsync.models.sync import CalendarEventSync, SyncStatus

logger = logging.getLogger(__name__)

LEDGER_KEY = ("integration_id", "entity_type", "entity_id")


def _dialect_insert(session: AsyncSession):
    """Dialect-specific insert construct supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Ledger upserts are not supported on {dialect}")


async def get_sync_row(
    session: AsyncSession,
    integration_id: uuid.UUID,
    entity_type: str,
    entity_id: str,
) -> Optional[CalendarEventSync]:
    """
    Get the ledger row of an entity in an integration.

    Returns:
        CalendarEventSync if found, None otherwise
    """
    stmt = (
        select(CalendarEventSync)
        .where(
            CalendarEventSync.integration_id == integration_id,
            CalendarEventSync.entity_type == entity_type,
            CalendarEventSync.entity_id == entity_id,
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_rows_for_entity(
    session: AsyncSession,
    entity_type: str,
    entity_id: str,
) -> Sequence[CalendarEventSync]:
    """List ledger rows of an entity across all integrations."""
    stmt = select(CalendarEventSync).where(
        CalendarEventSync.entity_type == entity_type,
        CalendarEventSync.entity_id == entity_id,
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_error_rows(session: AsyncSession) -> Sequence[CalendarEventSync]:
    """List ledger rows whose last attempt failed, oldest first."""
    stmt = (
        select(CalendarEventSync)
        .where(CalendarEventSync.status == SyncStatus.ERROR.value)
        .order_by(CalendarEventSync.updated_at, CalendarEventSync.created_at)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def _upsert(
    session: AsyncSession,
    integration_id: uuid.UUID,
    entity_type: str,
    entity_id: str,
    insert_values: dict,
    update_fields: Sequence[str],
) -> CalendarEventSync:
    insert = _dialect_insert(session)
    stmt = insert(CalendarEventSync).values(
        id=uuid.uuid4(),
        integration_id=integration_id,
        entity_type=entity_type,
        entity_id=entity_id,
        **insert_values,
    )
    # Column onupdate defaults do not fire for ON CONFLICT DO UPDATE
    updates = {field: stmt.excluded[field] for field in update_fields}
    updates["updated_at"] = utcnow()
    stmt = stmt.on_conflict_do_update(index_elements=list(LEDGER_KEY), set_=updates)

    await session.execute(stmt)
    await session.commit()

    row = await get_sync_row(session, integration_id, entity_type, entity_id)
    return row


async def mark_synced(
    session: AsyncSession,
    integration_id: uuid.UUID,
    entity_type: str,
    entity_id: str,
    external_event_id: str,
    content_hash: str,
    calendar_id: Optional[str] = None,
    when: Optional[datetime] = None,
) -> CalendarEventSync:
    """Record a successful create or update in ``calendar_id``."""
    values = {
        "external_event_id": external_event_id,
        "calendar_id": calendar_id,
        "content_hash": content_hash,
        "last_synced_at": when or utcnow(),
        "status": SyncStatus.SYNCED.value,
        "last_error": None,
    }
    return await _upsert(session, integration_id, entity_type, entity_id, values, list(values))


async def mark_deleted(
    session: AsyncSession,
    integration_id: uuid.UUID,
    entity_type: str,
    entity_id: str,
    when: Optional[datetime] = None,
) -> CalendarEventSync:
    """Record that no external event exists any more."""
    values = {
        "external_event_id": None,
        "calendar_id": None,
        "content_hash": None,
        "last_synced_at": when or utcnow(),
        "status": SyncStatus.DELETED.value,
        "last_error": None,
    }
    return await _upsert(session, integration_id, entity_type, entity_id, values, list(values))


async def mark_error(
    session: AsyncSession,
    integration_id: uuid.UUID,
    entity_type: str,
    entity_id: str,
    error: str,
) -> CalendarEventSync:
    """
    Record a failed attempt.

    An existing row keeps its external event ID, calendar and hash so the
    next attempt still updates the right event; a missing row is created
    with a NULL external ID so the next attempt creates one.
    """
    values = {
        "external_event_id": None,
        "calendar_id": None,
        "content_hash": None,
        "status": SyncStatus.ERROR.value,
        "last_error": error,
    }
    return await _upsert(
        session, integration_id, entity_type, entity_id, values, ["status", "last_error"]
    )
