"""
Sync API routes.

1. /sync/notify - Domain change notification (answered before syncing)
2. /sync/reconcile - Retry failed ledger rows in the background
"""

import logging

from fastapi import APIRouter, Depends, status

from calsync.api.dependencies import get_dispatcher
from calsync.api.models import (
    NotifyAcceptedResponse,
    ReconcileAcceptedResponse,
    SyncNotification,
)
from calsync.domain import EntityRef
from calsync.sync.dispatcher import SyncDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post(
    "/notify",
    response_model=NotifyAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def notify_change(
    notification: SyncNotification,
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
) -> NotifyAcceptedResponse:
    """
    Accept a domain change and sync it in the background.

    The response does not wait for any calendar provider; sync failures
    are recorded on the integration and never fail the domain write.
    """
    ref = EntityRef(
        owner_id=notification.owner_id,
        entity_type=notification.entity_type,
        entity_id=notification.entity_id,
    )
    dispatcher.notify(ref, notification.change)

    return NotifyAcceptedResponse(
        entity_type=ref.entity_type,
        entity_id=ref.entity_id,
        change=notification.change,
    )


@router.post(
    "/reconcile",
    response_model=ReconcileAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reconcile(
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
) -> ReconcileAcceptedResponse:
    """Retry every ledger row whose last sync failed, off the request path."""
    already_running = dispatcher.reconcile_running
    dispatcher.schedule_reconcile()
    logger.info("Manual reconcile requested")

    return ReconcileAcceptedResponse(already_running=already_running)
