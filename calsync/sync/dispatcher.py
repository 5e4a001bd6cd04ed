"""
Background dispatch of calendar sync work.

Domain writes notify the dispatcher and return immediately; the sync runs
as an asyncio task off the request path. Sync failures are logged and
recorded on the ledger, never propagated to the domain write.
"""

import asyncio
import logging
from typing import Optional

from calsync.domain import EntityChange, EntityRef, EntitySource
from calsync.sync.synchronizer import EventSynchronizer, SyncResult

logger = logging.getLogger(__name__)


class SyncDispatcher:
    """
    Schedules sync tasks for domain change notifications.

    Keeps a strong reference to every running task until it finishes so
    tasks are not garbage collected mid-flight.
    """

    def __init__(self, synchronizer: EventSynchronizer, entity_source: EntitySource):
        self._synchronizer = synchronizer
        self._entity_source = entity_source
        self._tasks: set[asyncio.Task] = set()
        self._reconcile_task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        """Number of sync tasks still running."""
        return len(self._tasks)

    def notify(self, ref: EntityRef, change: EntityChange) -> asyncio.Task:
        """
        Schedule the sync for a domain change.

        Must be called from a running event loop.

        Returns:
            The scheduled task (resolves to the per-integration results)
        """
        change = EntityChange(change)
        task = self._track(asyncio.create_task(
            self._run(ref, change),
            name=f"calsync-{change.value}-{ref.entity_type}-{ref.entity_id}",
        ))
        logger.debug(f"Scheduled sync for {ref.entity_type}:{ref.entity_id} ({change.value})")
        return task

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, ref: EntityRef, change: EntityChange) -> list[SyncResult]:
        try:
            if change == EntityChange.DELETED:
                results = await self._synchronizer.remove_everywhere(ref)
            else:
                entity = await self._entity_source.get_entity(ref.entity_type, ref.entity_id)
                if entity is None:
                    logger.info(
                        f"{ref.entity_type}:{ref.entity_id} no longer exists, removing its events"
                    )
                    results = await self._synchronizer.remove_everywhere(ref)
                else:
                    results = await self._synchronizer.fan_out(entity)
        except Exception:
            logger.exception(f"Calendar sync for {ref.entity_type}:{ref.entity_id} crashed")
            return []

        self._log_results(ref, change, results)
        return results

    def _log_results(
        self,
        ref: EntityRef,
        change: EntityChange,
        results: list[SyncResult],
    ) -> None:
        for result in results:
            if result.ok:
                logger.info(
                    f"Sync {change.value} {ref.entity_type}:{ref.entity_id} -> "
                    f"{result.action.value} (integration {result.integration_id})"
                )
            else:
                logger.warning(
                    f"Sync {change.value} {ref.entity_type}:{ref.entity_id} failed "
                    f"for integration {result.integration_id}: {result.error_message}"
                )

    @property
    def reconcile_running(self) -> bool:
        return self._reconcile_task is not None and not self._reconcile_task.done()

    def schedule_reconcile(self) -> asyncio.Task:
        """
        Retry every failed ledger row in the background.

        A reconcile that is still running is returned instead of starting
        a second one. Must be called from a running event loop.
        """
        if self.reconcile_running:
            logger.debug("Reconcile already running")
            return self._reconcile_task

        self._reconcile_task = self._track(
            asyncio.create_task(self._run_reconcile(), name="calsync-reconcile")
        )
        return self._reconcile_task

    async def _run_reconcile(self) -> list[SyncResult]:
        try:
            results = await self._synchronizer.reconcile(self._entity_source)
        except Exception:
            logger.exception("Calendar reconcile crashed")
            return []

        failed = sum(1 for result in results if not result.ok)
        logger.info(f"Reconcile: {len(results) - failed} recovered, {failed} failed")
        return results

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for running sync tasks, e.g. at shutdown.

        Tasks still running after ``timeout`` seconds are cancelled; the
        ledger is only written after complete provider responses, so a
        cancelled task leaves no partial state.
        """
        if not self._tasks:
            return

        logger.info(f"Waiting for {len(self._tasks)} calendar sync tasks")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} calendar sync tasks at shutdown")
            await asyncio.gather(*pending, return_exceptions=True)
