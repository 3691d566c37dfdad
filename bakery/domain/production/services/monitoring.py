"""
Batch monitoring

Periodic status publication for running batches. Each monitored batch owns one
asyncio task that sleeps for the configured interval, asks for a fresh
snapshot and publishes it to the monitor sink. The loop ends on its own when
the snapshot provider reports the batch finished or gone, and is cancelled
explicitly when the batch reaches a terminal status.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from ....core.observability import ACTIVE_BATCHES, get_logger
from ...shared.base import ValueObject
from ..ports import MonitorSink, batch_topic

logger = get_logger(__name__)

BATCH_STATUS_UPDATE = "batch_status_update"

SnapshotProvider = Callable[[UUID], Awaitable[dict[str, Any] | None]]


class MonitoringSession(ValueObject):
    """Handle returned to callers that asked to watch a batch."""

    batch_id: UUID
    topic: str
    interval_seconds: float
    started_at: datetime
    started_by: str
    already_running: bool = False


class BatchMonitorRegistry:
    """Registry of monitoring tasks keyed by batch id."""

    def __init__(
        self,
        monitor_sink: MonitorSink,
        snapshot_provider: SnapshotProvider,
        interval_seconds: float,
    ) -> None:
        self._sink = monitor_sink
        self._snapshot = snapshot_provider
        self._interval = interval_seconds
        self._tasks: dict[UUID, asyncio.Task] = {}

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def monitored_batch_ids(self) -> list[UUID]:
        return list(self._tasks)

    def is_monitoring(self, batch_id: UUID) -> bool:
        task = self._tasks.get(batch_id)
        return task is not None and not task.done()

    def start(self, batch_id: UUID) -> bool:
        """
        Begin publishing snapshots for a batch.

        Returns False when the batch is already monitored.
        """
        if self.is_monitoring(batch_id):
            return False

        task = asyncio.create_task(
            self._monitor_loop(batch_id), name=f"monitor-batch-{batch_id}"
        )
        self._tasks[batch_id] = task
        task.add_done_callback(lambda finished: self._forget(batch_id, finished))
        ACTIVE_BATCHES.set(len(self._tasks))
        logger.info(
            "Batch monitoring started",
            batch_id=str(batch_id),
            interval_seconds=self._interval,
        )
        return True

    async def stop(self, batch_id: UUID) -> bool:
        """Cancel monitoring and wait until the loop has exited."""
        task = self._tasks.pop(batch_id, None)
        ACTIVE_BATCHES.set(len(self._tasks))
        if task is None:
            return False

        if task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Batch monitoring stopped", batch_id=str(batch_id))
        return True

    async def shutdown(self) -> None:
        """Cancel every monitoring task."""
        for batch_id in list(self._tasks):
            await self.stop(batch_id)

    def _forget(self, batch_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(batch_id) is task:
            del self._tasks[batch_id]
            ACTIVE_BATCHES.set(len(self._tasks))

    async def _monitor_loop(self, batch_id: UUID) -> None:
        while True:
            await asyncio.sleep(self._interval)

            try:
                snapshot = await self._snapshot(batch_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Snapshot for monitored batch failed", batch_id=str(batch_id))
                continue

            if snapshot is None:
                logger.info("Monitored batch finished", batch_id=str(batch_id))
                return

            try:
                await self._sink.publish(
                    batch_topic(batch_id), {"event": BATCH_STATUS_UPDATE, **snapshot}
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Monitor publish failed",
                    batch_id=str(batch_id),
                    error=str(e),
                )
