"""
In-memory repositories.

Aggregates are stored and handed out as deep copies, so a caller mutating a
loaded batch changes nothing until it saves.
"""

import asyncio
from datetime import date, datetime
from uuid import UUID

from ...domain.production.entities.batch import ProductionBatch
from ...domain.production.entities.schedule import ProductionSchedule
from ...domain.production.repositories.batch_repository import BatchRepository
from ...domain.production.repositories.schedule_repository import ScheduleRepository
from ...domain.production.value_objects.enums import BatchStatus


def _detached(batch: ProductionBatch) -> ProductionBatch:
    copy = batch.model_copy(deep=True)
    copy.clear_domain_events()
    return copy


class InMemoryBatchRepository(BatchRepository):
    """Batch repository backed by a dict."""

    def __init__(self) -> None:
        self._batches: dict[UUID, ProductionBatch] = {}
        self._lock = asyncio.Lock()

    async def save(self, batch: ProductionBatch) -> ProductionBatch:
        async with self._lock:
            self._batches[batch.id] = _detached(batch)
        return batch

    async def get_by_id(self, batch_id: UUID) -> ProductionBatch | None:
        batch = self._batches.get(batch_id)
        return _detached(batch) if batch is not None else None

    async def find_by_step_id(self, step_id: UUID) -> ProductionBatch | None:
        for batch in self._batches.values():
            if batch.has_step(step_id):
                return _detached(batch)
        return None

    async def get_all(self) -> list[ProductionBatch]:
        return [_detached(batch) for batch in self._batches.values()]

    async def find_by_date(self, day: date) -> list[ProductionBatch]:
        return [
            _detached(batch)
            for batch in self._batches.values()
            if batch.planned_start.date() == day
        ]

    async def find_between(
        self, start: datetime, end: datetime, workflow_id: str | None = None
    ) -> list[ProductionBatch]:
        matches = [
            batch
            for batch in self._batches.values()
            if start <= batch.planned_start <= end
            and (workflow_id is None or batch.workflow_id == workflow_id)
        ]
        return [_detached(batch) for batch in sorted(matches, key=lambda b: b.planned_start)]

    async def find_by_status(self, statuses: list[BatchStatus]) -> list[ProductionBatch]:
        wanted = set(statuses)
        return [
            _detached(batch) for batch in self._batches.values() if batch.status in wanted
        ]

    async def delete(self, batch_id: UUID) -> bool:
        async with self._lock:
            return self._batches.pop(batch_id, None) is not None


class InMemoryScheduleRepository(ScheduleRepository):
    """Schedule repository backed by a dict."""

    def __init__(self) -> None:
        self._schedules: dict[UUID, ProductionSchedule] = {}

    async def save(self, schedule: ProductionSchedule) -> ProductionSchedule:
        stored = schedule.model_copy(deep=True)
        stored.clear_domain_events()
        self._schedules[schedule.id] = stored
        return schedule

    async def get_by_id(self, schedule_id: UUID) -> ProductionSchedule | None:
        schedule = self._schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule is not None else None

    async def get_by_date(self, day: date) -> ProductionSchedule | None:
        for schedule in self._schedules.values():
            if schedule.schedule_date == day:
                return schedule.model_copy(deep=True)
        return None

    async def find_by_batch_id(self, batch_id: UUID) -> ProductionSchedule | None:
        for schedule in self._schedules.values():
            if batch_id in schedule.planned_batch_ids:
                return schedule.model_copy(deep=True)
        return None
