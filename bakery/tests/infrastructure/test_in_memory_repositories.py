"""Tests for the in-memory repositories."""

import pytest

from bakery.domain.production.entities.schedule import ProductionSchedule
from bakery.domain.production.factories import create_batch_from_workflow
from bakery.domain.production.value_objects.enums import BatchStatus
from bakery.infrastructure.repositories import (
    InMemoryBatchRepository,
    InMemoryScheduleRepository,
)
from bakery.tests.utils import PRODUCTION_DAY, at


@pytest.fixture
def batch(bread_workflow):
    return create_batch_from_workflow(bread_workflow, quantity=20, planned_start=at(6))


class TestInMemoryBatchRepository:
    @pytest.mark.asyncio
    async def test_loaded_batches_are_copies(self, batch):
        repository = InMemoryBatchRepository()
        await repository.save(batch)

        loaded = await repository.get_by_id(batch.id)
        loaded.start(at(6), "baker-1")

        stored = await repository.get_by_id(batch.id)
        assert stored.status == BatchStatus.PLANNED
        assert stored.steps[0] is not loaded.steps[0]

    @pytest.mark.asyncio
    async def test_pending_events_are_not_stored(self, batch):
        repository = InMemoryBatchRepository()
        batch.add_domain_event("created")

        await repository.save(batch)

        assert (await repository.get_by_id(batch.id)).get_domain_events() == []
        assert batch.get_domain_events() == ["created"]

    @pytest.mark.asyncio
    async def test_queries(self, batch, roll_workflow):
        repository = InMemoryBatchRepository()
        other_day = create_batch_from_workflow(
            roll_workflow, quantity=5, planned_start=at(6, day=PRODUCTION_DAY.replace(day=11))
        )
        await repository.save(batch)
        await repository.save(other_day)

        assert [b.id for b in await repository.find_by_date(PRODUCTION_DAY)] == [batch.id]
        assert (await repository.find_by_step_id(batch.steps[2].id)).id == batch.id
        assert len(await repository.find_by_status([BatchStatus.PLANNED])) == 2
        assert await repository.delete(other_day.id)
        assert not await repository.delete(other_day.id)
        assert len(await repository.get_all()) == 1


class TestInMemoryScheduleRepository:
    @pytest.mark.asyncio
    async def test_lookups(self, batch):
        repository = InMemoryScheduleRepository()
        schedule = ProductionSchedule(schedule_date=PRODUCTION_DAY)
        schedule.attach_plan([batch.id], 20, 180, 8)
        await repository.save(schedule)

        assert (await repository.get_by_date(PRODUCTION_DAY)).id == schedule.id
        assert (await repository.find_by_batch_id(batch.id)).id == schedule.id
        assert await repository.find_by_batch_id(schedule.id) is None

    @pytest.mark.asyncio
    async def test_loaded_schedules_are_copies(self):
        repository = InMemoryScheduleRepository()
        schedule = ProductionSchedule(schedule_date=PRODUCTION_DAY)
        await repository.save(schedule)

        loaded = await repository.get_by_id(schedule.id)
        loaded.add_alert("oven down")

        assert (await repository.get_by_id(schedule.id)).alerts == []
