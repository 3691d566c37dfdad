"""Shared fixtures for the production core tests."""

import pytest
import pytest_asyncio

from bakery.domain.production.entities.workflow import StepTemplate, WorkflowDefinition
from bakery.domain.production.services.execution_engine import ProductionExecutionEngine
from bakery.domain.production.services.resource_ledger import LedgerRegistry, ResourceLedger
from bakery.domain.production.value_objects.capacity import Station, Worker
from bakery.domain.production.value_objects.enums import StepKind
from bakery.infrastructure.repositories import (
    InMemoryBatchRepository,
    InMemoryScheduleRepository,
)
from bakery.infrastructure.sinks import RecordingMonitorSink, RecordingNotifySink
from bakery.infrastructure.workflows import InMemoryWorkflowSource
from bakery.tests.utils import PRODUCTION_DAY, FixedClock, at


@pytest.fixture
def bread_workflow() -> WorkflowDefinition:
    """Mix 15m, proof 120m, bake 45m."""
    return WorkflowDefinition(
        id="bread-v1",
        name="Bread",
        steps=(
            StepTemplate(name="mix", duration_minutes=15, activities=("weigh", "knead")),
            StepTemplate(name="proof", kind=StepKind.SLEEP, duration_minutes=120),
            StepTemplate(name="bake", duration_minutes=45, required_equipment=("oven",)),
        ),
    )


@pytest.fixture
def roll_workflow() -> WorkflowDefinition:
    return WorkflowDefinition(
        id="rolls-v1",
        name="Rolls",
        steps=(
            StepTemplate(name="mix", duration_minutes=10),
            StepTemplate(name="shape", duration_minutes=20),
            StepTemplate(name="bake", duration_minutes=20, required_equipment=("oven",)),
        ),
    )


@pytest.fixture
def workflow_source(bread_workflow, roll_workflow) -> InMemoryWorkflowSource:
    return InMemoryWorkflowSource([bread_workflow, roll_workflow])


@pytest.fixture
def workers() -> list[Worker]:
    return [
        Worker(id="anna", start_time="06:00", end_time="14:00"),
        Worker(id="ben", start_time="05:00", end_time="13:00"),
        Worker(id="carla", start_time="10:00", end_time="18:00"),
    ]


@pytest.fixture
def stations() -> list[Station]:
    return [
        Station(id="oven-1", name="Deck oven", type="oven"),
        Station(id="oven-2", name="Rack oven", type="oven"),
        Station(id="mixer-1", name="Spiral mixer", type="mixer"),
    ]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(at(6))


@pytest.fixture
def batch_repository() -> InMemoryBatchRepository:
    return InMemoryBatchRepository()


@pytest.fixture
def schedule_repository() -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository()


@pytest.fixture
def notify_sink() -> RecordingNotifySink:
    return RecordingNotifySink()


@pytest.fixture
def monitor_sink() -> RecordingMonitorSink:
    return RecordingMonitorSink()


@pytest.fixture
def ledgers(workers, stations) -> LedgerRegistry:
    """Registry holding the production day's ledger with the test roster."""
    registry = LedgerRegistry()
    registry.register(ResourceLedger(PRODUCTION_DAY, workers, stations))
    return registry


@pytest_asyncio.fixture
async def engine(
    batch_repository,
    schedule_repository,
    workflow_source,
    notify_sink,
    monitor_sink,
    clock,
    ledgers,
):
    engine = ProductionExecutionEngine(
        batch_repository,
        workflow_source,
        notify_sink,
        monitor_sink,
        schedule_repository=schedule_repository,
        ledgers=ledgers,
        clock=clock,
        monitor_interval_seconds=60,
    )
    yield engine
    await engine.shutdown()


@pytest_asyncio.fixture
async def running_batch(engine):
    """A started bread batch of 40 pieces with step 0 ready."""
    batch = await engine.create_batch("bread-v1", 40, at(6), created_by="planner")
    return await engine.start_batch(batch.id, "baker-1")
