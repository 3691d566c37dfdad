"""
Property-Based Testing for Production Invariants

Using Hypothesis to drive the ledger, the batch state machine and the planner
with generated inputs and check the rules that must hold for all of them.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from hypothesis import given, settings, strategies as st

from bakery.domain.production.entities.workflow import StepTemplate, WorkflowDefinition
from bakery.domain.production.factories import create_batch_from_workflow
from bakery.domain.production.services.capacity_planner import CapacityPlanner
from bakery.domain.production.services.resource_ledger import ResourceLedger
from bakery.domain.production.value_objects.capacity import Station, Worker
from bakery.domain.production.value_objects.enums import BatchStatus, ConflictType
from bakery.domain.production.value_objects.planning import DemandItem, PlanningConstraints
from bakery.domain.production.value_objects.quality import (
    QualityCheckItem,
    calculate_quality_score,
)
from bakery.domain.shared.exceptions import InvalidProgressError, ResourceUnavailableError
from bakery.infrastructure.workflows import InMemoryWorkflowSource
from bakery.tests.utils import PRODUCTION_DAY, at

pytestmark = pytest.mark.property

RESOURCES = ["anna", "ben", "oven-1", "oven-2"]


def _ledger() -> ResourceLedger:
    return ResourceLedger(
        PRODUCTION_DAY,
        [
            Worker(id="anna", start_time="05:00", end_time="20:00"),
            Worker(id="ben", start_time="05:00", end_time="20:00"),
        ],
        [
            Station(id="oven-1", name="Deck oven", type="oven"),
            Station(id="oven-2", name="Rack oven", type="oven"),
        ],
    )


@st.composite
def booking_requests(draw):
    """A resource subset and a window inside the production day."""
    resources = draw(st.lists(st.sampled_from(RESOURCES), min_size=1, max_size=4, unique=True))
    start_minute = draw(st.integers(min_value=0, max_value=11 * 60))
    length = draw(st.integers(min_value=1, max_value=4 * 60))
    start = at(6) + timedelta(minutes=start_minute)
    return resources, start, start + timedelta(minutes=length)


def _workflow(durations: list[int]) -> WorkflowDefinition:
    return WorkflowDefinition(
        id="generated",
        name="Generated",
        steps=tuple(
            StepTemplate(name=f"step-{index}", duration_minutes=minutes)
            for index, minutes in enumerate(durations)
        ),
    )


class TestLedgerProperties:
    @given(requests=st.lists(booking_requests(), min_size=1, max_size=25))
    @settings(max_examples=150, deadline=None)
    def test_reservations_never_overlap(self, requests):
        ledger = _ledger()

        for resources, start, end in requests:
            try:
                ledger.reserve(resources, start, end, uuid4())
            except ResourceUnavailableError:
                pass

        ledger.verify()

    @given(requests=st.lists(booking_requests(), min_size=1, max_size=25))
    @settings(max_examples=150, deadline=None)
    def test_partial_allocation_never_overbooks(self, requests):
        ledger = _ledger()

        for resources, start, end in requests:
            requested = len(resources)
            booked = ledger.allocate(resources, start, end, uuid4(), requested=requested)
            assert len(booked) <= requested
            assert set(booked) <= set(resources)

        ledger.verify()

    @given(booking=booking_requests())
    @settings(max_examples=50, deadline=None)
    def test_release_frees_everything(self, booking):
        resources, start, end = booking
        ledger = _ledger()
        batch_id = uuid4()
        ledger.reserve(resources, start, end, batch_id)

        assert ledger.release_batch(batch_id) == len(resources)
        assert all(ledger.is_free(resource, start, end) for resource in resources)


class TestBatchProperties:
    @given(
        durations=st.lists(st.integers(min_value=1, max_value=240), min_size=1, max_size=8),
        pauses=st.integers(min_value=1, max_value=5),
    )
    @settings(max_examples=100, deadline=None)
    def test_pause_resume_round_trip(self, durations, pauses):
        batch = create_batch_from_workflow(_workflow(durations), quantity=10, planned_start=at(6))
        batch.start(at(6), "baker")
        step = batch.start_step(batch.steps[0].id, at(6))
        running = step.status

        for n in range(pauses):
            batch.pause("break", at(7) + timedelta(minutes=n), "lead")
            batch.resume(at(7) + timedelta(minutes=n), "lead")

        assert batch.status == BatchStatus.IN_PROGRESS
        assert batch.steps[0].status == running
        assert batch.previous_status is None

    @given(
        durations=st.lists(st.integers(min_value=1, max_value=240), min_size=1, max_size=8),
        completed=st.integers(min_value=0, max_value=8),
    )
    @settings(max_examples=100, deadline=None)
    def test_progress_stays_in_bounds(self, durations, completed):
        batch = create_batch_from_workflow(_workflow(durations), quantity=10, planned_start=at(6))
        batch.start(at(6), "baker")
        now = at(6)

        for step in batch.steps[:completed]:
            batch.start_step(step.id, now)
            now += timedelta(minutes=step.planned_duration_minutes)
            batch.complete_step(step.id, now)

        assert 0 <= batch.progress <= 100
        finished = min(completed, len(durations))
        assert batch.progress == round(finished / len(durations) * 100)

    @given(value=st.one_of(st.integers(max_value=-1), st.integers(min_value=101)))
    def test_out_of_range_progress_rejected(self, value):
        batch = create_batch_from_workflow(_workflow([10]), quantity=1, planned_start=at(6))

        with pytest.raises(InvalidProgressError):
            batch.steps[0].set_progress(value)


class TestPlanningProperties:
    @given(
        quantity=st.integers(min_value=1, max_value=400),
        max_batch_size=st.integers(min_value=1, max_value=100),
        durations=st.lists(st.integers(min_value=1, max_value=90), min_size=1, max_size=4),
    )
    @settings(max_examples=150, deadline=None)
    def test_quantity_is_planned_or_reported(self, quantity, max_batch_size, durations):
        planner = CapacityPlanner(
            InMemoryWorkflowSource([_workflow(durations)]),
            PlanningConstraints(max_batch_size=max_batch_size),
        )

        generation = planner.generate_batches(
            [DemandItem(workflow_id="generated", quantity=quantity)], PRODUCTION_DAY
        )

        planned = sum(batch.planned_quantity for batch in generation.batches)
        unscheduled = sum(
            conflict.quantity or 0
            for conflict in generation.conflicts
            if conflict.type == ConflictType.UNSCHEDULED
        )
        assert planned + unscheduled == quantity
        assert all(batch.planned_quantity <= max_batch_size for batch in generation.batches)
        for previous, current in zip(generation.batches, generation.batches[1:]):
            assert current.planned_start >= previous.planned_end
        assert all(batch.planned_end <= at(18) for batch in generation.batches)


@given(scores=st.lists(st.integers(min_value=0, max_value=100), min_size=1, max_size=20))
def test_quality_score_within_check_range(scores):
    overall = calculate_quality_score([QualityCheckItem(score=score) for score in scores])

    assert min(scores) <= overall <= max(scores)
