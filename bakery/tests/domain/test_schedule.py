"""Tests for the daily production schedule aggregate."""

from uuid import uuid4

import pytest

from bakery.domain.production.entities.schedule import ProductionSchedule
from bakery.domain.production.value_objects.enums import ScheduleStatus
from bakery.domain.shared.exceptions import InvalidTransitionError
from bakery.tests.utils import PRODUCTION_DAY, at


@pytest.fixture
def schedule() -> ProductionSchedule:
    schedule = ProductionSchedule(
        schedule_date=PRODUCTION_DAY, workday_start="06:00", workday_end="14:00"
    )
    schedule.attach_plan(
        [uuid4(), uuid4()],
        total_planned_items=80,
        estimated_production_minutes=960,
        total_staff_hours=16,
        efficiency_score=85,
    )
    schedule.mark_planned(at(5))
    return schedule


class TestLifecycle:
    def test_activate_records_start(self, schedule):
        schedule.activate(at(6))

        assert schedule.status == ScheduleStatus.ACTIVE
        assert schedule.actual_start == at(6)

    def test_plan_only_attached_to_drafts(self, schedule):
        with pytest.raises(InvalidTransitionError):
            schedule.attach_plan([], 0, 0, 0)

    def test_completed_is_terminal(self, schedule):
        schedule.activate(at(6))
        schedule.complete(at(13))

        with pytest.raises(InvalidTransitionError):
            schedule.cancel(at(13))

    def test_cancelled_can_be_reopened(self, schedule):
        schedule.cancel(at(5))
        schedule.reopen(at(5, 30))

        assert schedule.status == ScheduleStatus.DRAFT

    def test_workday_must_be_ordered(self):
        with pytest.raises(ValueError):
            ProductionSchedule(
                schedule_date=PRODUCTION_DAY, workday_start="14:00", workday_end="06:00"
            )


class TestRollUps:
    def test_completion_percentage(self, schedule):
        first, second = schedule.planned_batch_ids

        schedule.record_batch_completion(first)
        schedule.record_batch_completion(first)
        schedule.record_batch_completion(uuid4())

        assert schedule.completion_percentage == 50
        assert schedule.active_batch_ids == [second]
        assert schedule.is_valid()

    def test_utilization(self, schedule):
        # 16 staff hours over an 8 hour day; 960 minutes of work over 960 staff minutes
        assert schedule.staff_utilization == 200
        assert schedule.capacity_utilization == 100

    def test_efficiency_only_after_completion(self, schedule):
        assert schedule.efficiency_score is None

        schedule.activate(at(6))
        for batch_id in schedule.planned_batch_ids:
            schedule.record_batch_completion(batch_id)
        schedule.record_quality_issue()
        schedule.complete(at(15))

        # 20 for the overrun, 10 for the quality issue
        assert schedule.efficiency_score == 70
        assert schedule.actual_workday_minutes == 540

    def test_needs_attention(self, schedule):
        schedule.activate(at(6))

        assert not schedule.needs_attention(at(13))
        assert schedule.needs_attention(at(14, 30))

        schedule.add_alert("Oven 2 offline")
        assert schedule.needs_attention(at(7))
