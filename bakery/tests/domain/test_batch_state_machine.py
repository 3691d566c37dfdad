"""
Tests for the production batch aggregate and its step state machine.
"""

from uuid import uuid4

import pytest

from bakery.domain.production.entities.batch import ProductionBatch
from bakery.domain.production.entities.issue import QUALITY_FAILURE, Issue
from bakery.domain.production.factories import create_batch_from_workflow
from bakery.domain.production.value_objects.enums import (
    AdvanceOutcome,
    BatchStatus,
    IssueSeverity,
    StepStatus,
)
from bakery.domain.production.value_objects.quality import QualityCheck, QualityCheckItem
from bakery.domain.shared.exceptions import (
    InvalidProgressError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from bakery.tests.utils import at


@pytest.fixture
def batch(bread_workflow) -> ProductionBatch:
    return create_batch_from_workflow(bread_workflow, 40, at(6))


@pytest.fixture
def started(batch) -> ProductionBatch:
    batch.start(at(6), "baker-1")
    batch.pull_domain_events()
    return batch


def event_names(batch: ProductionBatch) -> list[str]:
    return [event.event_name for event in batch.pull_domain_events()]


class TestBatchCreation:
    def test_steps_follow_workflow(self, batch):
        assert [step.name for step in batch.steps] == ["mix", "proof", "bake"]
        assert [step.step_index for step in batch.steps] == [0, 1, 2]
        assert all(step.status == StepStatus.PENDING for step in batch.steps)
        assert batch.status == BatchStatus.PLANNED

    def test_steps_are_laid_out_back_to_back(self, batch):
        assert batch.steps[0].planned_start == at(6)
        assert batch.steps[0].planned_end == at(6, 15)
        assert batch.steps[1].planned_start == at(6, 15)
        assert batch.steps[2].planned_end == at(9)
        assert batch.planned_end == at(9)

    def test_step_estimates_scale_with_duration(self, bread_workflow):
        batch = create_batch_from_workflow(bread_workflow, 25, at(6), duration_minutes=90)

        assert [step.planned_duration_minutes for step in batch.steps] == [8, 60, 22]
        assert batch.planned_end == at(7, 30)

    def test_required_equipment_comes_from_workflow(self, batch):
        assert batch.required_equipment == ["oven"]

    def test_rejects_non_contiguous_step_indices(self, batch):
        data = batch.model_dump()
        data["steps"][1]["step_index"] = 5

        with pytest.raises(ValueError):
            ProductionBatch.model_validate(data)


class TestStartBatch:
    def test_start_marks_first_step_ready(self, batch):
        batch.start(at(6, 5), "baker-1")

        assert batch.status == BatchStatus.IN_PROGRESS
        assert batch.actual_start == at(6, 5)
        assert batch.steps[0].status == StepStatus.READY
        assert batch.steps[1].status == StepStatus.PENDING
        assert event_names(batch) == ["batch_started"]

    def test_start_twice_is_rejected(self, started):
        with pytest.raises(InvalidTransitionError):
            started.start(at(7), "baker-1")

    def test_ready_batch_can_start(self, batch):
        batch.mark_ready(at(5, 50))
        batch.start(at(6), "baker-1")

        assert batch.status == BatchStatus.IN_PROGRESS

    def test_resources_frozen_after_start(self, started):
        with pytest.raises(InvalidTransitionError):
            started.assign_resources(["anna"], ["oven-1"])


class TestStepFlow:
    def test_completing_first_step_advances(self, started):
        """Step 0 completes and the batch moves on to step 1."""
        step = started.steps[0]
        started.start_step(step.id, at(6))
        step.complete(at(6, 15))

        result = started.advance(0, at(6, 15))

        assert result.outcome == AdvanceOutcome.ADVANCED
        assert started.steps[1].status == StepStatus.READY
        assert started.current_step_index == 1
        assert result.next_step_id == started.steps[1].id
        assert "workflow_advanced" in event_names(started)

    def test_advance_requires_completed_step(self, started):
        with pytest.raises(InvalidTransitionError):
            started.advance(0, at(6, 15))

    def test_advance_rejects_unknown_index(self, started):
        with pytest.raises(ValidationError) as exc_info:
            started.advance(7, at(6, 15))
        assert exc_info.value.error_code == "INVALID_STEP_INDEX"

    def test_cannot_start_step_before_predecessors_finish(self, started):
        proof = started.steps[1]

        with pytest.raises(InvalidTransitionError):
            started.start_step(proof.id, at(6))

        assert proof.status == StepStatus.PENDING
        assert proof.actual_start is None

    def test_complete_step_only_from_in_progress(self, started):
        with pytest.raises(InvalidTransitionError):
            started.complete_step(started.steps[0].id, at(6, 15))
        assert started.steps[0].status == StepStatus.READY

    def test_complete_step_sets_progress_and_end(self, started):
        mix = started.steps[0]
        started.start_step(mix.id, at(6))
        started.complete_step(mix.id, at(6, 20), completed_by="baker-1", notes="smooth")

        assert mix.status == StepStatus.COMPLETED
        assert mix.progress == 100
        assert mix.actual_end == at(6, 20)
        assert mix.actual_duration_minutes == 20
        assert mix.notes == "smooth"

    def test_full_run_completes_batch(self, started):
        ends = [at(6, 15), at(8, 15), at(9)]
        for step, end in zip(started.steps, ends):
            started.start_step(step.id, step.planned_start)
            result = started.complete_step(step.id, end)

        assert result.outcome == AdvanceOutcome.COMPLETED
        assert started.status == BatchStatus.COMPLETED
        assert started.actual_quantity == 40
        assert started.actual_end == at(9)
        assert started.progress == 100
        assert "workflow_completed" in event_names(started)

    def test_actual_quantity_override(self, started):
        for step in started.steps[:-1]:
            started.start_step(step.id, at(7))
            started.complete_step(step.id, at(7))
        last = started.steps[-1]
        started.start_step(last.id, at(8))
        started.complete_step(last.id, at(9), actual_quantity=37)

        assert started.actual_quantity == 37

    def test_batch_cannot_complete_with_open_steps(self, started):
        with pytest.raises(InvalidTransitionError):
            started.complete(at(9))
        assert started.actual_quantity is None

    def test_skipped_future_step_is_passed_over(self, started):
        mix, proof, bake = started.steps
        assert started.skip_step(proof.id, "no proofing today", at(6)) is None

        started.start_step(mix.id, at(6))
        result = started.complete_step(mix.id, at(6, 15))

        assert result.current_step_index == 2
        assert proof.status == StepStatus.SKIPPED
        assert bake.status == StepStatus.READY

    def test_skipping_current_step_advances(self, started):
        result = started.skip_step(started.steps[0].id, "pre-mixed dough", at(6))

        assert result is not None
        assert result.advanced
        assert started.current_step_index == 1

    def test_unmet_precondition_puts_batch_in_waiting(self, started):
        # A restored batch whose step 1 finished while step 0 is still held.
        started.steps[0].status = StepStatus.WAITING
        started.steps[1].status = StepStatus.COMPLETED

        result = started.advance(1, at(8))

        assert result.outcome == AdvanceOutcome.WAITING
        assert "mix" in result.reason
        assert started.status == BatchStatus.WAITING
        assert started.steps[2].status == StepStatus.WAITING
        assert "batch_waiting" in event_names(started)

    def test_failed_step_fails_batch(self, started):
        mix = started.steps[0]
        started.start_step(mix.id, at(6))
        started.fail_step(mix.id, "mixer broke", at(6, 10))

        assert mix.status == StepStatus.FAILED
        assert started.status == BatchStatus.FAILED
        assert started.actual_end == at(6, 10)

    def test_complete_activity(self, started):
        mix = started.steps[0]
        mix.complete_activity("weigh", at(6, 5))

        assert mix.completed_activities == ["weigh"]
        assert mix.next_activity == "knead"
        assert mix.activity_progress == 50

    def test_unknown_activity_rejected(self, started):
        with pytest.raises(ValidationError) as exc_info:
            started.steps[0].complete_activity("fold", at(6, 5))
        assert exc_info.value.error_code == "UNKNOWN_ACTIVITY"

    def test_unknown_step(self, started):
        with pytest.raises(NotFoundError):
            started.get_step(uuid4())


class TestPauseResume:
    def test_pause_and_resume_restore_statuses(self, started):
        mix = started.steps[0]
        started.start_step(mix.id, at(6))

        started.pause("oven repair", at(6, 5), "lead")
        assert started.status == BatchStatus.WAITING
        assert mix.status == StepStatus.WAITING
        assert started.pause_reason == "oven repair"

        started.resume(at(6, 30), "lead")
        assert started.status == BatchStatus.IN_PROGRESS
        assert mix.status == StepStatus.IN_PROGRESS
        assert started.pause_reason is None
        assert event_names(started)[-2:] == ["batch_paused", "batch_resumed"]

    def test_pause_keeps_ready_step_ready(self, started):
        started.pause(None, at(6, 5), "lead")
        started.resume(at(6, 10), "lead")

        assert started.steps[0].status == StepStatus.READY

    def test_pause_only_from_in_progress(self, batch):
        with pytest.raises(InvalidTransitionError):
            batch.pause("break", at(6), "lead")

    def test_resume_only_from_waiting(self, started):
        with pytest.raises(InvalidTransitionError):
            started.resume(at(6), "lead")


class TestTerminalTransitions:
    def test_cancel_is_terminal(self, started):
        started.cancel("customer cancelled", at(7), "lead")

        assert started.status == BatchStatus.CANCELLED
        assert started.actual_end == at(7)
        with pytest.raises(InvalidTransitionError):
            started.resume(at(8), "lead")

    def test_cancel_planned_batch(self, batch):
        batch.cancel(None, at(5), "planner")
        assert batch.status == BatchStatus.CANCELLED

    def test_completed_batch_cannot_be_cancelled(self, started):
        for step in started.steps:
            started.start_step(step.id, at(7))
            started.complete_step(step.id, at(7))

        with pytest.raises(InvalidTransitionError):
            started.cancel(None, at(8), "lead")


class TestProgressUpdates:
    @pytest.mark.parametrize("value", [-1, 101, 150.5])
    def test_progress_out_of_range_is_rejected(self, started, value):
        mix = started.steps[0]

        with pytest.raises(InvalidProgressError):
            started.update_step(mix.id, at(6), "baker-1", progress=value)

        assert mix.progress == 0
        assert started.get_domain_events() == []

    def test_in_progress_status_starts_step(self, started):
        mix = started.steps[0]
        started.update_step(
            mix.id, at(6, 2), "baker-1", progress=30, status=StepStatus.IN_PROGRESS
        )

        assert mix.status == StepStatus.IN_PROGRESS
        assert mix.actual_start == at(6, 2)
        assert mix.progress == 30
        assert event_names(started) == ["step_started", "step_progress_updated"]

    def test_completed_status_completes_and_advances(self, started):
        mix = started.steps[0]
        result = started.update_step(mix.id, at(6, 15), "baker-1", status=StepStatus.COMPLETED)

        assert mix.status == StepStatus.COMPLETED
        assert result.advanced
        assert started.current_step_index == 1

    def test_failed_status_fails_batch(self, started):
        started.update_step(
            started.steps[0].id, at(6, 5), "baker-1", status=StepStatus.FAILED, notes="burnt"
        )
        assert started.status == BatchStatus.FAILED

    def test_waiting_status_blocks_step(self, started):
        mix = started.steps[0]
        started.update_step(
            mix.id, at(6, 5), "baker-1", status=StepStatus.WAITING, notes="no flour"
        )

        assert mix.status == StepStatus.WAITING
        assert mix.wait_reason == "no flour"

    def test_ready_status_requires_predecessors(self, started):
        with pytest.raises(InvalidTransitionError):
            started.update_step(started.steps[2].id, at(6), "baker-1", status=StepStatus.READY)

    def test_progress_of_batch(self, started):
        assert started.progress == 0
        mix = started.steps[0]
        started.start_step(mix.id, at(6))
        started.complete_step(mix.id, at(6, 15))
        assert started.progress == 33


class TestIssuesAndQuality:
    def _issue(self, batch, severity, step_id=None) -> Issue:
        return Issue(
            batch_id=batch.id,
            step_id=step_id,
            type="equipment",
            severity=severity,
            description="Oven temperature unstable",
            reported_by="baker-1",
            reported_at=at(7),
        )

    def test_critical_issue_pauses_running_batch(self, started):
        paused = started.report_issue(self._issue(started, IssueSeverity.CRITICAL), at(7))

        assert paused is True
        assert started.status == BatchStatus.WAITING
        assert len(started.open_issues) == 1
        names = event_names(started)
        assert names == ["batch_paused", "production_issue_reported"]

    def test_critical_issue_on_waiting_batch_does_not_pause_again(self, started):
        started.pause("break", at(6, 30), "lead")
        paused = started.report_issue(self._issue(started, IssueSeverity.CRITICAL), at(7))

        assert paused is False
        assert started.status == BatchStatus.WAITING

    def test_low_issue_is_recorded_only(self, started):
        paused = started.report_issue(self._issue(started, IssueSeverity.LOW), at(7))

        assert paused is False
        assert started.status == BatchStatus.IN_PROGRESS

    def test_issue_for_other_batch_rejected(self, started):
        issue = Issue(
            batch_id=uuid4(),
            type="equipment",
            reported_by="baker-1",
            reported_at=at(7),
        )
        with pytest.raises(ValidationError):
            started.add_issue(issue)

    def test_issue_with_unknown_step_rejected(self, started):
        with pytest.raises(NotFoundError):
            started.add_issue(self._issue(started, IssueSeverity.LOW, step_id=uuid4()))

    def test_resolve_issue(self, started):
        issue = self._issue(started, IssueSeverity.HIGH)
        started.report_issue(issue, at(7))

        resolved = started.resolve_issue(issue.id, "lead", at(7, 30), "recalibrated")

        assert resolved.resolved_by == "lead"
        assert started.open_issues == []
        with pytest.raises(InvalidTransitionError):
            started.resolve_issue(issue.id, "lead", at(7, 40))

    def test_failed_quality_check_opens_issue(self, started):
        """Scores 50 and 60 average 55, below the passing score of 70."""
        mix = started.steps[0]
        check = QualityCheck.evaluate(
            mix.id,
            [QualityCheckItem(name="texture", score=50), QualityCheckItem(name="colour", score=60)],
            "qa-1",
            at(6, 20),
        )

        issue = started.record_quality_check(check, at(6, 20))

        assert check.overall_score == 55
        assert check.passed is False
        assert mix.has_issues is True
        assert issue is not None
        assert issue.type == QUALITY_FAILURE
        assert issue.severity == IssueSeverity.HIGH
        assert started.status == BatchStatus.IN_PROGRESS

    def test_passed_quality_check(self, started):
        mix = started.steps[0]
        check = QualityCheck.evaluate(mix.id, [QualityCheckItem(score=90)], "qa-1", at(6, 20))

        assert started.record_quality_check(check, at(6, 20)) is None
        assert mix.has_issues is False
        assert started.issues == []


class TestDelays:
    def test_delay_after_planned_end(self, started):
        assert not started.is_delayed(at(9))
        assert started.is_delayed(at(9, 1))
        assert started.delay_minutes(at(9, 45)) == 45

    def test_terminal_batch_is_never_delayed(self, started):
        started.cancel(None, at(7), "lead")
        assert started.delay_minutes(at(12)) == 0
