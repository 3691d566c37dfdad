"""
Production batch aggregate root.

A batch is one run of a workflow for a planned quantity. It owns its ordered
steps and its issues and enforces the batch and step state machines. Methods
take the current time as an argument; the execution engine owns the clock.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from ...shared.base import AggregateRoot
from ...shared.exceptions import (
    InvalidProgressError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..events.domain_events import (
    BatchCancelled,
    BatchFailed,
    BatchPaused,
    BatchResumed,
    BatchStarted,
    BatchWaiting,
    IssueResolved,
    ProductionIssueReported,
    QualityCheckCompleted,
    StepCompleted,
    StepProgressUpdated,
    StepSkipped,
    StepStarted,
    WorkflowAdvanced,
    WorkflowCompleted,
)
from ..value_objects.enums import (
    AdvanceOutcome,
    BatchStatus,
    IssueSeverity,
    Priority,
    StepStatus,
)
from ..value_objects.quality import QualityCheck
from ..value_objects.results import AdvanceResult
from ..value_objects.time_window import delay_minutes, minutes_between
from .issue import QUALITY_FAILURE, Issue
from .step import ProductionStep


class ProductionBatch(AggregateRoot):
    """
    Production batch aggregate root.

    Invariants:
    - step indices are contiguous from 0
    - a batch is only ``completed`` when every step is completed or skipped
    - a step is only ``in_progress`` when every lower-indexed step is finished
    - ``actual_quantity`` is only set once the batch is terminal
    """

    name: str = Field(min_length=1, max_length=200)
    workflow_id: str
    product_id: str | None = None
    schedule_id: UUID | None = None

    planned_quantity: int = Field(gt=0)
    actual_quantity: int | None = Field(default=None, ge=0)
    unit: str = "pieces"

    planned_start: datetime
    planned_end: datetime
    actual_start: datetime | None = None
    actual_end: datetime | None = None

    status: BatchStatus = BatchStatus.PLANNED
    current_step_index: int = Field(default=0, ge=0)
    priority: Priority = Priority.MEDIUM

    assigned_staff_ids: list[str] = Field(default_factory=list)
    required_equipment: list[str] = Field(default_factory=list)
    allocated_equipment: list[str] = Field(default_factory=list)

    steps: list[ProductionStep] = Field(default_factory=list)
    issues: list[Issue] = Field(default_factory=list)
    notes: str | None = None

    created_by: str | None = None
    previous_status: BatchStatus | None = None
    pause_reason: str | None = None
    wait_reason: str | None = None

    @model_validator(mode="after")
    def _check_steps(self) -> "ProductionBatch":
        if self.planned_end < self.planned_start:
            raise ValueError("planned_end must not be before planned_start")
        indices = [step.step_index for step in self.steps]
        if indices != list(range(len(self.steps))):
            raise ValueError("step indices must be contiguous from 0 and ordered")
        return self

    def is_valid(self) -> bool:
        """Validate business rules."""
        if self.status == BatchStatus.COMPLETED and not self.all_steps_finished:
            return False
        if self.actual_quantity is not None and not self.status.is_terminal:
            return False
        for step in self.steps:
            if step.status == StepStatus.IN_PROGRESS and self.validate_step_preconditions(
                step.step_index
            ):
                return False
        return all(step.is_valid() for step in self.steps)

    # ------------------------------------------------------------------
    # Lookups and derived fields
    # ------------------------------------------------------------------

    def get_step(self, step_id: UUID) -> ProductionStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise NotFoundError("production_step", step_id)

    def has_step(self, step_id: UUID) -> bool:
        return any(step.id == step_id for step in self.steps)

    def step_at(self, index: int) -> ProductionStep:
        if not 0 <= index < len(self.steps):
            raise ValidationError(
                "step_index", index, f"Batch has no step at index {index}",
                error_code="INVALID_STEP_INDEX",
            )
        return self.steps[index]

    def get_issue(self, issue_id: UUID) -> Issue:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        raise NotFoundError("issue", issue_id)

    @property
    def current_step(self) -> ProductionStep | None:
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    @property
    def all_steps_finished(self) -> bool:
        return all(step.is_finished for step in self.steps)

    @property
    def progress(self) -> int:
        """Percentage of completed steps; 100 once the batch is completed."""
        if self.status == BatchStatus.COMPLETED:
            return 100
        if not self.steps:
            return 0
        completed = sum(1 for step in self.steps if step.status == StepStatus.COMPLETED)
        return round(completed / len(self.steps) * 100)

    @property
    def open_issues(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.is_open]

    @property
    def has_quality_issues(self) -> bool:
        return any(step.has_issues for step in self.steps)

    @property
    def planned_duration_minutes(self) -> int:
        return round(minutes_between(self.planned_start, self.planned_end))

    def actual_duration_minutes(self, now: datetime | None = None) -> int | None:
        """Minutes since the batch started, up to its end (or ``now``)."""
        if self.actual_start is None:
            return None
        end = self.actual_end or now
        if end is None:
            return None
        return round(minutes_between(self.actual_start, end))

    def is_delayed(self, now: datetime) -> bool:
        if self.status.is_terminal:
            return False
        return now > self.planned_end

    def delay_minutes(self, now: datetime) -> int:
        if not self.is_delayed(now):
            return 0
        return delay_minutes(self.planned_end, now)

    def validate_step_preconditions(self, step_index: int) -> str | None:
        """
        Check that every step before ``step_index`` is completed or skipped.

        Returns the reason the step cannot run, or ``None`` when it can.
        """
        for step in self.steps[:step_index]:
            if not step.is_finished:
                return (
                    f"Step '{step.name}' (index {step.step_index}) is "
                    f"{step.status.value}, not completed"
                )
        return None

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    def _ensure_transition(self, target: BatchStatus, reason: str | None = None) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, target.value, reason
            )

    def _ensure_in_progress(self, attempted: str) -> None:
        if self.status != BatchStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, attempted, "batch is not in progress"
            )

    def assign_resources(self, staff_ids: list[str], equipment_ids: list[str]) -> None:
        """Record the staff and stations the planner allocated."""
        if not self.status.is_pending:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, "assign_resources",
                "resources can only change before the batch starts",
            )
        self.assigned_staff_ids = list(staff_ids)
        self.allocated_equipment = list(equipment_ids)

    def mark_ready(self, at: datetime) -> None:
        self._ensure_transition(BatchStatus.READY)
        self.status = BatchStatus.READY
        self.mark_updated(at)

    def start(self, at: datetime, started_by: str) -> None:
        """Start production. The caller must have reserved resources first."""
        if not self.status.is_pending:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, BatchStatus.IN_PROGRESS.value,
                "only planned or ready batches can be started",
            )
        self.status = BatchStatus.IN_PROGRESS
        self.actual_start = at
        self.current_step_index = 0
        if self.steps and self.steps[0].status == StepStatus.PENDING:
            self.steps[0].mark_ready(at)
        self.mark_updated(at)
        self.add_domain_event(
            BatchStarted(
                batch_id=self.id,
                occurred_at=at,
                started_by=started_by,
                step_count=len(self.steps),
            )
        )

    def pause(self, reason: str | None, at: datetime, paused_by: str) -> None:
        """Pause the batch and its running step, remembering their statuses."""
        if self.status != BatchStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, BatchStatus.WAITING.value,
                "only in-progress batches can be paused",
            )
        previous = self.status
        for step in self.steps:
            if step.status == StepStatus.IN_PROGRESS:
                step.pause(reason, at)
        self.previous_status = previous
        self.status = BatchStatus.WAITING
        self.pause_reason = reason
        self.mark_updated(at)
        self.add_domain_event(
            BatchPaused(
                batch_id=self.id,
                occurred_at=at,
                reason=reason,
                paused_by=paused_by,
                previous_status=previous.value,
            )
        )

    def resume(self, at: datetime, resumed_by: str) -> None:
        """Restore the statuses recorded by :meth:`pause`."""
        if self.status != BatchStatus.WAITING:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, BatchStatus.IN_PROGRESS.value,
                "only waiting batches can be resumed",
            )
        restored = self.previous_status or BatchStatus.IN_PROGRESS
        for step in self.steps:
            if step.status == StepStatus.WAITING:
                step.resume(at)
        self.status = restored
        self.previous_status = None
        self.pause_reason = None
        self.wait_reason = None
        self.mark_updated(at)
        self.add_domain_event(
            BatchResumed(
                batch_id=self.id,
                occurred_at=at,
                resumed_by=resumed_by,
                restored_status=restored.value,
            )
        )

    def cancel(self, reason: str | None, at: datetime, cancelled_by: str) -> None:
        self._ensure_transition(BatchStatus.CANCELLED, reason)
        self.status = BatchStatus.CANCELLED
        self.actual_end = at
        if reason:
            self.notes = reason
        self.mark_updated(at)
        self.add_domain_event(
            BatchCancelled(
                batch_id=self.id, occurred_at=at, reason=reason, cancelled_by=cancelled_by
            )
        )

    def fail(self, reason: str | None, at: datetime, failed_step_id: UUID | None = None) -> None:
        self._ensure_transition(BatchStatus.FAILED, reason)
        self.status = BatchStatus.FAILED
        self.actual_end = at
        if reason:
            self.notes = reason
        self.mark_updated(at)
        self.add_domain_event(
            BatchFailed(
                batch_id=self.id,
                occurred_at=at,
                reason=reason,
                failed_step_id=failed_step_id,
            )
        )

    def complete(self, at: datetime, actual_quantity: int | None = None) -> None:
        """Finish the batch once every step is completed or skipped."""
        self._ensure_transition(BatchStatus.COMPLETED)
        if not self.all_steps_finished:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, BatchStatus.COMPLETED.value,
                "not every step is completed or skipped",
            )
        if actual_quantity is not None and actual_quantity < 0:
            raise ValidationError(
                "actual_quantity", actual_quantity, "Quantity cannot be negative",
                error_code="INVALID_QUANTITY",
            )
        self.status = BatchStatus.COMPLETED
        self.actual_end = at
        self.actual_quantity = (
            actual_quantity if actual_quantity is not None else self.planned_quantity
        )
        self.mark_updated(at)
        self.add_domain_event(
            WorkflowCompleted(
                batch_id=self.id,
                occurred_at=at,
                actual_quantity=self.actual_quantity,
                actual_duration_minutes=self.actual_duration_minutes(at),
            )
        )

    # ------------------------------------------------------------------
    # Step flow
    # ------------------------------------------------------------------

    def advance(
        self, from_step_index: int, at: datetime, actual_quantity: int | None = None
    ) -> AdvanceResult:
        """Move past the completed step at ``from_step_index``."""
        self._ensure_in_progress("advance")
        step = self.step_at(from_step_index)
        if step.status != StepStatus.COMPLETED:
            raise InvalidTransitionError(
                "step", step.id, step.status.value, "advance", "step is not completed"
            )
        return self._advance_past(from_step_index, at, actual_quantity)

    def _advance_past(
        self, from_step_index: int, at: datetime, actual_quantity: int | None = None
    ) -> AdvanceResult:
        next_index = from_step_index + 1
        # Steps skipped ahead of time are passed over.
        while next_index < len(self.steps) and self.steps[next_index].is_finished:
            next_index += 1

        if next_index >= len(self.steps):
            self.current_step_index = max(len(self.steps) - 1, 0)
            self.complete(at, actual_quantity)
            return AdvanceResult(
                batch_id=self.id,
                outcome=AdvanceOutcome.COMPLETED,
                current_step_index=self.current_step_index,
            )

        next_step = self.steps[next_index]
        reason = self.validate_step_preconditions(next_index)
        if reason:
            if next_step.status != StepStatus.WAITING:
                next_step.block(reason, at)
            self.previous_status = self.status
            self.status = BatchStatus.WAITING
            self.wait_reason = reason
            self.current_step_index = next_index
            self.mark_updated(at)
            self.add_domain_event(
                BatchWaiting(
                    batch_id=self.id,
                    occurred_at=at,
                    step_id=next_step.id,
                    step_index=next_index,
                    reason=reason,
                )
            )
            return AdvanceResult(
                batch_id=self.id,
                outcome=AdvanceOutcome.WAITING,
                current_step_index=next_index,
                next_step_id=next_step.id,
                reason=reason,
            )

        if next_step.status in (StepStatus.PENDING, StepStatus.WAITING):
            next_step.mark_ready(at)
        self.current_step_index = next_index
        self.mark_updated(at)
        self.add_domain_event(
            WorkflowAdvanced(
                batch_id=self.id,
                occurred_at=at,
                from_step_index=from_step_index,
                to_step_index=next_index,
                next_step_id=next_step.id,
                next_step_name=next_step.name,
            )
        )
        return AdvanceResult(
            batch_id=self.id,
            outcome=AdvanceOutcome.ADVANCED,
            current_step_index=next_index,
            next_step_id=next_step.id,
        )

    def start_step(self, step_id: UUID, at: datetime) -> ProductionStep:
        """Begin work on a step whose predecessors are all finished."""
        self._ensure_in_progress("start_step")
        step = self.get_step(step_id)
        step.ensure_can_transition(StepStatus.IN_PROGRESS)
        reason = self.validate_step_preconditions(step.step_index)
        if reason:
            raise InvalidTransitionError(
                "step", step.id, step.status.value, StepStatus.IN_PROGRESS.value, reason
            )
        step.start(at)
        self.current_step_index = step.step_index
        self.mark_updated(at)
        self.add_domain_event(
            StepStarted(
                batch_id=self.id,
                occurred_at=at,
                step_id=step.id,
                step_index=step.step_index,
                step_name=step.name,
            )
        )
        return step

    def complete_step(
        self,
        step_id: UUID,
        at: datetime,
        completed_by: str | None = None,
        quality_results: list[QualityCheck] | None = None,
        notes: str | None = None,
        actual_quantity: int | None = None,
    ) -> AdvanceResult:
        """Complete an in-progress step and advance the batch."""
        self._ensure_in_progress("complete_step")
        step = self.get_step(step_id)
        step.complete(at, completed_by, quality_results, notes)
        self.add_domain_event(
            StepCompleted(
                batch_id=self.id,
                occurred_at=at,
                step_id=step.id,
                step_index=step.step_index,
                completed_by=completed_by,
                actual_duration_minutes=step.actual_duration_minutes,
            )
        )
        return self.advance(step.step_index, at, actual_quantity)

    def skip_step(self, step_id: UUID, reason: str | None, at: datetime) -> AdvanceResult | None:
        """
        Mark a step as skipped.

        Skipping the current step advances the batch; skipping a later step
        only marks it so the batch passes over it when it gets there.
        """
        self._ensure_in_progress("skip_step")
        step = self.get_step(step_id)
        step.skip(reason, at)
        self.mark_updated(at)
        self.add_domain_event(
            StepSkipped(
                batch_id=self.id,
                occurred_at=at,
                step_id=step.id,
                step_index=step.step_index,
                reason=reason,
            )
        )
        if step.step_index == self.current_step_index:
            return self._advance_past(step.step_index, at)
        return None

    def fail_step(self, step_id: UUID, reason: str | None, at: datetime) -> None:
        """Fail a step; a failed step fails its batch."""
        if not self.status.is_active:
            raise InvalidTransitionError(
                "batch", self.id, self.status.value, BatchStatus.FAILED.value,
                "batch is not running",
            )
        step = self.get_step(step_id)
        step.fail(reason, at)
        self.fail(reason or f"Step '{step.name}' failed", at, failed_step_id=step.id)

    def add_issue(self, issue: Issue) -> None:
        if issue.batch_id != self.id:
            raise ValidationError(
                "batch_id", str(issue.batch_id), "Issue belongs to another batch",
                error_code="ISSUE_BATCH_MISMATCH",
            )
        if issue.step_id is not None and not self.has_step(issue.step_id):
            raise NotFoundError("production_step", issue.step_id)
        self.issues = [*self.issues, issue]

    def update_step(
        self,
        step_id: UUID,
        at: datetime,
        updated_by: str,
        progress: float | None = None,
        status: StepStatus | None = None,
        notes: str | None = None,
    ) -> AdvanceResult | None:
        """
        Apply a progress report from the floor.

        A status change goes through the step state machine. ``completed``
        completes the step and advances the batch, ``failed`` fails the batch
        and ``skipped`` skips the step. Returns the advance result when the
        batch moved.
        """
        if progress is not None and not 0 <= progress <= 100:
            raise InvalidProgressError(progress)
        step = self.get_step(step_id)

        if status == StepStatus.COMPLETED:
            if step.status != StepStatus.IN_PROGRESS:
                self.start_step(step_id, at)
            return self.complete_step(step_id, at, completed_by=updated_by, notes=notes)
        if status == StepStatus.FAILED:
            self.fail_step(step_id, notes, at)
            return None
        if status == StepStatus.SKIPPED:
            return self.skip_step(step_id, notes, at)

        if status == StepStatus.IN_PROGRESS and step.status != StepStatus.IN_PROGRESS:
            self.start_step(step_id, at)
        elif status == StepStatus.READY and step.status != StepStatus.READY:
            reason = self.validate_step_preconditions(step.step_index)
            if reason:
                raise InvalidTransitionError(
                    "step", step.id, step.status.value, StepStatus.READY.value, reason
                )
            step.mark_ready(at)
        elif status == StepStatus.WAITING and step.status != StepStatus.WAITING:
            step.block(notes or "Waiting", at)
        elif status == StepStatus.PENDING and step.status != StepStatus.PENDING:
            step.reset(at)

        if progress is not None:
            step.set_progress(progress)
        if notes:
            step.notes = notes
        step.mark_updated(at)
        self.mark_updated(at)
        self.add_domain_event(
            StepProgressUpdated(
                batch_id=self.id,
                occurred_at=at,
                step_id=step.id,
                progress=step.progress,
                status=step.status.value,
                updated_by=updated_by,
            )
        )
        return None

    def report_issue(self, issue: Issue, at: datetime) -> bool:
        """
        Record an issue. A critical issue pauses a running batch.

        Returns whether the batch was paused.
        """
        self.add_issue(issue)
        auto_paused = False
        if issue.severity.pauses_batch and self.status == BatchStatus.IN_PROGRESS:
            self.pause(f"Critical issue: {issue.description or issue.type}", at, issue.reported_by)
            auto_paused = True
        self.mark_updated(at)
        self.add_domain_event(
            ProductionIssueReported(
                batch_id=self.id,
                occurred_at=at,
                issue_id=issue.id,
                step_id=issue.step_id,
                issue_type=issue.type,
                severity=issue.severity.value,
                reported_by=issue.reported_by,
                auto_paused=auto_paused,
                escalated=issue.severity.escalates,
            )
        )
        return auto_paused

    def resolve_issue(
        self, issue_id: UUID, resolved_by: str, at: datetime, resolution: str | None = None
    ) -> Issue:
        issue = self.get_issue(issue_id)
        issue.resolve(resolved_by, at, resolution)
        self.mark_updated(at)
        self.add_domain_event(
            IssueResolved(
                batch_id=self.id, occurred_at=at, issue_id=issue.id, resolved_by=resolved_by
            )
        )
        return issue

    def record_quality_check(self, check: QualityCheck, at: datetime) -> Issue | None:
        """
        Attach a quality check to its step.

        A failed check flags the step and opens a high severity
        ``quality_failure`` issue, which is returned.
        """
        step = self.get_step(check.step_id)
        step.record_quality_check(check)
        self.mark_updated(at)
        self.add_domain_event(
            QualityCheckCompleted(
                batch_id=self.id,
                occurred_at=at,
                step_id=step.id,
                check_id=check.id,
                overall_score=check.overall_score,
                passed=check.passed,
                checked_by=check.performed_by,
            )
        )
        if check.passed:
            return None

        issue = Issue(
            batch_id=self.id,
            step_id=step.id,
            type=QUALITY_FAILURE,
            severity=IssueSeverity.HIGH,
            description=(
                f"Quality check failed for step '{step.name}' "
                f"(score {check.overall_score}, passing {check.passing_score:g})"
            ),
            impact="quality",
            reported_by=check.performed_by,
            reported_at=at,
        )
        self.report_issue(issue, at)
        return issue
