"""Production step entity: one ordered stage of a batch."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ...shared.base import Entity
from ...shared.exceptions import (
    InvalidProgressError,
    InvalidTransitionError,
    ValidationError,
)
from ..value_objects.enums import StepKind, StepStatus
from ..value_objects.quality import QualityCheck
from ..value_objects.time_window import delay_minutes, minutes_between


class ProductionStep(Entity):
    """
    A single stage of a production batch derived from a workflow step template.

    Steps are owned by their batch; ``batch_id`` is a non-owning back
    reference. ``step_index`` is 0-based and defines the total order within the
    batch. All timestamps are supplied by the caller so the entity stays free of
    clock access.
    """

    batch_id: UUID
    step_index: int = Field(ge=0)
    name: str = Field(min_length=1, max_length=120)
    kind: StepKind = StepKind.ACTIVE
    status: StepStatus = StepStatus.PENDING

    planned_start: datetime | None = None
    planned_end: datetime | None = None
    planned_duration_minutes: int = Field(default=0, ge=0)
    actual_start: datetime | None = None
    actual_end: datetime | None = None

    progress: int = Field(default=0, ge=0, le=100)
    quality_results: list[QualityCheck] = Field(default_factory=list)
    has_issues: bool = False

    activities: list[str] = Field(default_factory=list)
    completed_activities: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    required_equipment: list[str] = Field(default_factory=list)
    notes: str | None = None
    completed_by: str | None = None

    # Pause / block bookkeeping
    previous_status: StepStatus | None = None
    wait_reason: str | None = None

    def is_valid(self) -> bool:
        """Validate business rules."""
        return (
            0 <= self.progress <= 100
            and self.step_index >= 0
            and set(self.completed_activities) <= set(self.activities)
        )

    # ------------------------------------------------------------------
    # Derived fields
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.status == StepStatus.IN_PROGRESS

    @property
    def is_finished(self) -> bool:
        return self.status.is_finished

    @property
    def actual_duration_minutes(self) -> int | None:
        if self.actual_start and self.actual_end:
            return round(minutes_between(self.actual_start, self.actual_end))
        return None

    @property
    def activity_progress(self) -> int:
        if not self.activities:
            return 100
        done = len(set(self.completed_activities) & set(self.activities))
        return round(done / len(self.activities) * 100)

    @property
    def next_activity(self) -> str | None:
        for activity in self.activities:
            if activity not in self.completed_activities:
                return activity
        return None

    def is_overdue(self, now: datetime) -> bool:
        if self.status.is_terminal or self.planned_end is None:
            return False
        return now > self.planned_end

    def delay_minutes(self, now: datetime) -> int:
        if not self.is_overdue(now):
            return 0
        return delay_minutes(self.planned_end, now)

    def needs_attention(self, now: datetime) -> bool:
        return self.has_issues or self.is_overdue(now)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: StepStatus, at: datetime, reason: str | None = None) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                "step", self.id, self.status.value, target.value, reason
            )
        self.status = target
        self.mark_updated(at)

    def ensure_can_transition(self, target: StepStatus) -> None:
        """Raise if ``target`` is not reachable from the current status."""
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError("step", self.id, self.status.value, target.value)

    def mark_ready(self, at: datetime) -> None:
        """Make the step available to be started."""
        self._transition(StepStatus.READY, at)
        self.wait_reason = None

    def start(self, at: datetime) -> None:
        """
        Begin work on the step.

        Callers must have verified that every lower-indexed step is finished.
        """
        self._transition(StepStatus.IN_PROGRESS, at)
        if self.actual_start is None:
            self.actual_start = at
        self.wait_reason = None

    def block(self, reason: str, at: datetime) -> None:
        """Put the step in ``waiting`` because a precondition is unmet."""
        previous = self.status
        self._transition(StepStatus.WAITING, at, reason)
        self.previous_status = previous
        self.wait_reason = reason

    def pause(self, reason: str | None, at: datetime) -> None:
        if self.status != StepStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                "step", self.id, self.status.value, StepStatus.WAITING.value,
                "only an in-progress step can be paused",
            )
        self.block(reason or "paused", at)

    def resume(self, at: datetime) -> None:
        """Restore the status the step had before it was paused or blocked."""
        if self.status != StepStatus.WAITING:
            raise InvalidTransitionError(
                "step", self.id, self.status.value, "resume", "step is not waiting"
            )
        target = self.previous_status or StepStatus.IN_PROGRESS
        self._transition(target, at)
        self.previous_status = None
        self.wait_reason = None

    def complete(
        self,
        at: datetime,
        completed_by: str | None = None,
        quality_results: list[QualityCheck] | None = None,
        notes: str | None = None,
    ) -> None:
        """Finish the step. Only valid from ``in_progress``."""
        if self.status != StepStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                "step", self.id, self.status.value, StepStatus.COMPLETED.value,
                "step is not in progress",
            )
        self._transition(StepStatus.COMPLETED, at)
        self.progress = 100
        self.actual_end = at
        self.completed_by = completed_by
        if quality_results:
            for check in quality_results:
                self.record_quality_check(check)
        if notes:
            self.notes = notes

    def reset(self, at: datetime) -> None:
        """Send a waiting step back to ``pending``."""
        self._transition(StepStatus.PENDING, at)
        self.previous_status = None
        self.wait_reason = None

    def skip(self, reason: str | None, at: datetime) -> None:
        self._transition(StepStatus.SKIPPED, at, reason)
        self.actual_end = at
        if reason:
            self.notes = reason

    def fail(self, reason: str | None, at: datetime) -> None:
        self._transition(StepStatus.FAILED, at, reason)
        self.actual_end = at
        self.has_issues = True
        if reason:
            self.notes = reason

    # ------------------------------------------------------------------
    # Progress and quality
    # ------------------------------------------------------------------

    def set_progress(self, value: int | float) -> None:
        if not 0 <= value <= 100:
            raise InvalidProgressError(value)
        self.progress = int(value)

    def complete_activity(self, activity: str, at: datetime) -> None:
        if activity not in self.activities:
            raise ValidationError(
                "activity", activity, f"Step '{self.name}' has no activity '{activity}'",
                error_code="UNKNOWN_ACTIVITY",
            )
        if activity not in self.completed_activities:
            self.completed_activities = [*self.completed_activities, activity]
            self.mark_updated(at)

    def record_quality_check(self, check: QualityCheck) -> None:
        self.quality_results = [*self.quality_results, check]
        if not check.passed:
            self.has_issues = True
