"""Daily production schedule aggregate root."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from ...shared.base import AggregateRoot
from ...shared.exceptions import InvalidTransitionError
from ..value_objects.capacity import Station, Worker
from ..value_objects.enums import ScheduleStatus
from ..value_objects.time_window import TimeWindow, parse_clock_time


class ProductionSchedule(AggregateRoot):
    """
    One production day: its roster, its planned batches and their roll-ups.

    The resource ledger of the day is keyed by ``schedule_date``; the schedule
    keeps the roster it was planned with so the ledger can be rebuilt.
    """

    schedule_date: date
    workday_start: time = time(6, 0)
    workday_end: time = time(18, 0)
    status: ScheduleStatus = ScheduleStatus.DRAFT

    workers: tuple[Worker, ...] = ()
    stations: tuple[Station, ...] = ()

    planned_batch_ids: list[UUID] = Field(default_factory=list)
    completed_batch_ids: list[UUID] = Field(default_factory=list)

    total_planned_items: int = Field(default=0, ge=0)
    estimated_production_minutes: float = Field(default=0, ge=0)
    total_staff_hours: float = Field(default=0, ge=0)
    planned_efficiency_score: int | None = None

    planning_notes: str | None = None
    alerts: list[str] = Field(default_factory=list)
    quality_issue_count: int = Field(default=0, ge=0)

    actual_start: datetime | None = None
    actual_end: datetime | None = None
    created_by: str | None = None

    @field_validator("workday_start", "workday_end", mode="before")
    @classmethod
    def _parse_clock(cls, v):
        return parse_clock_time(v) if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_workday(self) -> "ProductionSchedule":
        if self.workday_end <= self.workday_start:
            raise ValueError("workday_end must be after workday_start")
        return self

    def is_valid(self) -> bool:
        """Validate business rules."""
        return set(self.completed_batch_ids) <= set(self.planned_batch_ids)

    # ------------------------------------------------------------------
    # Derived fields
    # ------------------------------------------------------------------

    @property
    def workday(self) -> TimeWindow:
        return TimeWindow.on_date(self.schedule_date, self.workday_start, self.workday_end)

    @property
    def planned_workday_minutes(self) -> int:
        return round(self.workday.duration_minutes())

    @property
    def actual_workday_minutes(self) -> int | None:
        if self.actual_start is None or self.actual_end is None:
            return None
        return round((self.actual_end - self.actual_start).total_seconds() / 60)

    @property
    def completion_percentage(self) -> int:
        if not self.planned_batch_ids:
            return 0
        return round(len(self.completed_batch_ids) / len(self.planned_batch_ids) * 100)

    @property
    def active_batch_ids(self) -> list[UUID]:
        """Planned batches that have not completed yet."""
        completed = set(self.completed_batch_ids)
        return [batch_id for batch_id in self.planned_batch_ids if batch_id not in completed]

    @property
    def staff_utilization(self) -> int:
        """Staff hours against one workday, in percent."""
        minutes = self.planned_workday_minutes
        if not self.total_staff_hours or not minutes:
            return 0
        return round(self.total_staff_hours * 60 / minutes * 100)

    @property
    def capacity_utilization(self) -> int:
        """Estimated production minutes against available staff minutes, in percent."""
        if not self.estimated_production_minutes or not self.total_staff_hours:
            return 0
        return round(self.estimated_production_minutes / (self.total_staff_hours * 60) * 100)

    def is_overrun(self, now: datetime) -> bool:
        if self.status != ScheduleStatus.ACTIVE:
            return False
        return now > self.workday.end_time

    def needs_attention(self, now: datetime) -> bool:
        return self.is_overrun(now) or bool(self.alerts) or self.quality_issue_count > 0

    @property
    def efficiency_score(self) -> int | None:
        """Score of a completed day; ``None`` until the schedule is completed."""
        if self.status != ScheduleStatus.COMPLETED:
            return None
        score = 100.0
        if self.actual_end is not None and self.actual_end > self.workday.end_time:
            score -= 20
        if self.quality_issue_count:
            score -= min(self.quality_issue_count * 10, 30)
        score = round(score * (self.completion_percentage / 100))
        return max(score, 0)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, target: ScheduleStatus, at: datetime) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                "schedule", self.id, self.status.value, target.value
            )
        self.status = target
        self.mark_updated(at)

    def attach_plan(
        self,
        batch_ids: list[UUID],
        total_planned_items: int,
        estimated_production_minutes: float,
        total_staff_hours: float,
        efficiency_score: int | None = None,
        notes: str | None = None,
    ) -> None:
        """Bind planner output to a draft schedule."""
        if self.status != ScheduleStatus.DRAFT:
            raise InvalidTransitionError(
                "schedule", self.id, self.status.value, "attach_plan",
                "plans can only be attached to draft schedules",
            )
        self.planned_batch_ids = list(batch_ids)
        self.total_planned_items = total_planned_items
        self.estimated_production_minutes = estimated_production_minutes
        self.total_staff_hours = total_staff_hours
        self.planned_efficiency_score = efficiency_score
        self.planning_notes = notes

    def mark_planned(self, at: datetime) -> None:
        self._transition(ScheduleStatus.PLANNED, at)

    def activate(self, at: datetime) -> None:
        self._transition(ScheduleStatus.ACTIVE, at)
        if self.actual_start is None:
            self.actual_start = at

    def complete(self, at: datetime) -> None:
        self._transition(ScheduleStatus.COMPLETED, at)
        self.actual_end = at

    def cancel(self, at: datetime) -> None:
        self._transition(ScheduleStatus.CANCELLED, at)

    def reopen(self, at: datetime) -> None:
        self._transition(ScheduleStatus.DRAFT, at)

    def record_batch_completion(self, batch_id: UUID) -> None:
        if batch_id in self.planned_batch_ids and batch_id not in self.completed_batch_ids:
            self.completed_batch_ids = [*self.completed_batch_ids, batch_id]

    def record_quality_issue(self) -> None:
        self.quality_issue_count += 1

    def add_alert(self, message: str) -> None:
        self.alerts = [*self.alerts, message]
