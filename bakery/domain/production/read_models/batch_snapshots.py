"""
Batch snapshots and production overview

Read-only projections of batches for monitoring, dashboards and the monitor
sink. Derived values (progress, delays, durations) are computed here from the
aggregates and never stored.
"""

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from ...shared.base import ValueObject
from ..entities.batch import ProductionBatch
from ..entities.step import ProductionStep
from ..value_objects.enums import BatchStatus, IssueSeverity

TIMELINE_LIMIT = 50
LONG_DELAY_MINUTES = 60


class ProductionOverview(ValueObject):
    total_batches: int = 0
    active_batches: int = 0
    pending_batches: int = 0
    waiting_batches: int = 0
    completed_batches: int = 0
    delayed_batches: int = 0
    total_items: int = 0
    completed_items: int = 0
    efficiency: int = 0


class ProductionAlert(ValueObject):
    type: str
    severity: IssueSeverity
    batch_id: UUID
    batch_name: str
    step_id: UUID | None = None
    message: str
    timestamp: datetime


class TimelineEvent(ValueObject):
    type: str
    batch_id: UUID
    batch_name: str
    step_id: UUID | None = None
    step_name: str | None = None
    timestamp: datetime


class ProductionStatus(ValueObject):
    """Dashboard view of a production day."""

    production_date: date | None = None
    overview: ProductionOverview
    active_batches: list[dict[str, Any]] = Field(default_factory=list)
    pending_batches: list[dict[str, Any]] = Field(default_factory=list)
    waiting_batches: list[dict[str, Any]] = Field(default_factory=list)
    completed_batches: list[dict[str, Any]] = Field(default_factory=list)
    alerts: list[ProductionAlert] = Field(default_factory=list)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    generated_at: datetime


def enrich_step(step: ProductionStep, now: datetime) -> dict[str, Any]:
    """Serialize a step with its derived timing fields."""
    snapshot = step.model_dump(mode="json")
    if step.actual_start is not None:
        end = step.actual_end or now
        snapshot["actual_duration_minutes"] = round((end - step.actual_start).total_seconds() / 60)
    else:
        snapshot["actual_duration_minutes"] = None
    snapshot["is_overdue"] = step.is_overdue(now)
    snapshot["delay_minutes"] = step.delay_minutes(now)
    snapshot["activity_progress"] = step.activity_progress if step.activities else None
    snapshot["next_activity"] = step.next_activity
    return snapshot


def enrich_batch(batch: ProductionBatch, now: datetime) -> dict[str, Any]:
    """Serialize a batch with progress, current step and delay information."""
    snapshot = batch.model_dump(mode="json")
    snapshot["progress"] = batch.progress
    snapshot["is_delayed"] = batch.is_delayed(now)
    snapshot["delay_minutes"] = batch.delay_minutes(now)
    snapshot["actual_duration_minutes"] = batch.actual_duration_minutes(now)
    snapshot["open_issue_count"] = len(batch.open_issues)
    current = batch.current_step
    snapshot["current_step"] = enrich_step(current, now) if current else None
    snapshot["steps"] = [enrich_step(step, now) for step in batch.steps]
    return snapshot


def build_overview(batches: Sequence[ProductionBatch], now: datetime) -> ProductionOverview:
    total_items = sum(batch.planned_quantity for batch in batches)
    completed_items = sum(
        batch.actual_quantity if batch.actual_quantity is not None else batch.planned_quantity
        for batch in batches
        if batch.status == BatchStatus.COMPLETED
    )
    return ProductionOverview(
        total_batches=len(batches),
        active_batches=sum(1 for b in batches if b.status == BatchStatus.IN_PROGRESS),
        pending_batches=sum(1 for b in batches if b.status.is_pending),
        waiting_batches=sum(1 for b in batches if b.status == BatchStatus.WAITING),
        completed_batches=sum(1 for b in batches if b.status == BatchStatus.COMPLETED),
        delayed_batches=sum(1 for b in batches if b.is_delayed(now)),
        total_items=total_items,
        completed_items=completed_items,
        efficiency=round(completed_items / total_items * 100) if total_items else 0,
    )


def build_alerts(batches: Sequence[ProductionBatch], now: datetime) -> list[ProductionAlert]:
    """Delay, quality and open-issue alerts, newest first."""
    alerts: list[ProductionAlert] = []
    for batch in batches:
        if batch.is_delayed(now):
            minutes = batch.delay_minutes(now)
            alerts.append(
                ProductionAlert(
                    type="delay",
                    severity=(
                        IssueSeverity.HIGH if minutes > LONG_DELAY_MINUTES else IssueSeverity.MEDIUM
                    ),
                    batch_id=batch.id,
                    batch_name=batch.name,
                    message=f"Batch is {minutes} minutes overdue",
                    timestamp=now,
                )
            )

        for step in batch.steps:
            if step.has_issues:
                alerts.append(
                    ProductionAlert(
                        type="quality",
                        severity=IssueSeverity.HIGH,
                        batch_id=batch.id,
                        batch_name=batch.name,
                        step_id=step.id,
                        message=f"Quality issues detected in {step.name}",
                        timestamp=now,
                    )
                )

        for issue in batch.open_issues:
            alerts.append(
                ProductionAlert(
                    type="issue",
                    severity=issue.severity,
                    batch_id=batch.id,
                    batch_name=batch.name,
                    step_id=issue.step_id,
                    message=issue.description or issue.type,
                    timestamp=issue.reported_at,
                )
            )

    return sorted(alerts, key=lambda alert: alert.timestamp, reverse=True)


def build_timeline(
    batches: Sequence[ProductionBatch], limit: int = TIMELINE_LIMIT
) -> list[TimelineEvent]:
    """Batch starts and ends and step completions, newest first."""
    events: list[TimelineEvent] = []
    for batch in batches:
        if batch.actual_start is not None:
            events.append(
                TimelineEvent(
                    type="batch_started",
                    batch_id=batch.id,
                    batch_name=batch.name,
                    timestamp=batch.actual_start,
                )
            )
        if batch.actual_end is not None:
            events.append(
                TimelineEvent(
                    type=f"batch_{batch.status.value}",
                    batch_id=batch.id,
                    batch_name=batch.name,
                    timestamp=batch.actual_end,
                )
            )
        for step in batch.steps:
            if step.actual_end is not None:
                events.append(
                    TimelineEvent(
                        type=f"step_{step.status.value}",
                        batch_id=batch.id,
                        batch_name=batch.name,
                        step_id=step.id,
                        step_name=step.name,
                        timestamp=step.actual_end,
                    )
                )

    events.sort(key=lambda event: event.timestamp, reverse=True)
    return events[:limit]
