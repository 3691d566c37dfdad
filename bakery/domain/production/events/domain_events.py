"""
Domain Events

Events recorded by the production aggregates. Each event knows the name it is
published under on the monitor topic of its batch (``batch:{id}``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class BatchEvent:
    """Base class for all events raised by a production batch."""

    batch_id: UUID
    occurred_at: datetime

    event_name: ClassVar[str] = "batch_event"

    @property
    def topic(self) -> str:
        return f"batch:{self.batch_id}"

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly mapping."""
        payload: dict[str, Any] = {"event": self.event_name}
        for item in fields(self):
            payload[item.name] = _plain(getattr(self, item.name))
        return payload


@dataclass(frozen=True)
class BatchStarted(BatchEvent):
    """Raised when production of a batch begins."""

    started_by: str
    step_count: int

    event_name: ClassVar[str] = "batch_started"


@dataclass(frozen=True)
class StepStarted(BatchEvent):
    """Raised when work on a step begins."""

    step_id: UUID
    step_index: int
    step_name: str

    event_name: ClassVar[str] = "step_started"


@dataclass(frozen=True)
class StepCompleted(BatchEvent):
    """Raised when a step is finished."""

    step_id: UUID
    step_index: int
    completed_by: str | None
    actual_duration_minutes: int | None

    event_name: ClassVar[str] = "step_completed"


@dataclass(frozen=True)
class StepSkipped(BatchEvent):
    step_id: UUID
    step_index: int
    reason: str | None

    event_name: ClassVar[str] = "step_skipped"


@dataclass(frozen=True)
class StepProgressUpdated(BatchEvent):
    """Raised when a step's progress or status is reported from the floor."""

    step_id: UUID
    progress: int
    status: str
    updated_by: str

    event_name: ClassVar[str] = "step_progress_updated"


@dataclass(frozen=True)
class WorkflowAdvanced(BatchEvent):
    """Raised when the batch moves on to its next step."""

    from_step_index: int
    to_step_index: int
    next_step_id: UUID
    next_step_name: str

    event_name: ClassVar[str] = "workflow_advanced"


@dataclass(frozen=True)
class BatchWaiting(BatchEvent):
    """Raised when the next step cannot start because a precondition is unmet."""

    step_id: UUID
    step_index: int
    reason: str

    event_name: ClassVar[str] = "batch_waiting"


@dataclass(frozen=True)
class WorkflowCompleted(BatchEvent):
    """Raised when the last step of a batch is finished."""

    actual_quantity: int
    actual_duration_minutes: int | None

    event_name: ClassVar[str] = "workflow_completed"


@dataclass(frozen=True)
class BatchPaused(BatchEvent):
    reason: str | None
    paused_by: str
    previous_status: str

    event_name: ClassVar[str] = "batch_paused"


@dataclass(frozen=True)
class BatchResumed(BatchEvent):
    resumed_by: str
    restored_status: str

    event_name: ClassVar[str] = "batch_resumed"


@dataclass(frozen=True)
class BatchCancelled(BatchEvent):
    reason: str | None
    cancelled_by: str

    event_name: ClassVar[str] = "batch_cancelled"


@dataclass(frozen=True)
class BatchFailed(BatchEvent):
    """Raised when a batch fails, typically because one of its steps failed."""

    reason: str | None
    failed_step_id: UUID | None = None

    event_name: ClassVar[str] = "batch_failed"


@dataclass(frozen=True)
class ProductionIssueReported(BatchEvent):
    """Raised when an issue is recorded against a batch."""

    issue_id: UUID
    step_id: UUID | None
    issue_type: str
    severity: str
    reported_by: str
    auto_paused: bool = False
    escalated: bool = False

    event_name: ClassVar[str] = "production_issue_reported"


@dataclass(frozen=True)
class IssueResolved(BatchEvent):
    issue_id: UUID
    resolved_by: str

    event_name: ClassVar[str] = "issue_resolved"


@dataclass(frozen=True)
class QualityCheckCompleted(BatchEvent):
    """Raised after a quality check has been evaluated for a step."""

    step_id: UUID
    check_id: UUID
    overall_score: int
    passed: bool
    checked_by: str

    event_name: ClassVar[str] = "quality_check_completed"


class DomainEventHandler:
    """Base interface for domain event handlers."""

    def can_handle(self, event: BatchEvent) -> bool:
        """Check if this handler can handle the given event."""
        raise NotImplementedError

    def handle(self, event: BatchEvent) -> None:
        """Handle the domain event."""
        raise NotImplementedError


class DomainEventDispatcher:
    """Dispatches domain events to registered handlers."""

    def __init__(self) -> None:
        self._handlers: list[DomainEventHandler] = []

    def register_handler(self, handler: DomainEventHandler) -> None:
        """Register an event handler."""
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unregister_handler(self, handler: DomainEventHandler) -> None:
        """Unregister an event handler."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    def dispatch(self, event: BatchEvent) -> None:
        """Dispatch an event to all capable handlers."""
        for handler in self._handlers:
            if handler.can_handle(event):
                try:
                    handler.handle(event)
                except Exception:
                    # Log error but continue with other handlers
                    logger.exception(
                        "Error handling event %s for batch %s",
                        event.event_name,
                        event.batch_id,
                    )

    def dispatch_all(self, events: list[BatchEvent]) -> None:
        """Dispatch multiple events."""
        for event in events:
            self.dispatch(event)
