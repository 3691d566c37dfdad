"""
Ports of the production core.

The core reads workflow templates and pushes notifications and live snapshots
through these protocols; adapters live in ``bakery.infrastructure``.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .entities.workflow import WorkflowDefinition
from .value_objects.enums import IssueSeverity


class NotificationEvent(BaseModel):
    """A message for people on the floor (escalations, quality failures)."""

    model_config = ConfigDict(frozen=True)

    kind: str
    batch_id: UUID
    step_id: UUID | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: IssueSeverity = IssueSeverity.MEDIUM
    created_at: datetime | None = None


@runtime_checkable
class WorkflowSource(Protocol):
    """Protocol for looking up workflow templates by id."""

    def get_workflow_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        """Return the workflow or ``None`` when it is unknown."""
        ...

    def list_workflows(self) -> list[WorkflowDefinition]:
        """Return every known workflow."""
        ...


@runtime_checkable
class NotifySink(Protocol):
    """Protocol for delivering notifications."""

    async def notify(self, event: NotificationEvent) -> None:
        ...


@runtime_checkable
class MonitorSink(Protocol):
    """Protocol for publishing live snapshots on ``batch:{id}`` topics."""

    async def publish(self, topic: str, snapshot: dict[str, Any]) -> None:
        ...


def batch_topic(batch_id: UUID) -> str:
    return f"batch:{batch_id}"
