"""Production issue entity."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ...shared.base import Entity
from ...shared.exceptions import InvalidTransitionError
from ..value_objects.enums import IssueSeverity, IssueStatus

QUALITY_FAILURE = "quality_failure"


class Issue(Entity):
    """A problem reported against a batch, optionally pinned to one step."""

    batch_id: UUID
    step_id: UUID | None = None
    type: str = Field(min_length=1, max_length=50)
    severity: IssueSeverity = IssueSeverity.MEDIUM
    description: str = ""
    impact: str = "unknown"
    reported_by: str
    reported_at: datetime
    status: IssueStatus = IssueStatus.OPEN
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution: str | None = None

    def is_valid(self) -> bool:
        return bool(self.type) and bool(self.reported_by)

    @property
    def is_open(self) -> bool:
        return self.status == IssueStatus.OPEN

    def resolve(self, resolved_by: str, at: datetime, resolution: str | None = None) -> None:
        """Close the issue."""
        if not self.is_open:
            raise InvalidTransitionError(
                "issue", self.id, self.status.value, IssueStatus.RESOLVED.value
            )
        self.status = IssueStatus.RESOLVED
        self.resolved_by = resolved_by
        self.resolved_at = at
        self.resolution = resolution
        self.mark_updated(at)
