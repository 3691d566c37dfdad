"""Inputs and results of execution engine operations."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ...shared.base import ValueObject
from .enums import IssueSeverity
from .quality import QualityCheckItem


class CompletionData(BaseModel):
    """Data submitted when a step is completed."""

    model_config = ConfigDict(extra="forbid")

    checks: list[QualityCheckItem] = Field(default_factory=list)
    notes: str | None = None
    actual_quantity: int | None = Field(default=None, ge=0)


class ProgressData(BaseModel):
    """
    A progress report for a step.

    ``progress`` and ``status`` are kept loose so the engine can reject bad
    values with its own error codes before touching the batch.
    """

    progress: float | None = None
    status: str | None = None
    notes: str | None = None


class IssueData(BaseModel):
    """A problem reported from the floor."""

    type: str = Field(min_length=1, max_length=50)
    severity: IssueSeverity = IssueSeverity.MEDIUM
    description: str = ""
    impact: str = "unknown"
    step_id: UUID | None = None


class QualityData(BaseModel):
    """Scores recorded by a quality inspection."""

    checks: list[QualityCheckItem] = Field(default_factory=list)
    notes: str | None = None
    passing_score: float | None = Field(default=None, ge=0, le=100)


class IssueHandling(ValueObject):
    """What the engine did in response to a reported issue."""

    auto_paused: bool = False
    escalated: bool = False
    notified: bool = False
    actions: list[str] = Field(default_factory=list)


class BulkFailure(ValueObject):
    id: UUID
    error: str
    error_type: str | None = None


class BulkResult(ValueObject):
    """Per-item outcome of a bulk operation."""

    succeeded: list[UUID] = Field(default_factory=list)
    failed: list[BulkFailure] = Field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
