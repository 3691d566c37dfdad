"""Quality check value objects."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import Field

from ...shared.base import ValueObject

DEFAULT_PASSING_SCORE = 70


class QualityCheckItem(ValueObject):
    """A single scored criterion within a quality check."""

    name: str = "check"
    score: float = Field(default=0, ge=0, le=100)


class QualityCheck(ValueObject):
    """Result of a quality inspection performed on a production step."""

    id: UUID = Field(default_factory=uuid4)
    step_id: UUID
    performed_by: str
    performed_at: datetime
    checks: list[QualityCheckItem] = Field(default_factory=list)
    overall_score: int
    passing_score: float = DEFAULT_PASSING_SCORE
    passed: bool
    notes: str | None = None

    @classmethod
    def evaluate(
        cls,
        step_id: UUID,
        checks: list[QualityCheckItem],
        performed_by: str,
        performed_at: datetime,
        passing_score: float = DEFAULT_PASSING_SCORE,
        notes: str | None = None,
    ) -> "QualityCheck":
        """Score the given checks and decide whether the step passed."""
        overall = calculate_quality_score(checks)
        return cls(
            step_id=step_id,
            performed_by=performed_by,
            performed_at=performed_at,
            checks=checks,
            overall_score=overall,
            passing_score=passing_score,
            passed=overall >= passing_score,
            notes=notes,
        )


def calculate_quality_score(checks: list[QualityCheckItem]) -> int:
    """Rounded mean of the check scores; 100 when nothing was checked."""
    if not checks:
        return 100
    total = sum(check.score for check in checks)
    mean = total / len(checks)
    return int(mean + 0.5)
