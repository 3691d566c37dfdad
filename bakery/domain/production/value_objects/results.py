"""Results returned by batch state machine operations."""

from uuid import UUID

from ...shared.base import ValueObject
from .enums import AdvanceOutcome


class AdvanceResult(ValueObject):
    """Outcome of advancing a batch after a step finished."""

    batch_id: UUID
    outcome: AdvanceOutcome
    current_step_index: int
    next_step_id: UUID | None = None
    reason: str | None = None

    @property
    def advanced(self) -> bool:
        return self.outcome == AdvanceOutcome.ADVANCED

    @property
    def waiting(self) -> bool:
        return self.outcome == AdvanceOutcome.WAITING

    @property
    def completed(self) -> bool:
        return self.outcome == AdvanceOutcome.COMPLETED
