"""
Domain Exceptions

Defines the error taxonomy of the production core with discriminated error
types. Every exception carries a machine readable ``error_type`` and a
``details`` mapping so callers (the HTTP layer, planners presenting partial
plans) can render structured responses.

Issues reported on the shop floor are domain state, not exceptions, and are
therefore not represented here.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID


class ErrorType(str, Enum):
    """Error type enumeration for discriminated unions."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    RESOURCE_UNAVAILABLE = "resource_unavailable"
    INVARIANT_VIOLATION = "invariant_violation"


class DomainError(Exception):
    """Base class for all domain errors with type discrimination."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> dict[str, str | dict[str, str | int | bool | None]]:
        """Convert error to dictionary for API responses."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Raised when input fails validation. Nothing has been mutated."""

    def __init__(
        self,
        field_name: str,
        value: str | int | float | bool | None,
        message: str,
        error_code: str | None = None,
    ) -> None:
        self.field_name = field_name
        self.value = value
        self.error_code = error_code or "VALIDATION_ERROR"

        full_message = f"Validation failed for field '{field_name}': {message}"
        details: dict[str, str | int | bool | None] = {
            "field": field_name,
            "value": str(value) if value is not None else None,
            "error_code": self.error_code,
        }
        super().__init__(full_message, ErrorType.VALIDATION, details)

    def to_dict(self) -> dict[str, str | None]:
        """Convert to dictionary for API responses."""
        return {
            "type": self.error_type.value,
            "field": self.field_name,
            "value": str(self.value) if self.value is not None else None,
            "message": self.message,
            "error_code": self.error_code,
        }


class InvalidProgressError(ValidationError):
    """Raised when a step progress value falls outside [0, 100]."""

    def __init__(self, value: int | float) -> None:
        super().__init__(
            "progress",
            value,
            "Progress must be between 0 and 100",
            error_code="INVALID_PROGRESS",
        )


class InvalidStatusError(ValidationError):
    """Raised when an unknown status value is submitted."""

    def __init__(self, value: str) -> None:
        super().__init__(
            "status", value, f"Invalid status: {value}", error_code="INVALID_STATUS"
        )


class NotFoundError(DomainError):
    """Raised when a batch, step, schedule or workflow id is unknown."""

    def __init__(self, entity_type: str, entity_id: UUID | str) -> None:
        details = {"entity_type": entity_type, "entity_id": str(entity_id)}
        super().__init__(
            f"{entity_type.replace('_', ' ').capitalize()} not found: {entity_id}",
            ErrorType.NOT_FOUND,
            details,
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidTransitionError(DomainError):
    """Raised when a state machine precondition is violated."""

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID | str,
        current_status: str,
        attempted: str,
        reason: str | None = None,
    ) -> None:
        message = (
            f"Cannot move {entity_type} {entity_id} from {current_status} "
            f"to {attempted}"
        )
        if reason:
            message += f": {reason}"
        details = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "current_status": current_status,
            "attempted": attempted,
            "reason": reason,
        }
        super().__init__(message, ErrorType.INVALID_TRANSITION, details)
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted = attempted
        self.reason = reason


class ResourceUnavailableError(DomainError):
    """Raised when the ledger cannot satisfy an all-or-nothing reservation."""

    def __init__(
        self,
        resource_ids: list[str],
        window_start: datetime,
        window_end: datetime,
        batch_id: UUID | str | None = None,
    ) -> None:
        message = (
            f"Resources unavailable between {window_start.isoformat()} and "
            f"{window_end.isoformat()}: {', '.join(resource_ids)}"
        )
        details = {
            "resource_ids": ",".join(resource_ids),
            "window_start": window_start.isoformat(),
            "window_end": window_end.isoformat(),
            "batch_id": str(batch_id) if batch_id else None,
        }
        super().__init__(message, ErrorType.RESOURCE_UNAVAILABLE, details)
        self.resource_ids = resource_ids
        self.window_start = window_start
        self.window_end = window_end
        self.batch_id = batch_id


class InvariantViolationError(DomainError):
    """
    Raised when an internal invariant is found broken.

    This signals a bug (for example two overlapping ledger allocations for the
    same resource). The operation is aborted and the state is left untouched
    for operator review.
    """

    def __init__(
        self, invariant: str, message: str, details: dict | None = None
    ) -> None:
        full_details = {"invariant": invariant}
        full_details.update(details or {})
        super().__init__(
            f"Invariant '{invariant}' violated: {message}",
            ErrorType.INVARIANT_VIOLATION,
            full_details,
        )
        self.invariant = invariant
