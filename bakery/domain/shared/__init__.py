"""Building blocks shared by every domain package."""

from .base import AggregateRoot, Entity, ValueObject
from .exceptions import (
    DomainError,
    ErrorType,
    InvalidProgressError,
    InvalidStatusError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
)

__all__ = [
    "AggregateRoot",
    "Entity",
    "ValueObject",
    "DomainError",
    "ErrorType",
    "InvalidProgressError",
    "InvalidStatusError",
    "InvalidTransitionError",
    "InvariantViolationError",
    "NotFoundError",
    "ResourceUnavailableError",
    "ValidationError",
]
