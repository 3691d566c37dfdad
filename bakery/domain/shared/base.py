"""Base classes for domain entities and value objects."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class ValueObject(BaseModel):
    """Base class for value objects (immutable, defined by their values)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class Entity(BaseModel, ABC):
    """Base class for entities (have identity, can change over time)."""

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime | None = None

    def __eq__(self, other: Any) -> bool:
        """Entities are equal if they have the same ID and type."""
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on entity ID."""
        return hash(self.id)

    def mark_updated(self, at: datetime | None = None) -> None:
        """Mark the entity as updated."""
        self.updated_at = at or datetime.now()

    @abstractmethod
    def is_valid(self) -> bool:
        """Validate business rules for this entity."""

    def validate_state(self) -> None:
        """Validate the entity and raise exception if invalid."""
        if not self.is_valid():
            raise ValueError(
                f"Entity {self.__class__.__name__} with ID {self.id} is invalid"
            )


class AggregateRoot(Entity, ABC):
    """Base class for aggregate roots (entities that control consistency boundaries)."""

    _domain_events: list[Any] = PrivateAttr(default_factory=list)

    def add_domain_event(self, event: Any) -> None:
        """Add a domain event to be published."""
        self._domain_events.append(event)

    def clear_domain_events(self) -> None:
        """Clear all domain events (typically after publishing)."""
        self._domain_events.clear()

    def get_domain_events(self) -> list[Any]:
        """Get all pending domain events."""
        return self._domain_events.copy()

    def pull_domain_events(self) -> list[Any]:
        """Return pending events and clear them in one step."""
        events = self.get_domain_events()
        self.clear_domain_events()
        return events
