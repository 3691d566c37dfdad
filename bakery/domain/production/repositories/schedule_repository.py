"""
Schedule Repository Interface

Defines the contract for production schedule data access operations.
"""

from abc import ABC, abstractmethod
from datetime import date
from uuid import UUID

from ..entities.schedule import ProductionSchedule


class ScheduleRepository(ABC):
    """Abstract repository interface for ProductionSchedule aggregates."""

    @abstractmethod
    async def save(self, schedule: ProductionSchedule) -> ProductionSchedule:
        """
        Save a schedule.

        Args:
            schedule: Schedule aggregate to save

        Returns:
            Saved schedule aggregate
        """

    @abstractmethod
    async def get_by_id(self, schedule_id: UUID) -> ProductionSchedule | None:
        """Retrieve a schedule by its ID."""

    @abstractmethod
    async def get_by_date(self, day: date) -> ProductionSchedule | None:
        """Retrieve the schedule planned for a given day, if any."""

    @abstractmethod
    async def find_by_batch_id(self, batch_id: UUID) -> ProductionSchedule | None:
        """Retrieve the schedule a batch was planned into."""
