"""
Batch Repository Interface

Defines the contract for production batch data access operations.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from uuid import UUID

from ..entities.batch import ProductionBatch
from ..value_objects.enums import BatchStatus


class BatchRepository(ABC):
    """
    Abstract repository interface for ProductionBatch aggregates.

    Implementations hand out copies: callers mutate what they get and persist
    it with :meth:`save`. An aggregate that is never saved leaves the stored
    state untouched.
    """

    @abstractmethod
    async def save(self, batch: ProductionBatch) -> ProductionBatch:
        """
        Save a batch together with its steps and issues.

        Args:
            batch: Batch aggregate to save

        Returns:
            Saved batch aggregate
        """

    @abstractmethod
    async def get_by_id(self, batch_id: UUID) -> ProductionBatch | None:
        """
        Retrieve a batch by its ID.

        Args:
            batch_id: Unique batch identifier

        Returns:
            Batch aggregate or None if not found
        """

    @abstractmethod
    async def find_by_step_id(self, step_id: UUID) -> ProductionBatch | None:
        """
        Retrieve the batch that owns a step.

        Args:
            step_id: Unique step identifier

        Returns:
            Owning batch aggregate or None if no batch has that step
        """

    @abstractmethod
    async def get_all(self) -> list[ProductionBatch]:
        """Retrieve all batches ordered by planned start."""

    @abstractmethod
    async def find_by_date(self, day: date) -> list[ProductionBatch]:
        """Retrieve batches planned to start on a given day."""

    @abstractmethod
    async def find_between(
        self, start: datetime, end: datetime, workflow_id: str | None = None
    ) -> list[ProductionBatch]:
        """Retrieve batches planned to start within ``[start, end]``, oldest first."""

    @abstractmethod
    async def find_by_status(self, statuses: list[BatchStatus]) -> list[ProductionBatch]:
        """Retrieve batches whose status is one of ``statuses``."""

    @abstractmethod
    async def delete(self, batch_id: UUID) -> bool:
        """
        Delete a batch.

        Returns:
            True if the batch existed
        """
