"""Repository interfaces of the production domain."""

from .batch_repository import BatchRepository
from .schedule_repository import ScheduleRepository

__all__ = ["BatchRepository", "ScheduleRepository"]
