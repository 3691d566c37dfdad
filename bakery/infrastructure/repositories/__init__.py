"""Repository implementations."""

from .in_memory import InMemoryBatchRepository, InMemoryScheduleRepository

__all__ = ["InMemoryBatchRepository", "InMemoryScheduleRepository"]
