"""
Resource Ledger

Tracks which staff member and which equipment station is booked by which
batch over which interval for one schedule day. For a single resource no two
allocation intervals ever overlap.
"""

import contextlib
import threading
from collections.abc import Iterable
from datetime import date, datetime
from uuid import UUID

from ....core.observability import get_logger
from ...shared.exceptions import (
    InvariantViolationError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
)
from ..value_objects.capacity import (
    Allocation,
    Bottleneck,
    Capacity,
    Station,
    Worker,
)
from ..value_objects.enums import BottleneckSeverity, ResourceType
from ..value_objects.time_window import TimeWindow, intervals_overlap

MIN_WORKERS = 2
MIN_STATIONS = 2
MAX_WORKER_STATION_RATIO = 2.0
MIN_WORKER_STATION_RATIO = 0.5


class ResourceLedger:
    """
    Allocation table of one production day.

    Every resource has its own lock; the locks are created lazily under a
    registry lock. Multi-resource reservations take the locks in sorted id
    order so concurrent reservations cannot deadlock.
    """

    def __init__(
        self,
        schedule_date: date,
        workers: Iterable[Worker] = (),
        stations: Iterable[Station] = (),
    ) -> None:
        self.schedule_date = schedule_date
        self._workers: dict[str, Worker] = {}
        self._stations: dict[str, Station] = {}
        self._allocations: dict[str, list[Allocation]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self.logger = get_logger(__name__)

        for worker in workers:
            self.add_worker(worker)
        for station in stations:
            self.add_station(station)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers.values())

    @property
    def stations(self) -> list[Station]:
        return list(self._stations.values())

    def add_worker(self, worker: Worker) -> None:
        if worker.id in self._stations:
            raise ValidationError(
                "worker_id", worker.id, "Id already used by a station",
                error_code="DUPLICATE_RESOURCE",
            )
        with self._registry_lock:
            self._workers[worker.id] = worker

    def add_station(self, station: Station) -> None:
        if station.id in self._workers:
            raise ValidationError(
                "station_id", station.id, "Id already used by a worker",
                error_code="DUPLICATE_RESOURCE",
            )
        with self._registry_lock:
            self._stations[station.id] = station

    def get_worker(self, worker_id: str) -> Worker | None:
        return self._workers.get(worker_id)

    def get_station(self, station_id: str) -> Station | None:
        return self._stations.get(station_id)

    def resource_type(self, resource_id: str) -> ResourceType:
        if resource_id in self._workers:
            return ResourceType.STAFF
        if resource_id in self._stations:
            return ResourceType.EQUIPMENT
        raise NotFoundError("resource", resource_id)

    def knows(self, resource_id: str) -> bool:
        return resource_id in self._workers or resource_id in self._stations

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _lock_for(self, resource_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[resource_id] = lock
            return lock

    def _conflicts(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        batch_id: UUID | None = None,
    ) -> list[Allocation]:
        """Intervals of other batches overlapping ``[start, end)``. Caller holds the lock."""
        return [
            allocation
            for allocation in self._allocations.get(resource_id, [])
            if allocation.batch_id != batch_id
            and intervals_overlap(allocation.start_time, allocation.end_time, start, end)
        ]

    def is_free(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        batch_id: UUID | None = None,
    ) -> bool:
        """Whether no other batch holds the resource during ``[start, end)``."""
        with self._lock_for(resource_id):
            return not self._conflicts(resource_id, start, end, batch_id)

    def allocations(self, resource_id: str | None = None) -> list[Allocation]:
        """Snapshot of the allocation table, optionally for one resource."""
        with self._registry_lock:
            if resource_id is not None:
                return list(self._allocations.get(resource_id, []))
            return [item for items in self._allocations.values() for item in items]

    def allocations_for_batch(self, batch_id: UUID) -> list[Allocation]:
        return [item for item in self.allocations() if item.batch_id == batch_id]

    def booked_minutes(
        self, resource_type: ResourceType, window_start: datetime, window_end: datetime
    ) -> float:
        """Sum of booked minutes of one resource type inside a window."""
        window = TimeWindow(start_time=window_start, end_time=window_end)
        total = 0.0
        for allocation in self.allocations():
            if allocation.resource_type != resource_type:
                continue
            overlap = allocation.window.intersection_with(window)
            if overlap is not None:
                total += overlap.duration_minutes()
        return total

    def availability(
        self,
        window_start: datetime,
        window_end: datetime,
        workers: Iterable[Worker] | None = None,
        stations: Iterable[Station] | None = None,
    ) -> Capacity:
        """
        Summarize staff and station capacity for a window.

        A worker counts as available when the shift overlaps the window, and
        contributes the overlapping hours. Defaults to the ledger's roster.
        """
        workers = list(self._workers.values() if workers is None else workers)
        stations = list(self._stations.values() if stations is None else stations)
        window = TimeWindow(start_time=window_start, end_time=window_end)

        available_workers = []
        total_staff_hours = 0.0
        for worker in workers:
            overlap = worker.shift_on(window_start.date()).intersection_with(window)
            if overlap is None:
                continue
            available_workers.append(worker)
            total_staff_hours += overlap.duration_minutes() / 60

        window_hours = window.duration_minutes() / 60
        total_station_hours = window_hours * len(stations)

        bottlenecks = self._detect_bottlenecks(len(available_workers), len(stations))
        for bottleneck in bottlenecks:
            self.logger.debug(
                "Capacity bottleneck detected",
                schedule_date=str(self.schedule_date),
                resource_type=bottleneck.type.value,
                severity=bottleneck.severity.value,
            )

        return Capacity(
            window_start=window_start,
            window_end=window_end,
            workers=tuple(available_workers),
            stations=tuple(stations),
            available_workers=len(available_workers),
            total_staff_hours=round(total_staff_hours, 2),
            available_stations=len(stations),
            total_station_hours=round(total_station_hours, 2),
            bottlenecks=tuple(bottlenecks),
        )

    @staticmethod
    def _detect_bottlenecks(worker_count: int, station_count: int) -> list[Bottleneck]:
        bottlenecks = []
        if worker_count < MIN_WORKERS:
            bottlenecks.append(
                Bottleneck(
                    type=ResourceType.STAFF,
                    severity=BottleneckSeverity.HIGH,
                    message=f"Only {worker_count} staff member(s) available",
                )
            )
        if station_count < MIN_STATIONS:
            bottlenecks.append(
                Bottleneck(
                    type=ResourceType.EQUIPMENT,
                    severity=BottleneckSeverity.HIGH,
                    message=f"Only {station_count} equipment station(s) available",
                )
            )
        if station_count:
            ratio = worker_count / station_count
            if ratio > MAX_WORKER_STATION_RATIO:
                bottlenecks.append(
                    Bottleneck(
                        type=ResourceType.EQUIPMENT,
                        severity=BottleneckSeverity.MEDIUM,
                        message="Too few stations for the available staff",
                    )
                )
            elif ratio < MIN_WORKER_STATION_RATIO:
                bottlenecks.append(
                    Bottleneck(
                        type=ResourceType.STAFF,
                        severity=BottleneckSeverity.MEDIUM,
                        message="Too few staff for the available stations",
                    )
                )
        return bottlenecks

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def allocate(
        self,
        candidates: Iterable[str],
        start: datetime,
        end: datetime,
        batch_id: UUID,
        requested: int | None = None,
    ) -> list[str]:
        """
        Book free candidates in order until ``requested`` are booked.

        Returns the booked ids, possibly fewer than requested. Shortage is not
        an error.
        """
        if end <= start:
            raise ValidationError(
                "end_time", end.isoformat(), "Allocation window is empty",
                error_code="INVALID_WINDOW",
            )
        booked: list[str] = []
        for resource_id in candidates:
            if requested is not None and len(booked) >= requested:
                break
            if resource_id in booked:
                continue
            resource_type = self.resource_type(resource_id)
            with self._lock_for(resource_id):
                if self._conflicts(resource_id, start, end, batch_id):
                    continue
                self._book(resource_id, resource_type, start, end, batch_id)
            booked.append(resource_id)

        if requested is not None and len(booked) < requested:
            self.logger.info(
                "Partial allocation",
                batch_id=str(batch_id),
                requested=requested,
                allocated=len(booked),
            )
        return booked

    def reserve(
        self,
        resource_ids: Iterable[str],
        start: datetime,
        end: datetime,
        batch_id: UUID,
    ) -> list[Allocation]:
        """
        Book every resource for ``[start, end)`` or none of them.

        Intervals the batch already holds count as booked and are merged with
        the new window.

        Raises:
            ResourceUnavailableError: Listing every resource that is unknown or
                held by another batch
        """
        ids = sorted(set(resource_ids))
        if not ids:
            return []

        with contextlib.ExitStack() as stack:
            for resource_id in ids:
                stack.enter_context(self._lock_for(resource_id))

            unavailable = [
                resource_id
                for resource_id in ids
                if not self.knows(resource_id)
                or self._conflicts(resource_id, start, end, batch_id)
            ]
            if unavailable:
                self.logger.warning(
                    "Reservation rejected",
                    batch_id=str(batch_id),
                    unavailable=unavailable,
                )
                raise ResourceUnavailableError(unavailable, start, end, batch_id)

            for resource_id in ids:
                self._book(resource_id, self.resource_type(resource_id), start, end, batch_id)

        return [item for item in self.allocations_for_batch(batch_id) if item.resource_id in ids]

    def _book(
        self,
        resource_id: str,
        resource_type: ResourceType,
        start: datetime,
        end: datetime,
        batch_id: UUID,
    ) -> None:
        """Add ``[start, end)`` for ``batch_id``. Caller holds the resource lock.

        Overlapping intervals of the same batch are replaced by their union.
        """
        with self._registry_lock:
            current = self._allocations.get(resource_id, [])
            merged = [
                item
                for item in current
                if item.batch_id == batch_id
                and intervals_overlap(item.start_time, item.end_time, start, end)
            ]
            if merged:
                start = min(start, *(item.start_time for item in merged))
                end = max(end, *(item.end_time for item in merged))
                self._allocations[resource_id] = [
                    item for item in current if item not in merged
                ]
        self._append(resource_id, resource_type, start, end, batch_id)

    def _append(
        self,
        resource_id: str,
        resource_type: ResourceType,
        start: datetime,
        end: datetime,
        batch_id: UUID,
    ) -> None:
        allocation = Allocation(
            resource_id=resource_id,
            resource_type=resource_type,
            start_time=start,
            end_time=end,
            batch_id=batch_id,
        )
        with self._registry_lock:
            self._allocations.setdefault(resource_id, []).append(allocation)

    def release(self, resource_id: str, batch_id: UUID) -> int:
        """Remove every interval of ``resource_id`` held by ``batch_id``."""
        with self._lock_for(resource_id):
            with self._registry_lock:
                current = self._allocations.get(resource_id, [])
                kept = [item for item in current if item.batch_id != batch_id]
                self._allocations[resource_id] = kept
                return len(current) - len(kept)

    def restore(self, batch_id: UUID, allocations: Iterable[Allocation]) -> None:
        """Replace every interval of ``batch_id`` with ``allocations``, undoing a reservation."""
        previous = [item for item in allocations if item.batch_id == batch_id]
        resource_ids = sorted(
            {item.resource_id for item in self.allocations_for_batch(batch_id)}
            | {item.resource_id for item in previous}
        )
        with contextlib.ExitStack() as stack:
            for resource_id in resource_ids:
                stack.enter_context(self._lock_for(resource_id))
            with self._registry_lock:
                for resource_id in resource_ids:
                    kept = [
                        item
                        for item in self._allocations.get(resource_id, [])
                        if item.batch_id != batch_id
                    ]
                    kept.extend(item for item in previous if item.resource_id == resource_id)
                    self._allocations[resource_id] = kept

    def release_batch(self, batch_id: UUID) -> int:
        """Remove every interval held by ``batch_id``; returns how many."""
        resource_ids = sorted(
            {item.resource_id for item in self.allocations_for_batch(batch_id)}
        )
        released = sum(self.release(resource_id, batch_id) for resource_id in resource_ids)
        if released:
            self.logger.info(
                "Batch allocations released", batch_id=str(batch_id), released=released
            )
        return released

    def verify(self) -> None:
        """
        Check that no resource has two overlapping intervals.

        Raises:
            InvariantViolationError: On the first overlap found. The ledger is
                left as is for operator review.
        """
        with self._registry_lock:
            table = {key: list(value) for key, value in self._allocations.items()}

        for resource_id, allocations in table.items():
            ordered = sorted(allocations, key=lambda item: item.start_time)
            for index, previous in enumerate(ordered):
                for current in ordered[index + 1:]:
                    if current.start_time >= previous.end_time:
                        break
                    self.logger.critical(
                        "Ledger allocations overlap",
                        resource_id=resource_id,
                        first_batch_id=str(previous.batch_id),
                        second_batch_id=str(current.batch_id),
                    )
                    raise InvariantViolationError(
                        "ledger_no_overlap",
                        f"Resource {resource_id} is double-booked",
                        {
                            "resource_id": resource_id,
                            "first_batch_id": str(previous.batch_id),
                            "second_batch_id": str(current.batch_id),
                        },
                    )


class LedgerRegistry:
    """Ledgers keyed by schedule day."""

    def __init__(self) -> None:
        self._ledgers: dict[date, ResourceLedger] = {}
        self._lock = threading.Lock()

    def register(self, ledger: ResourceLedger) -> ResourceLedger:
        with self._lock:
            self._ledgers[ledger.schedule_date] = ledger
        return ledger

    def get(self, day: date) -> ResourceLedger | None:
        with self._lock:
            return self._ledgers.get(day)

    def get_or_create(self, day: date) -> ResourceLedger:
        with self._lock:
            ledger = self._ledgers.get(day)
            if ledger is None:
                ledger = ResourceLedger(day)
                self._ledgers[day] = ledger
            return ledger
