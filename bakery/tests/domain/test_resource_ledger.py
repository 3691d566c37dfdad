"""Tests for the per-day resource ledger."""

import threading
from uuid import uuid4

import pytest

from bakery.domain.production.services.resource_ledger import (
    LedgerRegistry,
    ResourceLedger,
)
from bakery.domain.production.value_objects.capacity import Station
from bakery.domain.production.value_objects.enums import BottleneckSeverity, ResourceType
from bakery.domain.shared.exceptions import (
    InvariantViolationError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
)
from bakery.tests.utils import PRODUCTION_DAY, at


@pytest.fixture
def ledger(workers, stations) -> ResourceLedger:
    return ResourceLedger(PRODUCTION_DAY, workers, stations)


class TestAllocate:
    def test_touching_intervals_do_not_conflict(self, ledger):
        first, second = uuid4(), uuid4()

        assert ledger.allocate(["oven-1"], at(8), at(9), first) == ["oven-1"]
        assert ledger.allocate(["oven-1"], at(9), at(10), second) == ["oven-1"]
        assert not ledger.is_free("oven-1", at(8, 59), at(9, 1))

    def test_partial_allocation_is_not_an_error(self, ledger):
        holder, batch_id = uuid4(), uuid4()
        ledger.allocate(["anna"], at(8), at(10), holder)

        booked = ledger.allocate(["anna", "ben"], at(9), at(11), batch_id, requested=2)

        assert booked == ["ben"]
        assert [a.resource_id for a in ledger.allocations_for_batch(batch_id)] == ["ben"]

    def test_requested_limits_bookings(self, ledger):
        batch_id = uuid4()

        booked = ledger.allocate(["anna", "ben", "carla"], at(10), at(11), batch_id, requested=2)

        assert booked == ["anna", "ben"]
        assert ledger.is_free("carla", at(10), at(11))

    def test_repeated_allocation_for_same_batch_is_idempotent(self, ledger):
        batch_id = uuid4()
        ledger.allocate(["mixer-1"], at(6), at(7), batch_id)
        ledger.allocate(["mixer-1"], at(6), at(7), batch_id)

        assert len(ledger.allocations("mixer-1")) == 1

    def test_overlapping_windows_of_one_batch_are_merged(self, ledger):
        batch_id = uuid4()
        ledger.allocate(["oven-1"], at(6), at(8), batch_id)
        ledger.allocate(["oven-1"], at(7), at(9), batch_id)

        intervals = [(a.start_time, a.end_time) for a in ledger.allocations("oven-1")]
        assert intervals == [(at(6), at(9))]
        ledger.verify()

    def test_merge_spans_every_overlapped_interval(self, ledger):
        batch_id = uuid4()
        ledger.reserve(["anna"], at(6), at(7), batch_id)
        ledger.reserve(["anna"], at(8), at(9), batch_id)

        ledger.reserve(["anna"], at(6, 30), at(8, 30), batch_id)

        intervals = [(a.start_time, a.end_time) for a in ledger.allocations("anna")]
        assert intervals == [(at(6), at(9))]

    def test_empty_window_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.allocate(["anna"], at(8), at(8), uuid4())

    def test_unknown_resource(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.allocate(["nobody"], at(8), at(9), uuid4())


class TestReserve:
    def test_all_or_nothing(self, ledger):
        holder, batch_id = uuid4(), uuid4()
        ledger.reserve(["oven-1"], at(8), at(9), holder)

        with pytest.raises(ResourceUnavailableError) as exc_info:
            ledger.reserve(["anna", "oven-1"], at(8, 30), at(9, 30), batch_id)

        assert exc_info.value.resource_ids == ["oven-1"]
        assert ledger.allocations_for_batch(batch_id) == []
        assert ledger.is_free("anna", at(8, 30), at(9, 30))

    def test_unknown_resources_are_unavailable(self, ledger):
        with pytest.raises(ResourceUnavailableError) as exc_info:
            ledger.reserve(["anna", "ghost"], at(8), at(9), uuid4())

        assert exc_info.value.resource_ids == ["ghost"]

    def test_reservation_rows(self, ledger):
        batch_id = uuid4()

        allocations = ledger.reserve(["oven-1", "anna"], at(8), at(9), batch_id)

        assert {a.resource_id: a.resource_type for a in allocations} == {
            "anna": ResourceType.STAFF,
            "oven-1": ResourceType.EQUIPMENT,
        }
        assert all(a.batch_id == batch_id for a in allocations)

    def test_concurrent_reservations_never_double_book(self, ledger):
        winners = []
        errors = []
        barrier = threading.Barrier(8)

        def contend():
            batch_id = uuid4()
            barrier.wait()
            try:
                ledger.reserve(["oven-1", "anna"], at(8), at(9), batch_id)
                winners.append(batch_id)
            except ResourceUnavailableError:
                errors.append(batch_id)

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(winners) == 1
        assert len(errors) == 7
        ledger.verify()


class TestRelease:
    def test_release_batch(self, ledger):
        batch_id, other = uuid4(), uuid4()
        ledger.reserve(["anna", "oven-1"], at(8), at(9), batch_id)
        ledger.reserve(["ben"], at(8), at(9), other)

        assert ledger.release_batch(batch_id) == 2
        assert ledger.allocations_for_batch(batch_id) == []
        assert len(ledger.allocations_for_batch(other)) == 1

    def test_restore_undoes_a_reservation(self, ledger):
        batch_id, other = uuid4(), uuid4()
        ledger.reserve(["anna"], at(6), at(7), batch_id)
        ledger.reserve(["ben"], at(6), at(7), other)
        before = ledger.allocations_for_batch(batch_id)
        ledger.reserve(["anna", "oven-1"], at(6, 30), at(9), batch_id)

        ledger.restore(batch_id, before)

        assert ledger.allocations_for_batch(batch_id) == before
        assert ledger.is_free("oven-1", at(6), at(9))
        assert len(ledger.allocations_for_batch(other)) == 1


class TestVerify:
    def test_clean_ledger_passes(self, ledger):
        ledger.reserve(["anna"], at(6), at(8), uuid4())
        ledger.reserve(["anna"], at(8), at(10), uuid4())

        ledger.verify()

    def test_overlap_detected(self, ledger):
        first, second = uuid4(), uuid4()
        ledger.reserve(["oven-1"], at(8), at(10), first)
        # Bypass the conflict check to corrupt the table.
        ledger._append("oven-1", ResourceType.EQUIPMENT, at(9), at(11), second)

        with pytest.raises(InvariantViolationError) as exc_info:
            ledger.verify()

        assert exc_info.value.invariant == "ledger_no_overlap"

    def test_overlap_within_one_batch_detected(self, ledger):
        batch_id = uuid4()
        ledger.reserve(["oven-1"], at(8), at(10), batch_id)
        ledger._append("oven-1", ResourceType.EQUIPMENT, at(9), at(11), batch_id)

        with pytest.raises(InvariantViolationError):
            ledger.verify()


class TestAvailability:
    def test_counts_overlapping_shifts(self, ledger):
        capacity = ledger.availability(at(6), at(12))

        # anna 6h, ben 6h (05-13 clipped), carla 2h
        assert capacity.available_workers == 3
        assert capacity.total_staff_hours == 14.0
        assert capacity.available_stations == 3
        assert capacity.total_station_hours == 18.0
        assert capacity.max_concurrent_batches == 3

    def test_shift_outside_window_excluded(self, ledger):
        capacity = ledger.availability(at(14), at(18))

        assert [worker.id for worker in capacity.workers] == ["carla"]

    def test_bottlenecks(self, ledger, stations):
        capacity = ledger.availability(at(15), at(18), stations=stations[:1])

        messages = {b.message: b.severity for b in capacity.bottlenecks}
        assert messages["Only 1 staff member(s) available"] == BottleneckSeverity.HIGH
        assert messages["Only 1 equipment station(s) available"] == BottleneckSeverity.HIGH

    def test_too_few_stations_for_staff(self, workers, stations):
        ledger = ResourceLedger(PRODUCTION_DAY, workers, stations[:1])

        capacity = ledger.availability(at(10), at(12))

        assert any(
            b.type == ResourceType.EQUIPMENT and b.severity == BottleneckSeverity.MEDIUM
            for b in capacity.bottlenecks
        )

    def test_booked_minutes(self, ledger):
        ledger.reserve(["anna"], at(7), at(9), uuid4())
        ledger.reserve(["oven-1"], at(8), at(9), uuid4())

        assert ledger.booked_minutes(ResourceType.STAFF, at(8), at(12)) == 60
        assert ledger.booked_minutes(ResourceType.EQUIPMENT, at(6), at(12)) == 60


class TestRoster:
    def test_duplicate_ids_across_kinds_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.add_station(Station(id="anna", name="Anna's oven"))

    def test_registry_reuses_ledgers(self):
        registry = LedgerRegistry()

        ledger = registry.get_or_create(PRODUCTION_DAY)

        assert registry.get_or_create(PRODUCTION_DAY) is ledger
        assert registry.get(PRODUCTION_DAY).schedule_date == PRODUCTION_DAY
