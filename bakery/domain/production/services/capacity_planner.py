"""
Capacity Planner

Turns a day's demand into planned, resource-allocated production batches.
Partial infeasibility never raises: unknown workflows, sub-batches that do not
fit the workday and unmet resource requirements are reported as conflicts so a
person can resolve them.
"""

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from uuid import UUID

from pydantic import Field

from ....core.config import Settings, settings
from ....core.observability import PLANNING_CONFLICTS, get_logger, monitor_performance
from ...shared.base import ValueObject
from ..entities.batch import ProductionBatch
from ..entities.schedule import ProductionSchedule
from ..factories import create_batch_from_workflow
from ..ports import WorkflowSource
from ..value_objects.capacity import Capacity, Station, Worker
from ..value_objects.enums import BottleneckSeverity, ConflictType, Priority, ResourceType
from ..value_objects.planning import (
    Conflict,
    DemandAnalysis,
    DemandItem,
    EquipmentAllocation,
    PlanningConstraints,
    PlanningRequest,
    Recommendation,
    ResourceAllocationPlan,
    StaffAllocation,
    Utilization,
    WorkflowDemand,
)
from ..value_objects.time_window import TimeWindow
from .resource_ledger import ResourceLedger

HIGH_UTILIZATION = 0.9
LOW_UTILIZATION = 0.6
COMPLEXITY_THRESHOLD = 3
MAX_DEMAND_COMPLEXITY = 10.0
WORKFLOW_DIVERSITY_LIMIT = 5


def constraints_from_settings(config: Settings | None = None) -> PlanningConstraints:
    """Planning constraints populated from configuration."""
    config = config or settings
    return PlanningConstraints(
        workday_start=config.WORKDAY_START,
        workday_end=config.WORKDAY_END,
        max_batch_size=config.MAX_BATCH_SIZE,
        batch_gap_minutes=config.BATCH_GAP_MINUTES,
        max_staff_per_batch=config.MAX_STAFF_PER_BATCH,
    )


class BatchGeneration(ValueObject):
    """Batches generated from demand plus the demand that could not be planned."""

    batches: tuple[ProductionBatch, ...] = ()
    conflicts: tuple[Conflict, ...] = ()


class PlanningResult(ValueObject):
    """Full output of :meth:`CapacityPlanner.optimize_schedule`."""

    schedule_date: date
    capacity: Capacity
    demand_analysis: DemandAnalysis
    batches: tuple[ProductionBatch, ...] = ()
    allocation: ResourceAllocationPlan = Field(default_factory=ResourceAllocationPlan)
    recommendations: tuple[Recommendation, ...] = ()
    efficiency_score: int = 100
    conflicts: tuple[Conflict, ...] = ()
    ledger: ResourceLedger

    @property
    def is_feasible(self) -> bool:
        return not self.conflicts


class CapacityPlanner:
    """
    Domain service for daily capacity planning.

    Workflows are looked up through the injected ``WorkflowSource``; resource
    bookings go through the day's ``ResourceLedger``.
    """

    def __init__(
        self,
        workflow_source: WorkflowSource,
        constraints: PlanningConstraints | None = None,
    ) -> None:
        self._workflows = workflow_source
        self._constraints = constraints or constraints_from_settings()
        self.logger = get_logger(__name__)

    @property
    def constraints(self) -> PlanningConstraints:
        return self._constraints

    # ------------------------------------------------------------------
    # Demand
    # ------------------------------------------------------------------

    def analyze_demand(self, items: Sequence[DemandItem]) -> DemandAnalysis:
        """
        Aggregate demand per workflow and priority.

        Estimated minutes are workflow duration times quantity. Items whose
        workflow is unknown still count towards totals and priorities but add
        no minutes.
        """
        total_items = 0
        total_minutes = 0.0
        requirements: dict[str, WorkflowDemand] = {}
        priorities: dict[Priority, int] = {priority: 0 for priority in Priority}
        equipment: dict[str, None] = {}
        unknown: dict[str, None] = {}

        for item in items:
            total_items += item.quantity
            priorities[item.priority] += 1

            workflow = self._workflows.get_workflow_by_id(item.workflow_id)
            if workflow is None:
                unknown.setdefault(item.workflow_id, None)
                continue

            workflow_minutes = workflow.total_duration_minutes
            item_minutes = workflow_minutes * item.quantity
            total_minutes += item_minutes

            current = requirements.get(item.workflow_id)
            requirements[item.workflow_id] = WorkflowDemand(
                workflow_id=workflow.id,
                workflow_name=workflow.name,
                quantity=(current.quantity if current else 0) + item.quantity,
                workflow_minutes=workflow_minutes,
                total_minutes=(current.total_minutes if current else 0.0) + item_minutes,
            )
            for name in workflow.required_equipment:
                equipment.setdefault(name, None)

        if unknown:
            self.logger.warning("Demand references unknown workflows", workflow_ids=list(unknown))

        return DemandAnalysis(
            total_items=total_items,
            total_estimated_minutes=total_minutes,
            average_minutes_per_item=total_minutes / total_items if total_items else 0.0,
            workflow_requirements=requirements,
            priority_distribution=priorities,
            required_equipment=tuple(equipment),
            unknown_workflow_ids=tuple(unknown),
            complexity=self.demand_complexity(items),
        )

    @staticmethod
    def demand_complexity(items: Sequence[DemandItem]) -> float:
        """Heuristic complexity of a day's demand, capped at 10."""
        distinct = len({item.workflow_id for item in items})
        total_quantity = sum(item.quantity for item in items)
        counts = Counter(item.priority for item in items)
        complexity = (
            distinct * 0.2
            + math.log10(total_quantity + 1) * 0.3
            + counts[Priority.URGENT] * 0.4
            + counts[Priority.HIGH] * 0.2
        )
        return min(complexity, MAX_DEMAND_COMPLEXITY)

    @staticmethod
    def sort_demand(items: Iterable[DemandItem]) -> list[DemandItem]:
        """Most urgent first; larger quantities first within a priority."""
        return sorted(items, key=lambda item: (item.priority.rank, -item.quantity))

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def generate_batches(
        self,
        items: Sequence[DemandItem],
        schedule_date: date,
        constraints: PlanningConstraints | None = None,
        schedule_id: UUID | None = None,
    ) -> BatchGeneration:
        """
        Split demand into sub-batches laid out on a single time cursor.

        Each sub-batch holds at most ``max_batch_size`` units and lasts its
        share of one workflow pass. The cursor moves by the batch duration plus
        the configured gap. The first sub-batch of an item that would end
        after the workday stops that item; the rest is reported as
        unscheduled.
        """
        constraints = constraints or self._constraints
        cursor = datetime.combine(schedule_date, constraints.workday_start)
        workday_end = datetime.combine(schedule_date, constraints.workday_end)
        gap = timedelta(minutes=constraints.batch_gap_minutes)

        batches: list[ProductionBatch] = []
        conflicts: list[Conflict] = []

        for item in self.sort_demand(items):
            workflow = self._workflows.get_workflow_by_id(item.workflow_id)
            if workflow is None:
                conflicts.append(
                    Conflict(
                        type=ConflictType.WORKFLOW,
                        message=f"Unknown workflow '{item.workflow_id}'",
                        demand_id=item.id,
                        workflow_id=item.workflow_id,
                        quantity=item.quantity,
                    )
                )
                continue

            batch_size = min(item.quantity, constraints.max_batch_size)
            batch_count = math.ceil(item.quantity / batch_size)
            for index in range(batch_count):
                quantity = min(batch_size, item.quantity - index * batch_size)
                minutes = workflow.total_duration_minutes * (quantity / batch_size)
                batch_end = cursor + timedelta(minutes=minutes)

                if batch_end > workday_end:
                    remaining = item.quantity - index * batch_size
                    self.logger.warning(
                        "Sub-batch does not fit the workday",
                        workflow_id=workflow.id,
                        batch_number=index + 1,
                        unscheduled_quantity=remaining,
                    )
                    conflicts.append(
                        Conflict(
                            type=ConflictType.UNSCHEDULED,
                            message=(
                                f"Batch {index + 1} of {workflow.name} does not fit the "
                                f"workday; {remaining} {item.unit} unscheduled"
                            ),
                            demand_id=item.id,
                            workflow_id=workflow.id,
                            quantity=remaining,
                        )
                    )
                    break

                batches.append(
                    create_batch_from_workflow(
                        workflow,
                        quantity=quantity,
                        planned_start=cursor,
                        duration_minutes=minutes,
                        name=f"{workflow.name} Batch {index + 1}",
                        priority=item.priority,
                        product_id=item.product_id,
                        schedule_id=schedule_id,
                        unit=item.unit,
                    )
                )
                cursor = batch_end + gap

        batches.sort(key=lambda batch: batch.planned_start)
        for conflict in conflicts:
            PLANNING_CONFLICTS.labels(conflict_type=conflict.type.value).inc()
        return BatchGeneration(batches=tuple(batches), conflicts=tuple(conflicts))

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def _staff_needed(self, batch: ProductionBatch, constraints: PlanningConstraints) -> int:
        workflow = self._workflows.get_workflow_by_id(batch.workflow_id)
        complexity = workflow.complexity if workflow else 1.0
        return min(math.ceil(complexity), constraints.max_staff_per_batch)

    @staticmethod
    def _staff_candidates(ledger: ResourceLedger, batch: ProductionBatch) -> list[str]:
        """Workers whose shift covers the batch, earliest shift start first."""
        window = TimeWindow(start_time=batch.planned_start, end_time=batch.planned_end)
        eligible = [
            worker
            for worker in ledger.workers
            if worker.shift_on(batch.planned_start.date()).contains(window)
        ]
        eligible.sort(key=lambda worker: worker.start_time)
        return [worker.id for worker in eligible]

    def _allocate_equipment(
        self, ledger: ResourceLedger, batch: ProductionBatch
    ) -> tuple[list[str], list[Conflict]]:
        start, end = batch.planned_start, batch.planned_end
        if not batch.required_equipment:
            booked = ledger.allocate(
                [station.id for station in ledger.stations], start, end, batch.id, requested=1
            )
            return booked, []

        booked: list[str] = []
        conflicts: list[Conflict] = []
        for requirement in batch.required_equipment:
            candidates = [
                station.id
                for station in ledger.stations
                if station.matches(requirement) and station.id not in booked
            ]
            got = ledger.allocate(candidates, start, end, batch.id, requested=1)
            if got:
                booked.extend(got)
            else:
                conflicts.append(
                    Conflict(
                        type=ConflictType.EQUIPMENT,
                        message=f"Required equipment '{requirement}' not available",
                        batch_id=batch.id,
                        workflow_id=batch.workflow_id,
                    )
                )
        return booked, conflicts

    def allocate_resources(
        self,
        batches: Sequence[ProductionBatch],
        ledger: ResourceLedger,
        constraints: PlanningConstraints | None = None,
    ) -> ResourceAllocationPlan:
        """
        Book staff and stations for planned batches in schedule order.

        Assignments are written back onto the batches. Shortages become
        conflicts.
        """
        constraints = constraints or self._constraints
        staff_allocations: list[StaffAllocation] = []
        equipment_allocations: list[EquipmentAllocation] = []
        conflicts: list[Conflict] = []

        for batch in sorted(batches, key=lambda item: item.planned_start):
            start, end = batch.planned_start, batch.planned_end
            requested = self._staff_needed(batch, constraints)
            staff = ledger.allocate(
                self._staff_candidates(ledger, batch), start, end, batch.id, requested=requested
            )
            if not staff:
                conflicts.append(
                    Conflict(
                        type=ConflictType.STAFF,
                        message="No available staff for this batch",
                        batch_id=batch.id,
                        workflow_id=batch.workflow_id,
                    )
                )
            elif len(staff) < requested:
                conflicts.append(
                    Conflict(
                        type=ConflictType.STAFF,
                        message=f"Only {len(staff)} of {requested} staff available",
                        batch_id=batch.id,
                        workflow_id=batch.workflow_id,
                    )
                )

            equipment, equipment_conflicts = self._allocate_equipment(ledger, batch)
            conflicts.extend(equipment_conflicts)

            batch.assign_resources(staff, equipment)
            staff_allocations.append(
                StaffAllocation(
                    batch_id=batch.id,
                    assigned_staff=tuple(staff),
                    requested=requested,
                    start_time=start,
                    end_time=end,
                )
            )
            equipment_allocations.append(
                EquipmentAllocation(
                    batch_id=batch.id,
                    assigned_equipment=tuple(equipment),
                    start_time=start,
                    end_time=end,
                )
            )

        for conflict in conflicts:
            PLANNING_CONFLICTS.labels(conflict_type=conflict.type.value).inc()

        return ResourceAllocationPlan(
            staff_allocations=tuple(staff_allocations),
            equipment_allocations=tuple(equipment_allocations),
            conflicts=tuple(conflicts),
            utilization=self._utilization(
                staff_allocations, equipment_allocations, ledger, constraints
            ),
        )

    @staticmethod
    def _utilization(
        staff_allocations: Sequence[StaffAllocation],
        equipment_allocations: Sequence[EquipmentAllocation],
        ledger: ResourceLedger,
        constraints: PlanningConstraints,
    ) -> Utilization:
        window_start = datetime.combine(ledger.schedule_date, constraints.workday_start)
        window_end = datetime.combine(ledger.schedule_date, constraints.workday_end)
        capacity = ledger.availability(window_start, window_end)
        staff_minutes = capacity.total_staff_hours * 60
        station_minutes = capacity.total_station_hours * 60

        def used(allocations, count) -> float:
            return sum(
                (item.end_time - item.start_time).total_seconds() / 60 * count(item)
                for item in allocations
            )

        used_staff = used(staff_allocations, lambda item: len(item.assigned_staff))
        used_equipment = used(equipment_allocations, lambda item: len(item.assigned_equipment))
        return Utilization(
            staff=used_staff / staff_minutes * 100 if staff_minutes > 0 else 0.0,
            equipment=used_equipment / station_minutes * 100 if station_minutes > 0 else 0.0,
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def demand_utilization(capacity: Capacity, analysis: DemandAnalysis) -> float | None:
        """
        Estimated demand minutes over available staff minutes.

        ``None`` when there is demand but no staff time at all.
        """
        staff_minutes = capacity.total_staff_hours * 60
        if staff_minutes <= 0:
            return None if analysis.total_estimated_minutes > 0 else 0.0
        return analysis.total_estimated_minutes / staff_minutes

    def efficiency_score(self, capacity: Capacity, analysis: DemandAnalysis) -> int:
        """Advisory 0-100 score of how well demand fits capacity."""
        utilization = self.demand_utilization(capacity, analysis)
        if utilization is None:
            return 0

        efficiency = 100.0
        if utilization > 1:
            efficiency -= (utilization - 1) * 50
        elif utilization < LOW_UTILIZATION:
            efficiency -= (LOW_UTILIZATION - utilization) * 20
        efficiency -= len(capacity.bottlenecks) * 10
        efficiency -= max(0.0, (analysis.complexity - COMPLEXITY_THRESHOLD) * 5)
        return max(0, min(100, round(efficiency)))

    def recommendations(
        self,
        capacity: Capacity,
        analysis: DemandAnalysis,
        conflicts: Sequence[Conflict] = (),
    ) -> list[Recommendation]:
        recommendations = []

        utilization = self.demand_utilization(capacity, analysis)
        if utilization is None or utilization > HIGH_UTILIZATION:
            recommendations.append(
                Recommendation(
                    type="capacity",
                    priority=BottleneckSeverity.HIGH,
                    message=(
                        "Production demand is near capacity limits. Consider adding "
                        "staff or extending hours."
                    ),
                    impact="high",
                )
            )

        if capacity.bottlenecks:
            kinds = ", ".join(bottleneck.type.value for bottleneck in capacity.bottlenecks)
            recommendations.append(
                Recommendation(
                    type=ResourceType.EQUIPMENT.value,
                    priority=BottleneckSeverity.MEDIUM,
                    message=f"Identified bottlenecks: {kinds}",
                    impact="medium",
                )
            )

        if len(analysis.workflow_requirements) > WORKFLOW_DIVERSITY_LIMIT:
            recommendations.append(
                Recommendation(
                    type="complexity",
                    priority=BottleneckSeverity.MEDIUM,
                    message=(
                        "High workflow diversity may reduce efficiency. Consider "
                        "batching similar products."
                    ),
                    impact="medium",
                )
            )

        unscheduled = [c for c in conflicts if c.type == ConflictType.UNSCHEDULED]
        if unscheduled:
            quantity = sum(c.quantity or 0 for c in unscheduled)
            recommendations.append(
                Recommendation(
                    type="unscheduled",
                    priority=BottleneckSeverity.HIGH,
                    message=(
                        f"{quantity} units across {len(unscheduled)} demand item(s) do "
                        "not fit the workday. Extend hours or move demand to another day."
                    ),
                    impact="high",
                )
            )

        return recommendations

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    @monitor_performance("optimize_schedule")
    def optimize_schedule(
        self, request: PlanningRequest, ledger: ResourceLedger | None = None
    ) -> PlanningResult:
        """
        Plan a production day end to end.

        A fresh ledger is built from the request's roster unless one is given.
        """
        constraints = request.constraints
        self.logger.info(
            "Optimizing production schedule",
            schedule_date=str(request.schedule_date),
            demand_items=len(request.demand),
        )

        if ledger is None:
            ledger = ResourceLedger(request.schedule_date, request.workers, request.stations)

        window_start = datetime.combine(request.schedule_date, constraints.workday_start)
        window_end = datetime.combine(request.schedule_date, constraints.workday_end)
        capacity = ledger.availability(window_start, window_end)

        analysis = self.analyze_demand(request.demand)
        generation = self.generate_batches(request.demand, request.schedule_date, constraints)
        allocation = self.allocate_resources(generation.batches, ledger, constraints)

        # Planning conflicts are surfaced with the resource conflicts.
        conflicts = (*generation.conflicts, *allocation.conflicts)
        allocation = allocation.model_copy(update={"conflicts": conflicts})

        result = PlanningResult(
            schedule_date=request.schedule_date,
            capacity=capacity,
            demand_analysis=analysis,
            batches=generation.batches,
            allocation=allocation,
            recommendations=tuple(self.recommendations(capacity, analysis, conflicts)),
            efficiency_score=self.efficiency_score(capacity, analysis),
            conflicts=conflicts,
            ledger=ledger,
        )

        self.logger.info(
            "Production schedule optimized",
            schedule_date=str(request.schedule_date),
            batch_count=len(result.batches),
            conflict_count=len(conflicts),
            efficiency=result.efficiency_score,
        )
        return result

    def build_schedule(
        self,
        request: PlanningRequest,
        result: PlanningResult,
        created_by: str | None = None,
        at: datetime | None = None,
    ) -> ProductionSchedule:
        """Bind a planning result into a schedule in ``planned`` status."""
        constraints = request.constraints
        schedule = ProductionSchedule(
            schedule_date=request.schedule_date,
            workday_start=constraints.workday_start,
            workday_end=constraints.workday_end,
            workers=tuple(result.ledger.workers),
            stations=tuple(result.ledger.stations),
            created_by=created_by,
        )
        for batch in result.batches:
            batch.schedule_id = schedule.id

        notes = "\n".join(item.message for item in result.recommendations) or None
        schedule.attach_plan(
            batch_ids=[batch.id for batch in result.batches],
            total_planned_items=sum(batch.planned_quantity for batch in result.batches),
            estimated_production_minutes=result.demand_analysis.total_estimated_minutes,
            total_staff_hours=result.capacity.total_staff_hours,
            efficiency_score=result.efficiency_score,
            notes=notes,
        )
        for conflict in result.conflicts:
            schedule.add_alert(conflict.message)
        schedule.mark_planned(at or datetime.now())
        return schedule


def roster_from_mappings(
    staff_shifts: dict[str, dict], equipment: Iterable[dict | str]
) -> tuple[list[Worker], list[Station]]:
    """
    Build a roster from shift and equipment mappings.

    ``staff_shifts`` maps staff ids to ``{"start", "end", "role", "skills"}``;
    shifts without both times are ignored. Equipment entries are either names
    or ``{"id", "name", "type", "capacity"}`` mappings.
    """
    workers = [
        Worker(
            id=staff_id,
            start_time=shift["start"],
            end_time=shift["end"],
            role=shift.get("role") or "baker",
            skills=tuple(shift.get("skills") or ("general",)),
        )
        for staff_id, shift in staff_shifts.items()
        if shift.get("start") and shift.get("end")
    ]
    stations = []
    for index, entry in enumerate(equipment):
        if isinstance(entry, str):
            stations.append(Station(id=f"eq_{index}", name=entry))
        else:
            stations.append(
                Station(
                    id=entry.get("id") or f"eq_{index}",
                    name=entry.get("name") or entry.get("id") or f"eq_{index}",
                    type=entry.get("type") or "general",
                    capacity=entry.get("capacity") or 1,
                )
            )
    return workers, stations
