"""Value objects describing planning input and planning output."""

from datetime import date, datetime, time
from uuid import UUID, uuid4

from pydantic import Field, field_validator

from ...shared.base import ValueObject
from .capacity import Station, Worker
from .enums import BottleneckSeverity, ConflictType, Priority
from .time_window import parse_clock_time


class DemandItem(ValueObject):
    """A request to produce ``quantity`` units with a given workflow."""

    id: str = Field(default_factory=lambda: f"demand_{uuid4().hex[:12]}")
    workflow_id: str
    product_id: str | None = None
    quantity: int = Field(gt=0)
    priority: Priority = Priority.MEDIUM
    unit: str = "pieces"


class PlanningConstraints(ValueObject):
    """Tunable knobs of the planner; defaults come from settings."""

    workday_start: time = time(6, 0)
    workday_end: time = time(18, 0)
    max_batch_size: int = Field(default=50, gt=0)
    batch_gap_minutes: float = Field(default=15, ge=0)
    max_staff_per_batch: int = Field(default=2, ge=1)

    @field_validator("workday_start", "workday_end", mode="before")
    @classmethod
    def _parse_clock(cls, v):
        return parse_clock_time(v) if isinstance(v, str) else v


class PlanningRequest(ValueObject):
    """Everything the planner needs to plan one schedule day."""

    schedule_date: date
    workers: tuple[Worker, ...] = ()
    stations: tuple[Station, ...] = ()
    demand: tuple[DemandItem, ...] = ()
    constraints: PlanningConstraints = Field(default_factory=PlanningConstraints)


class Conflict(ValueObject):
    """A recorded, non-fatal failure to satisfy a planning requirement."""

    type: ConflictType
    message: str
    batch_id: UUID | None = None
    demand_id: str | None = None
    workflow_id: str | None = None
    quantity: int | None = None


class WorkflowDemand(ValueObject):
    """Per-workflow aggregate inside a demand analysis."""

    workflow_id: str
    workflow_name: str
    quantity: int
    workflow_minutes: int
    total_minutes: float


class DemandAnalysis(ValueObject):
    """Aggregated view of a list of demand items."""

    total_items: int = 0
    total_estimated_minutes: float = 0.0
    average_minutes_per_item: float = 0.0
    workflow_requirements: dict[str, WorkflowDemand] = Field(default_factory=dict)
    priority_distribution: dict[Priority, int] = Field(default_factory=dict)
    required_equipment: tuple[str, ...] = ()
    unknown_workflow_ids: tuple[str, ...] = ()
    complexity: float = 0.0


class StaffAllocation(ValueObject):
    batch_id: UUID
    assigned_staff: tuple[str, ...] = ()
    requested: int = 0
    start_time: datetime
    end_time: datetime


class EquipmentAllocation(ValueObject):
    batch_id: UUID
    assigned_equipment: tuple[str, ...] = ()
    start_time: datetime
    end_time: datetime


class Utilization(ValueObject):
    """Percent of available staff and station minutes consumed by a plan."""

    staff: float = 0.0
    equipment: float = 0.0


class ResourceAllocationPlan(ValueObject):
    staff_allocations: tuple[StaffAllocation, ...] = ()
    equipment_allocations: tuple[EquipmentAllocation, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    utilization: Utilization = Field(default_factory=Utilization)


class Recommendation(ValueObject):
    type: str
    priority: BottleneckSeverity
    message: str
    impact: str
