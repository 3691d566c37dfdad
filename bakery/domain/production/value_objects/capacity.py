"""Resource and capacity value objects used by the ledger and the planner."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import Field, field_validator

from ...shared.base import ValueObject
from .enums import BottleneckSeverity, ResourceType
from .time_window import TimeWindow, parse_clock_time


class Worker(ValueObject):
    """A staff member's shift for one schedule day."""

    id: str
    start_time: time
    end_time: time
    role: str = "baker"
    skills: tuple[str, ...] = ("general",)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_clock(cls, v):
        return parse_clock_time(v) if isinstance(v, str) else v

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v)

    def shift_on(self, day: date) -> TimeWindow:
        """The absolute shift window on a given day."""
        return TimeWindow.on_date(day, self.start_time, self.end_time)

    @property
    def shift_hours(self) -> float:
        start = datetime.combine(date.min, self.start_time)
        end = datetime.combine(date.min, self.end_time)
        return max((end - start).total_seconds() / 3600, 0.0)


class Station(ValueObject):
    """An equipment station (oven, mixer, proofer, ...)."""

    id: str
    name: str
    type: str = "general"
    capacity: int = Field(default=1, ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v)

    def matches(self, requirement: str) -> bool:
        """Check if this station satisfies a named equipment requirement."""
        return requirement in (self.id, self.name, self.type)


class Allocation(ValueObject):
    """One row of the ledger's allocation table."""

    resource_id: str
    resource_type: ResourceType
    start_time: datetime
    end_time: datetime
    batch_id: UUID

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start_time=self.start_time, end_time=self.end_time)


class Bottleneck(ValueObject):
    """A capacity shortage detected for a window."""

    type: ResourceType
    severity: BottleneckSeverity
    message: str


class Capacity(ValueObject):
    """Availability of staff and stations for a window."""

    window_start: datetime
    window_end: datetime
    workers: tuple[Worker, ...] = ()
    stations: tuple[Station, ...] = ()
    available_workers: int
    total_staff_hours: float
    available_stations: int
    total_station_hours: float
    bottlenecks: tuple[Bottleneck, ...] = ()

    @property
    def workday_minutes(self) -> float:
        return (self.window_end - self.window_start).total_seconds() / 60

    @property
    def max_concurrent_batches(self) -> int:
        return min(self.available_workers, self.available_stations)

    @property
    def average_staff_hours(self) -> float:
        if not self.available_workers:
            return 0.0
        return self.total_staff_hours / self.available_workers
