"""
Time Window Value Object

Represents a half-open time period ``[start_time, end_time)`` used for batch
intervals, ledger allocations and worker shifts.
"""

import math
from datetime import date, datetime, time, timedelta

from pydantic import model_validator

from ...shared.base import ValueObject


class TimeWindow(ValueObject):
    """A half-open window between two absolute points in time."""

    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.start_time > self.end_time:
            raise ValueError("Start time must be before end time")
        return self

    @classmethod
    def on_date(cls, day: date, start: time, end: time) -> "TimeWindow":
        """Build a window from clock times on a given day."""
        return cls(
            start_time=datetime.combine(day, start),
            end_time=datetime.combine(day, end),
        )

    def duration_minutes(self) -> float:
        """Length of the window in minutes."""
        return (self.end_time - self.start_time).total_seconds() / 60

    def overlaps_with(self, other: "TimeWindow") -> bool:
        """
        Half-open overlap test.

        Two windows overlap iff ``self.start < other.end and other.start <
        self.end``; windows that merely touch do not overlap.
        """
        return intervals_overlap(
            self.start_time, self.end_time, other.start_time, other.end_time
        )

    def contains(self, other: "TimeWindow") -> bool:
        """Check if another window lies entirely within this one."""
        return self.start_time <= other.start_time and other.end_time <= self.end_time

    def intersection_with(self, other: "TimeWindow") -> "TimeWindow | None":
        """Get intersection with another time window."""
        if not self.overlaps_with(other):
            return None
        return TimeWindow(
            start_time=max(self.start_time, other.start_time),
            end_time=min(self.end_time, other.end_time),
        )

    def shift_by_minutes(self, minutes: float) -> "TimeWindow":
        """Shift the time window by a number of minutes."""
        delta = timedelta(minutes=minutes)
        return TimeWindow(start_time=self.start_time + delta, end_time=self.end_time + delta)


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval overlap: ``start_a < end_b and start_b < end_a``."""
    return start_a < end_b and start_b < end_a


def parse_clock_time(value: str | time) -> time:
    """
    Parse ``HH:MM`` or ``HH:MM:SS`` into a ``time``.

    Raises:
        ValueError: If the string is not a valid clock time
    """
    if isinstance(value, time):
        return value
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid clock time: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    seconds = int(parts[2]) if len(parts) == 3 else 0
    return time(hours, minutes, seconds)


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed number of minutes from ``start`` to ``end``."""
    return (end - start).total_seconds() / 60


def delay_minutes(planned_end: datetime | None, now: datetime) -> int:
    """Rounded minutes past ``planned_end``, never negative."""
    if planned_end is None or now <= planned_end:
        return 0
    return max(0, math.floor(minutes_between(planned_end, now) + 0.5))
