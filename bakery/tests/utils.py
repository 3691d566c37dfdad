"""Helpers shared by the tests."""

from datetime import date, datetime, time, timedelta

PRODUCTION_DAY = date(2025, 3, 10)


def at(hour: int, minute: int = 0, day: date = PRODUCTION_DAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


class FixedClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> datetime:
        self.now += timedelta(minutes=minutes)
        return self.now
