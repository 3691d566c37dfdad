"""
Notification and monitor sinks.

The logging sinks write to the standard log; the recording sinks
keep everything in memory for local runs and tests.
"""

import logging
from typing import Any

from ..domain.production.ports import NotificationEvent
from ..domain.production.value_objects.enums import IssueSeverity

logger = logging.getLogger(__name__)

_SEVERITY_LEVELS = {
    IssueSeverity.LOW: logging.INFO,
    IssueSeverity.MEDIUM: logging.INFO,
    IssueSeverity.HIGH: logging.WARNING,
    IssueSeverity.CRITICAL: logging.ERROR,
}


class LoggingNotifySink:
    async def notify(self, event: NotificationEvent) -> None:
        logger.log(
            _SEVERITY_LEVELS[event.priority],
            "Notification %s for batch %s: %s",
            event.kind,
            event.batch_id,
            event.payload,
        )


class RecordingNotifySink:
    """Keeps every notification it receives."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    async def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]


class RecordingMonitorSink:
    """Keeps every published snapshot as ``(topic, snapshot)``."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, snapshot: dict[str, Any]) -> None:
        self.published.append((topic, snapshot))

    def events_for(self, topic: str) -> list[str]:
        return [snapshot.get("event", "") for t, snapshot in self.published if t == topic]


class LoggingMonitorSink:
    """Writes published snapshots to the debug log."""

    async def publish(self, topic: str, snapshot: dict[str, Any]) -> None:
        logger.debug("Snapshot on %s: %s", topic, snapshot.get("event", "snapshot"))
