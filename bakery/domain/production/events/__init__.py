"""Domain events of the production core."""

from .domain_events import (
    BatchCancelled,
    BatchEvent,
    BatchFailed,
    BatchPaused,
    BatchResumed,
    BatchStarted,
    BatchWaiting,
    DomainEventDispatcher,
    DomainEventHandler,
    IssueResolved,
    ProductionIssueReported,
    QualityCheckCompleted,
    StepCompleted,
    StepProgressUpdated,
    StepSkipped,
    StepStarted,
    WorkflowAdvanced,
    WorkflowCompleted,
)

__all__ = [
    "BatchCancelled",
    "BatchEvent",
    "BatchFailed",
    "BatchPaused",
    "BatchResumed",
    "BatchStarted",
    "BatchWaiting",
    "DomainEventDispatcher",
    "DomainEventHandler",
    "IssueResolved",
    "ProductionIssueReported",
    "QualityCheckCompleted",
    "StepCompleted",
    "StepProgressUpdated",
    "StepSkipped",
    "StepStarted",
    "WorkflowAdvanced",
    "WorkflowCompleted",
]
