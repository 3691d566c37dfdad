"""Domain enums for production batches, steps and schedules."""

from datetime import datetime
from enum import Enum


class BatchStatus(str, Enum):
    """Production batch status enumeration."""

    PLANNED = "planned"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Check if batch status represents a started, unfinished batch."""
        return self in {BatchStatus.IN_PROGRESS, BatchStatus.WAITING}

    @property
    def is_pending(self) -> bool:
        """Check if batch has not been started yet."""
        return self in {BatchStatus.PLANNED, BatchStatus.READY}

    @property
    def is_terminal(self) -> bool:
        """Check if batch status is terminal (cannot transition further)."""
        return self in {BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.CANCELLED}

    def can_transition_to(self, target_status: "BatchStatus") -> bool:
        """Check if batch can transition from current status to target status."""
        valid_transitions = {
            BatchStatus.PLANNED: {
                BatchStatus.READY,
                BatchStatus.IN_PROGRESS,
                BatchStatus.CANCELLED,
            },
            BatchStatus.READY: {BatchStatus.IN_PROGRESS, BatchStatus.CANCELLED},
            BatchStatus.IN_PROGRESS: {
                BatchStatus.WAITING,
                BatchStatus.COMPLETED,
                BatchStatus.FAILED,
                BatchStatus.CANCELLED,
            },
            BatchStatus.WAITING: {
                BatchStatus.IN_PROGRESS,
                BatchStatus.FAILED,
                BatchStatus.CANCELLED,
            },
            BatchStatus.COMPLETED: set(),  # Terminal state
            BatchStatus.FAILED: set(),  # Terminal state
            BatchStatus.CANCELLED: set(),  # Terminal state
        }
        return target_status in valid_transitions.get(self, set())


class StepStatus(str, Enum):
    """Production step status enumeration."""

    PENDING = "pending"  # Waiting on earlier steps
    READY = "ready"  # Earlier steps finished, may be started
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"  # Paused or blocked on a precondition
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if step status is terminal."""
        return self in {StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.FAILED}

    @property
    def is_finished(self) -> bool:
        """Check if the step no longer blocks the steps after it."""
        return self in {StepStatus.COMPLETED, StepStatus.SKIPPED}

    def can_transition_to(self, target_status: "StepStatus") -> bool:
        """Check if step can transition from current status to target status."""
        valid_transitions = {
            StepStatus.PENDING: {
                StepStatus.READY,
                StepStatus.IN_PROGRESS,
                StepStatus.WAITING,
                StepStatus.SKIPPED,
                StepStatus.FAILED,
            },
            StepStatus.READY: {
                StepStatus.IN_PROGRESS,
                StepStatus.WAITING,
                StepStatus.SKIPPED,
                StepStatus.FAILED,
            },
            StepStatus.IN_PROGRESS: {
                StepStatus.WAITING,
                StepStatus.COMPLETED,
                StepStatus.FAILED,
            },
            StepStatus.WAITING: {
                StepStatus.PENDING,
                StepStatus.READY,
                StepStatus.IN_PROGRESS,
                StepStatus.SKIPPED,
                StepStatus.FAILED,
            },
            StepStatus.COMPLETED: set(),  # Terminal state
            StepStatus.SKIPPED: set(),  # Terminal state
            StepStatus.FAILED: set(),  # Terminal state
        }
        return target_status in valid_transitions.get(self, set())


class StepKind(str, Enum):
    """How a workflow step is carried out."""

    ACTIVE = "active"  # Hands-on work
    SLEEP = "sleep"  # Proofing, resting, cooling
    MANUAL = "manual"

    @property
    def is_special(self) -> bool:
        """Steps other than active/manual work add planning complexity."""
        return self not in {StepKind.ACTIVE, StepKind.MANUAL}


class Priority(str, Enum):
    """Demand and batch priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Sort rank, lower schedules first."""
        ranks = {
            Priority.URGENT: 0,
            Priority.HIGH: 1,
            Priority.MEDIUM: 2,
            Priority.LOW: 3,
        }
        return ranks[self]


class IssueSeverity(str, Enum):
    """Severity of a reported production issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def pauses_batch(self) -> bool:
        return self == IssueSeverity.CRITICAL

    @property
    def escalates(self) -> bool:
        return self in {IssueSeverity.HIGH, IssueSeverity.CRITICAL}


class IssueStatus(str, Enum):
    """Issue lifecycle."""

    OPEN = "open"
    RESOLVED = "resolved"


class ScheduleStatus(str, Enum):
    """Daily production schedule status enumeration."""

    DRAFT = "draft"
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target_status: "ScheduleStatus") -> bool:
        """Check if schedule can transition from current status to target status."""
        valid_transitions = {
            ScheduleStatus.DRAFT: {ScheduleStatus.PLANNED, ScheduleStatus.CANCELLED},
            ScheduleStatus.PLANNED: {ScheduleStatus.ACTIVE, ScheduleStatus.CANCELLED},
            ScheduleStatus.ACTIVE: {
                ScheduleStatus.COMPLETED,
                ScheduleStatus.CANCELLED,
            },
            ScheduleStatus.COMPLETED: set(),  # Terminal state
            ScheduleStatus.CANCELLED: {ScheduleStatus.DRAFT},  # Can be reopened
        }
        return target_status in valid_transitions.get(self, set())


class ResourceType(str, Enum):
    """Kinds of resources tracked by the ledger."""

    STAFF = "staff"
    EQUIPMENT = "equipment"


class BottleneckSeverity(str, Enum):
    """Severity of a detected capacity bottleneck."""

    MEDIUM = "medium"
    HIGH = "high"


class ConflictType(str, Enum):
    """Kinds of non-fatal planning conflicts."""

    STAFF = "staff"
    EQUIPMENT = "equipment"
    UNSCHEDULED = "unscheduled"
    WORKFLOW = "workflow"


class AdvanceOutcome(str, Enum):
    """Result of moving a batch past a finished step."""

    ADVANCED = "advanced"
    WAITING = "waiting"
    COMPLETED = "completed"


class MetricPeriod(str, Enum):
    """Time buckets for production analytics."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    def key_for(self, moment: datetime) -> str:
        """Sortable label of the bucket containing ``moment``."""
        if self == MetricPeriod.HOUR:
            return moment.strftime("%Y-%m-%d %H:00")
        if self == MetricPeriod.WEEK:
            year, week, _ = moment.isocalendar()
            return f"{year}-W{week:02d}"
        if self == MetricPeriod.MONTH:
            return moment.strftime("%Y-%m")
        return moment.strftime("%Y-%m-%d")


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
