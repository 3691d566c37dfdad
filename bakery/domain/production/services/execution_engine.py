"""
Production Execution Engine

Runtime orchestrator for production batches. Coordinates the batch aggregate,
the resource ledgers, the repositories and the notify/monitor sinks.

Every operation follows the same shape: take the batch's lock, load a fresh
copy, mutate it, save it, then publish the recorded events and notifications.
Sink failures are logged and never undo a saved state change.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ....core.config import Settings, settings
from ....core.observability import (
    ISSUES_REPORTED,
    QUALITY_CHECKS,
    get_logger,
    log_error_with_context,
    monitor_performance,
)
from ...shared.base import ValueObject
from ...shared.exceptions import (
    DomainError,
    InvalidProgressError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
)
from ..entities.batch import ProductionBatch
from ..entities.issue import Issue
from ..entities.step import ProductionStep
from ..events.domain_events import BatchEvent, DomainEventDispatcher
from ..factories import create_batch_from_workflow
from ..ports import MonitorSink, NotificationEvent, NotifySink, WorkflowSource, batch_topic
from ..read_models.batch_snapshots import (
    ProductionStatus,
    build_alerts,
    build_overview,
    build_timeline,
    enrich_batch,
)
from ..repositories.batch_repository import BatchRepository
from ..repositories.schedule_repository import ScheduleRepository
from ..value_objects.enums import BatchStatus, IssueSeverity, Priority, ScheduleStatus, StepStatus
from ..value_objects.execution import (
    BulkFailure,
    BulkResult,
    CompletionData,
    IssueData,
    IssueHandling,
    ProgressData,
    QualityData,
)
from ..value_objects.quality import QualityCheck
from ..value_objects.results import AdvanceResult
from .monitoring import BatchMonitorRegistry, MonitoringSession
from .resource_ledger import LedgerRegistry, ResourceLedger

logger = get_logger(__name__)

Mutation = Callable[[ProductionBatch, datetime], Any]


class IssueReport(ValueObject):
    """A recorded issue and how the engine handled it."""

    issue: Issue
    handling: IssueHandling


def _coerce(model: type[BaseModel], data: BaseModel | Mapping[str, Any] | None) -> Any:
    """Validate caller input, translating pydantic errors into domain ones."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or model.__name__
        value = first.get("input")
        if not isinstance(value, str | int | float | bool):
            value = None
        raise ValidationError(field, value, first["msg"]) from e


def _parse_step_status(value: str | None) -> StepStatus | None:
    if value is None:
        return None
    try:
        return StepStatus(value)
    except ValueError:
        raise InvalidStatusError(value) from None


class ProductionExecutionEngine:
    """
    Runs production batches.

    Mutations of one batch are serialized by an ``asyncio.Lock`` keyed by
    batch id; different batches never wait on each other. A lock lives only
    while some coroutine holds or waits for it.
    """

    def __init__(
        self,
        batch_repository: BatchRepository,
        workflow_source: WorkflowSource,
        notify_sink: NotifySink,
        monitor_sink: MonitorSink,
        schedule_repository: ScheduleRepository | None = None,
        ledgers: LedgerRegistry | None = None,
        clock: Callable[[], datetime] = datetime.now,
        config: Settings | None = None,
        monitor_interval_seconds: float | None = None,
        quality_passing_score: float | None = None,
        event_dispatcher: DomainEventDispatcher | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            batch_repository: Batch storage
            workflow_source: Workflow template lookup
            notify_sink: Destination for floor notifications
            monitor_sink: Destination for live batch snapshots
            schedule_repository: Schedule storage, used to roll batch outcomes
                up into the day's schedule
            ledgers: Resource ledgers keyed by day
            clock: Source of the current time
            config: Settings providing defaults for the optional values below
            monitor_interval_seconds: Seconds between status snapshots
            quality_passing_score: Default passing score for quality checks
            event_dispatcher: In-process subscribers to domain events
        """
        config = config or settings
        self._batches = batch_repository
        self._schedules = schedule_repository
        self._workflows = workflow_source
        self._notify_sink = notify_sink
        self._monitor_sink = monitor_sink
        self._ledgers = ledgers or LedgerRegistry()
        self._now = clock
        self._passing_score = (
            quality_passing_score
            if quality_passing_score is not None
            else config.QUALITY_PASSING_SCORE
        )
        self._dispatcher = event_dispatcher or DomainEventDispatcher()
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}
        self._monitor = BatchMonitorRegistry(
            monitor_sink,
            self._status_snapshot,
            (
                monitor_interval_seconds
                if monitor_interval_seconds is not None
                else config.MONITOR_INTERVAL_SECONDS
            ),
        )

    @property
    def ledgers(self) -> LedgerRegistry:
        return self._ledgers

    @property
    def monitor(self) -> BatchMonitorRegistry:
        return self._monitor

    @property
    def events(self) -> DomainEventDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _batch_lock(self, batch_id: UUID) -> AsyncIterator[None]:
        """Hold the batch's lock; the lock is dropped once nobody uses it."""
        lock = self._locks.get(batch_id)
        if lock is None:
            lock = self._locks[batch_id] = asyncio.Lock()
        self._lock_users[batch_id] = self._lock_users.get(batch_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[batch_id] -= 1
            if not self._lock_users[batch_id]:
                del self._lock_users[batch_id]
                del self._locks[batch_id]

    async def _load(self, batch_id: UUID) -> ProductionBatch:
        batch = await self._batches.get_by_id(batch_id)
        if batch is None:
            raise NotFoundError("production_batch", batch_id)
        return batch

    async def _batch_id_for_step(self, step_id: UUID) -> UUID:
        batch = await self._batches.find_by_step_id(step_id)
        if batch is None:
            raise NotFoundError("production_step", step_id)
        return batch.id

    async def _mutate(
        self, batch_id: UUID, mutation: Mutation
    ) -> tuple[ProductionBatch, Any]:
        """Apply ``mutation`` to a fresh copy of the batch and save it."""
        async with self._batch_lock(batch_id):
            batch = await self._load(batch_id)
            was_terminal = batch.status.is_terminal
            now = self._now()
            result = mutation(batch, now)
            events = batch.pull_domain_events()
            await self._batches.save(batch)

        if batch.status.is_terminal and not was_terminal:
            await self._on_terminal(batch, now)
        await self._publish(batch, events, now)
        return batch, result

    async def _publish(
        self, batch: ProductionBatch, events: list[BatchEvent], now: datetime
    ) -> None:
        if not events:
            return
        snapshot = enrich_batch(batch, now)
        for event in events:
            self._dispatcher.dispatch(event)
            try:
                await self._monitor_sink.publish(
                    event.topic, {**event.to_payload(), "batch": snapshot}
                )
            except Exception as e:
                logger.warning(
                    "Monitor publish failed",
                    batch_id=str(batch.id),
                    event=event.event_name,
                    error=str(e),
                )

    async def _notify(self, event: NotificationEvent) -> bool:
        try:
            await self._notify_sink.notify(event)
        except Exception as e:
            logger.warning(
                "Notification delivery failed",
                kind=event.kind,
                batch_id=str(event.batch_id),
                error=str(e),
            )
            return False
        return True

    async def _on_terminal(self, batch: ProductionBatch, now: datetime) -> None:
        await self._monitor.stop(batch.id)

        if batch.status in (BatchStatus.CANCELLED, BatchStatus.FAILED):
            ledger = self._ledgers.get(batch.planned_start.date())
            if ledger is not None:
                ledger.release_batch(batch.id)

        if batch.status == BatchStatus.COMPLETED:
            await self._record_completion(batch, now)
            await self._notify(
                NotificationEvent(
                    kind="batch_completed",
                    batch_id=batch.id,
                    priority=IssueSeverity.LOW,
                    created_at=now,
                    payload={
                        "batch_name": batch.name,
                        "quantity": batch.actual_quantity or batch.planned_quantity,
                    },
                )
            )
        elif batch.status == BatchStatus.FAILED:
            await self._notify(
                NotificationEvent(
                    kind="batch_failed",
                    batch_id=batch.id,
                    priority=IssueSeverity.HIGH,
                    created_at=now,
                    payload={
                        "batch_name": batch.name,
                        "failed_steps": sum(
                            step.status == StepStatus.FAILED for step in batch.steps
                        ),
                    },
                )
            )

        logger.info(
            "Batch finished",
            batch_id=str(batch.id),
            status=batch.status.value,
            actual_quantity=batch.actual_quantity,
        )

    async def _schedule_for(self, batch: ProductionBatch):
        if self._schedules is None:
            return None
        if batch.schedule_id is not None:
            return await self._schedules.get_by_id(batch.schedule_id)
        return await self._schedules.find_by_batch_id(batch.id)

    async def _record_completion(self, batch: ProductionBatch, now: datetime) -> None:
        schedule = await self._schedule_for(batch)
        if schedule is None:
            return
        schedule.record_batch_completion(batch.id)
        if (
            schedule.status == ScheduleStatus.ACTIVE
            and schedule.planned_batch_ids
            and set(schedule.planned_batch_ids) <= set(schedule.completed_batch_ids)
        ):
            schedule.complete(now)
            logger.info("Schedule completed", schedule_id=str(schedule.id))
        await self._schedules.save(schedule)

    async def _activate_schedule(self, batch: ProductionBatch, now: datetime) -> None:
        schedule = await self._schedule_for(batch)
        if schedule is None or schedule.status != ScheduleStatus.PLANNED:
            return
        schedule.activate(now)
        await self._schedules.save(schedule)
        logger.info("Schedule activated", schedule_id=str(schedule.id))

    async def _record_quality_issue(self, batch: ProductionBatch) -> None:
        schedule = await self._schedule_for(batch)
        if schedule is None:
            return
        schedule.record_quality_issue()
        await self._schedules.save(schedule)

    async def _notify_step_completed(
        self, batch: ProductionBatch, step_id: UUID, user_id: str, now: datetime
    ) -> None:
        step = batch.get_step(step_id)
        if step.status != StepStatus.COMPLETED:
            return
        await self._notify(
            NotificationEvent(
                kind="step_completed",
                batch_id=batch.id,
                step_id=step.id,
                priority=IssueSeverity.LOW,
                created_at=now,
                payload={"step_name": step.name, "completed_by": user_id},
            )
        )

    @staticmethod
    def _select_equipment(ledger: ResourceLedger, batch: ProductionBatch) -> list[str]:
        """
        Allocated stations plus one free matching station per unmet requirement.

        Raises:
            ResourceUnavailableError: Listing the requirements no station can cover
        """
        start, end = batch.planned_start, batch.planned_end
        selected = list(batch.allocated_equipment)
        used: set[str] = set()
        missing: list[str] = []
        for requirement in batch.required_equipment:
            candidates = sorted(
                (
                    station
                    for station in ledger.stations
                    if station.matches(requirement) and station.id not in used
                ),
                key=lambda station: station.id not in batch.allocated_equipment,
            )
            choice = next(
                (
                    station.id
                    for station in candidates
                    if station.id in batch.allocated_equipment
                    or ledger.is_free(station.id, start, end, batch.id)
                ),
                None,
            )
            if choice is None:
                missing.append(requirement)
                continue
            used.add(choice)
            if choice not in selected:
                selected.append(choice)

        if missing:
            logger.warning(
                "Required equipment unavailable",
                batch_id=str(batch.id),
                missing=missing,
            )
            raise ResourceUnavailableError(missing, start, end, batch.id)
        return selected

    async def _status_snapshot(self, batch_id: UUID) -> dict[str, Any] | None:
        """Current snapshot for the monitor loop; ``None`` once the batch is done."""
        async with self._batch_lock(batch_id):
            batch = await self._batches.get_by_id(batch_id)
        if batch is None or batch.status.is_terminal:
            return None
        now = self._now()
        return {
            "batch_id": str(batch.id),
            "batch": enrich_batch(batch, now),
            "timestamp": now.isoformat(),
        }

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    @monitor_performance("create_batch")
    async def create_batch(
        self,
        workflow_id: str,
        quantity: int,
        planned_start: datetime,
        created_by: str,
        name: str | None = None,
        priority: Priority = Priority.MEDIUM,
        product_id: str | None = None,
        notes: str | None = None,
    ) -> ProductionBatch:
        """
        Create and store a planned batch running one pass of a workflow.

        Raises:
            NotFoundError: If the workflow is unknown
        """
        workflow = self._workflows.get_workflow_by_id(workflow_id)
        if workflow is None:
            raise NotFoundError("workflow", workflow_id)
        if quantity <= 0:
            raise ValidationError(
                "quantity", quantity, "Quantity must be positive", error_code="INVALID_QUANTITY"
            )

        batch = create_batch_from_workflow(
            workflow,
            quantity,
            planned_start,
            name=name,
            priority=priority,
            product_id=product_id,
            created_by=created_by,
            notes=notes,
        )
        await self._batches.save(batch)
        logger.info(
            "Batch created",
            batch_id=str(batch.id),
            workflow_id=workflow_id,
            quantity=quantity,
            steps=len(batch.steps),
        )
        return batch

    @monitor_performance("start_batch")
    async def start_batch(self, batch_id: UUID, user_id: str) -> ProductionBatch:
        """
        Start a planned or ready batch.

        The day's ledger must confirm every assigned worker and allocated
        station over the batch's planned interval before anything changes.
        Required equipment with no allocated station gets a free matching
        station from the ledger.

        Args:
            batch_id: Batch to start
            user_id: Person starting the batch

        Returns:
            The started batch

        Raises:
            NotFoundError: If the batch does not exist
            InvalidTransitionError: If the batch is not planned or ready
            ResourceUnavailableError: If a resource is booked by another batch
        """
        async with self._batch_lock(batch_id):
            batch = await self._load(batch_id)
            if not batch.status.is_pending:
                raise InvalidTransitionError(
                    "batch", batch.id, batch.status.value, BatchStatus.IN_PROGRESS.value,
                    "only planned or ready batches can be started",
                )

            ledger = self._ledgers.get_or_create(batch.planned_start.date())
            equipment = self._select_equipment(ledger, batch)
            held_before = ledger.allocations_for_batch(batch.id)
            reserved = ledger.reserve(
                [*batch.assigned_staff_ids, *equipment],
                batch.planned_start,
                batch.planned_end,
                batch.id,
            )

            now = self._now()
            try:
                if equipment != batch.allocated_equipment:
                    batch.assign_resources(batch.assigned_staff_ids, equipment)
                batch.start(now, user_id)
                events = batch.pull_domain_events()
                await self._batches.save(batch)
            except Exception:
                ledger.restore(batch.id, held_before)
                raise

        self._monitor.start(batch.id)
        await self._activate_schedule(batch, now)
        await self._publish(batch, events, now)
        await self._notify(
            NotificationEvent(
                kind="batch_started",
                batch_id=batch.id,
                priority=IssueSeverity.MEDIUM,
                created_at=now,
                payload={"batch_name": batch.name, "started_by": user_id},
            )
        )
        logger.info(
            "Batch started",
            batch_id=str(batch.id),
            started_by=user_id,
            reserved=len(reserved),
        )
        return batch

    @monitor_performance("advance")
    async def advance(self, batch_id: UUID, from_step_index: int) -> AdvanceResult:
        """
        Move a batch past its completed step at ``from_step_index``.

        Completes the batch after its last step. When the next step's
        predecessors are not all finished the batch waits and the result
        carries the reason.
        """
        _, result = await self._mutate(
            batch_id, lambda batch, now: batch.advance(from_step_index, now)
        )
        return result

    @monitor_performance("pause_batch")
    async def pause_batch(
        self, batch_id: UUID, reason: str | None, user_id: str
    ) -> ProductionBatch:
        """Pause an in-progress batch. Monitoring keeps running."""
        batch, _ = await self._mutate(
            batch_id, lambda batch, now: batch.pause(reason, now, user_id)
        )
        logger.info("Batch paused", batch_id=str(batch_id), reason=reason, paused_by=user_id)
        return batch

    @monitor_performance("resume_batch")
    async def resume_batch(self, batch_id: UUID, user_id: str) -> ProductionBatch:
        """Resume a waiting batch, restoring the statuses it had before."""
        batch, _ = await self._mutate(
            batch_id, lambda batch, now: batch.resume(now, user_id)
        )
        logger.info("Batch resumed", batch_id=str(batch_id), resumed_by=user_id)
        return batch

    @monitor_performance("cancel_batch")
    async def cancel_batch(
        self, batch_id: UUID, reason: str | None, user_id: str
    ) -> ProductionBatch:
        """Cancel a batch and release its ledger allocations."""
        batch, _ = await self._mutate(
            batch_id, lambda batch, now: batch.cancel(reason, now, user_id)
        )
        return batch

    @monitor_performance("fail_batch")
    async def fail_batch(
        self, batch_id: UUID, reason: str | None, user_id: str
    ) -> ProductionBatch:
        """Fail a running batch and release its ledger allocations."""

        def fail(batch: ProductionBatch, now: datetime) -> None:
            batch.fail(reason, now)

        batch, _ = await self._mutate(batch_id, fail)
        logger.warning("Batch failed", batch_id=str(batch_id), reason=reason, failed_by=user_id)
        return batch

    @monitor_performance("start_batches")
    async def start_batches(self, batch_ids: Iterable[UUID], user_id: str) -> BulkResult:
        """Start several batches, collecting per-batch failures."""
        succeeded: list[UUID] = []
        failed: list[BulkFailure] = []
        for batch_id in batch_ids:
            try:
                await self.start_batch(batch_id, user_id)
            except DomainError as e:
                failed.append(
                    BulkFailure(id=batch_id, error=e.message, error_type=e.error_type.value)
                )
                continue
            succeeded.append(batch_id)

        logger.info("Bulk start finished", succeeded=len(succeeded), failed=len(failed))
        return BulkResult(succeeded=succeeded, failed=failed)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @monitor_performance("start_step")
    async def start_step(self, step_id: UUID, user_id: str) -> ProductionStep:
        batch_id = await self._batch_id_for_step(step_id)
        _, step = await self._mutate(
            batch_id, lambda batch, now: batch.start_step(step_id, now)
        )
        logger.info("Step started", batch_id=str(batch_id), step_id=str(step_id), user=user_id)
        return step

    @monitor_performance("complete_step")
    async def complete_step(
        self,
        step_id: UUID,
        completion_data: CompletionData | Mapping[str, Any] | None,
        user_id: str,
    ) -> AdvanceResult:
        """
        Complete an in-progress step and advance its batch.

        Args:
            step_id: Step to complete
            completion_data: Optional quality scores, notes and an
                ``actual_quantity`` used if this completes the batch
            user_id: Person completing the step

        Returns:
            Where the batch went next
        """
        data: CompletionData = _coerce(CompletionData, completion_data)
        batch_id = await self._batch_id_for_step(step_id)

        def complete(batch: ProductionBatch, now: datetime) -> AdvanceResult:
            quality_results = None
            if data.checks:
                quality_results = [
                    QualityCheck.evaluate(
                        step_id, data.checks, user_id, now, self._passing_score
                    )
                ]
            return batch.complete_step(
                step_id,
                now,
                completed_by=user_id,
                quality_results=quality_results,
                notes=data.notes,
                actual_quantity=data.actual_quantity,
            )

        batch, result = await self._mutate(batch_id, complete)
        logger.info(
            "Step completed",
            batch_id=str(batch.id),
            step_id=str(step_id),
            outcome=result.outcome.value,
        )
        await self._notify_step_completed(batch, step_id, user_id, self._now())
        return result

    @monitor_performance("skip_step")
    async def skip_step(
        self, step_id: UUID, reason: str | None, user_id: str
    ) -> AdvanceResult | None:
        batch_id = await self._batch_id_for_step(step_id)
        _, result = await self._mutate(
            batch_id, lambda batch, now: batch.skip_step(step_id, reason, now)
        )
        logger.info("Step skipped", batch_id=str(batch_id), step_id=str(step_id), user=user_id)
        return result

    @monitor_performance("complete_activity")
    async def complete_activity(
        self, step_id: UUID, activity: str, user_id: str
    ) -> ProductionStep:
        """Tick off one activity of a step's checklist."""
        batch_id = await self._batch_id_for_step(step_id)

        def tick(batch: ProductionBatch, now: datetime) -> ProductionStep:
            step = batch.get_step(step_id)
            step.complete_activity(activity, now)
            batch.mark_updated(now)
            return step

        _, step = await self._mutate(batch_id, tick)
        logger.debug(
            "Activity completed", step_id=str(step_id), activity=activity, user=user_id
        )
        return step

    @monitor_performance("update_step_progress")
    async def update_step_progress(
        self,
        step_id: UUID,
        progress_data: ProgressData | Mapping[str, Any],
        updater_id: str,
    ) -> ProductionStep:
        """
        Apply a progress report to a step.

        Raises:
            InvalidProgressError: If progress is outside [0, 100]
            InvalidStatusError: If status is not a step status
            InvalidTransitionError: If the status change is not allowed
        """
        data: ProgressData = _coerce(ProgressData, progress_data)
        if data.progress is not None and not 0 <= data.progress <= 100:
            raise InvalidProgressError(data.progress)
        status = _parse_step_status(data.status)

        batch_id = await self._batch_id_for_step(step_id)

        def update(batch: ProductionBatch, now: datetime) -> ProductionStep:
            batch.update_step(
                step_id,
                now,
                updater_id,
                progress=data.progress,
                status=status,
                notes=data.notes,
            )
            return batch.get_step(step_id)

        batch, step = await self._mutate(batch_id, update)
        if status == StepStatus.COMPLETED:
            await self._notify_step_completed(batch, step_id, updater_id, self._now())
        return step

    # ------------------------------------------------------------------
    # Issues and quality
    # ------------------------------------------------------------------

    @monitor_performance("report_issue")
    async def report_issue(
        self,
        batch_id: UUID,
        issue_data: IssueData | Mapping[str, Any],
        reporter_id: str,
    ) -> IssueReport:
        """
        Record a production issue and react to its severity.

        Critical issues pause an in-progress batch and escalate, high issues
        escalate, medium and low issues are only logged. Every issue produces a
        notification.

        Args:
            batch_id: Affected batch
            issue_data: Type, severity, description, impact and optional step
            reporter_id: Person reporting the issue

        Returns:
            The stored issue and the handling applied
        """
        data: IssueData = _coerce(IssueData, issue_data)

        def report(batch: ProductionBatch, now: datetime) -> tuple[Issue, bool]:
            issue = Issue(
                batch_id=batch.id,
                step_id=data.step_id,
                type=data.type,
                severity=data.severity,
                description=data.description,
                impact=data.impact,
                reported_by=reporter_id,
                reported_at=now,
            )
            return issue, batch.report_issue(issue, now)

        batch, (issue, auto_paused) = await self._mutate(batch_id, report)
        ISSUES_REPORTED.labels(severity=issue.severity.value).inc()

        escalated = issue.severity.escalates
        actions = []
        if auto_paused:
            actions.append("batch_paused")
        if escalated:
            actions.append("escalated")
            logger.warning(
                "Production issue escalated",
                batch_id=str(batch.id),
                issue_id=str(issue.id),
                severity=issue.severity.value,
                auto_paused=auto_paused,
            )
        else:
            logger.info(
                "Production issue logged",
                batch_id=str(batch.id),
                issue_id=str(issue.id),
                severity=issue.severity.value,
            )

        notified = await self._notify(
            NotificationEvent(
                kind="production_issue_reported",
                batch_id=batch.id,
                step_id=issue.step_id,
                priority=issue.severity,
                created_at=issue.reported_at,
                payload={
                    "issue_id": str(issue.id),
                    "type": issue.type,
                    "description": issue.description,
                    "impact": issue.impact,
                    "reported_by": reporter_id,
                    "auto_paused": auto_paused,
                    "escalated": escalated,
                    "batch_status": batch.status.value,
                },
            )
        )
        if notified:
            actions.append("notified")

        return IssueReport(
            issue=issue,
            handling=IssueHandling(
                auto_paused=auto_paused,
                escalated=escalated,
                notified=notified,
                actions=actions,
            ),
        )

    @monitor_performance("resolve_issue")
    async def resolve_issue(
        self,
        batch_id: UUID,
        issue_id: UUID,
        user_id: str,
        resolution: str | None = None,
    ) -> Issue:
        """Close an open issue. Resolving does not resume a paused batch."""
        _, issue = await self._mutate(
            batch_id,
            lambda batch, now: batch.resolve_issue(issue_id, user_id, now, resolution),
        )
        logger.info("Issue resolved", batch_id=str(batch_id), issue_id=str(issue_id))
        return issue

    @monitor_performance("perform_quality_check")
    async def perform_quality_check(
        self,
        step_id: UUID,
        quality_data: QualityData | Mapping[str, Any],
        checker_id: str,
    ) -> QualityCheck:
        """
        Score a step and record the result.

        A failed check flags the step and opens a high severity issue on the
        batch but never fails the batch.
        """
        data: QualityData = _coerce(QualityData, quality_data)
        passing_score = (
            data.passing_score if data.passing_score is not None else self._passing_score
        )
        batch_id = await self._batch_id_for_step(step_id)

        def check(batch: ProductionBatch, now: datetime) -> tuple[QualityCheck, Issue | None]:
            result = QualityCheck.evaluate(
                step_id, data.checks, checker_id, now, passing_score, data.notes
            )
            return result, batch.record_quality_check(result, now)

        batch, (result, issue) = await self._mutate(batch_id, check)
        QUALITY_CHECKS.labels(result="passed" if result.passed else "failed").inc()

        if issue is None:
            logger.info(
                "Quality check passed",
                step_id=str(step_id),
                score=result.overall_score,
            )
            return result

        ISSUES_REPORTED.labels(severity=issue.severity.value).inc()
        logger.warning(
            "Quality check failed",
            batch_id=str(batch.id),
            step_id=str(step_id),
            score=result.overall_score,
            passing_score=passing_score,
        )
        await self._record_quality_issue(batch)
        await self._notify(
            NotificationEvent(
                kind="quality_check_failed",
                batch_id=batch.id,
                step_id=step_id,
                priority=IssueSeverity.HIGH,
                created_at=result.performed_at,
                payload={
                    "check_id": str(result.id),
                    "issue_id": str(issue.id),
                    "overall_score": result.overall_score,
                    "passing_score": passing_score,
                    "checked_by": checker_id,
                },
            )
        )
        return result

    # ------------------------------------------------------------------
    # Monitoring and status
    # ------------------------------------------------------------------

    @monitor_performance("start_monitoring")
    async def start_monitoring(self, batch_id: UUID, user_id: str) -> MonitoringSession:
        """Watch a running batch; returns the existing session if already watched."""
        async with self._batch_lock(batch_id):
            batch = await self._load(batch_id)
        if not batch.status.is_active:
            raise InvalidTransitionError(
                "batch", batch.id, batch.status.value, "monitoring",
                "only running batches can be monitored",
            )

        now = self._now()
        started = self._monitor.start(batch.id)
        topic = batch_topic(batch.id)
        try:
            await self._monitor_sink.publish(
                topic,
                {
                    "event": "batch_monitoring_started",
                    "batch_id": str(batch.id),
                    "started_by": user_id,
                    "batch": enrich_batch(batch, now),
                    "timestamp": now.isoformat(),
                },
            )
        except Exception as e:
            logger.warning("Monitor publish failed", batch_id=str(batch.id), error=str(e))

        return MonitoringSession(
            batch_id=batch.id,
            topic=topic,
            interval_seconds=self._monitor.interval_seconds,
            started_at=now,
            started_by=user_id,
            already_running=not started,
        )

    async def stop_monitoring(self, batch_id: UUID) -> bool:
        return await self._monitor.stop(batch_id)

    @monitor_performance("get_production_status")
    async def get_production_status(
        self, day: date | None = None, include_completed: bool = False
    ) -> ProductionStatus:
        """
        Dashboard view of production, for one day or for every stored batch.

        Args:
            day: Only batches planned to start on this day
            include_completed: Also list completed batches

        Returns:
            Overview, batches by status, alerts and recent timeline
        """
        try:
            batches = (
                await self._batches.find_by_date(day)
                if day is not None
                else await self._batches.get_all()
            )
        except Exception as e:
            log_error_with_context(e, "get_production_status", {"day": str(day)})
            raise

        now = self._now()
        by_status: dict[BatchStatus, list[dict[str, Any]]] = {}
        for batch in batches:
            by_status.setdefault(batch.status, []).append(enrich_batch(batch, now))

        return ProductionStatus(
            production_date=day,
            overview=build_overview(batches, now),
            active_batches=by_status.get(BatchStatus.IN_PROGRESS, []),
            pending_batches=[
                *by_status.get(BatchStatus.PLANNED, []),
                *by_status.get(BatchStatus.READY, []),
            ],
            waiting_batches=by_status.get(BatchStatus.WAITING, []),
            completed_batches=(
                by_status.get(BatchStatus.COMPLETED, []) if include_completed else []
            ),
            alerts=build_alerts(batches, now),
            timeline=build_timeline(batches),
            generated_at=now,
        )

    async def shutdown(self) -> None:
        """Cancel every monitoring task."""
        await self._monitor.shutdown()
        logger.info("Execution engine shut down")
