"""
Production runtime wiring.

``ProductionContainer`` builds the planner, the execution engine and their
adapters lazily from settings. ``production_runtime`` initializes logging and
metrics, hands out a container and shuts the engine down on exit.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

from .core.config import Settings, settings
from .core.observability import get_logger, initialize_observability
from .domain.production.ports import MonitorSink, NotifySink, WorkflowSource
from .domain.production.services.capacity_planner import (
    CapacityPlanner,
    constraints_from_settings,
)
from .domain.production.services.execution_engine import ProductionExecutionEngine
from .domain.production.services.production_analytics import ProductionAnalyticsService
from .domain.production.services.resource_ledger import LedgerRegistry
from .infrastructure.repositories import InMemoryBatchRepository, InMemoryScheduleRepository
from .infrastructure.sinks import LoggingMonitorSink, LoggingNotifySink
from .infrastructure.workflows import YamlWorkflowSource

BUNDLED_PROCESSES = Path(__file__).parent / "processes"

logger = get_logger(__name__)


class ProductionContainer:
    """
    Holds one instance of every production service.

    Ports can be replaced before first use by passing them in; everything not
    given is created on first access.
    """

    def __init__(
        self,
        config: Settings | None = None,
        workflow_source: WorkflowSource | None = None,
        notify_sink: NotifySink | None = None,
        monitor_sink: MonitorSink | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or settings
        self.clock = clock
        self._workflows = workflow_source
        self._notify_sink = notify_sink
        self._monitor_sink = monitor_sink
        self._batches: InMemoryBatchRepository | None = None
        self._schedules: InMemoryScheduleRepository | None = None
        self._ledgers: LedgerRegistry | None = None
        self._planner: CapacityPlanner | None = None
        self._engine: ProductionExecutionEngine | None = None
        self._analytics: ProductionAnalyticsService | None = None

    @property
    def workflows(self) -> WorkflowSource:
        if self._workflows is None:
            self._workflows = YamlWorkflowSource(
                self.config.WORKFLOW_DIRECTORY or BUNDLED_PROCESSES
            )
        return self._workflows

    @property
    def batches(self) -> InMemoryBatchRepository:
        if self._batches is None:
            self._batches = InMemoryBatchRepository()
        return self._batches

    @property
    def schedules(self) -> InMemoryScheduleRepository:
        if self._schedules is None:
            self._schedules = InMemoryScheduleRepository()
        return self._schedules

    @property
    def ledgers(self) -> LedgerRegistry:
        if self._ledgers is None:
            self._ledgers = LedgerRegistry()
        return self._ledgers

    @property
    def planner(self) -> CapacityPlanner:
        if self._planner is None:
            self._planner = CapacityPlanner(
                self.workflows, constraints_from_settings(self.config)
            )
        return self._planner

    @property
    def engine(self) -> ProductionExecutionEngine:
        if self._engine is None:
            self._engine = ProductionExecutionEngine(
                self.batches,
                self.workflows,
                self._notify_sink or LoggingNotifySink(),
                self._monitor_sink or LoggingMonitorSink(),
                schedule_repository=self.schedules,
                ledgers=self.ledgers,
                clock=self.clock,
                config=self.config,
            )
        return self._engine

    @property
    def analytics(self) -> ProductionAnalyticsService:
        if self._analytics is None:
            self._analytics = ProductionAnalyticsService(
                self.batches, clock=self.clock, config=self.config
            )
        return self._analytics

    async def shutdown(self) -> None:
        if self._engine is not None:
            await self._engine.shutdown()


@asynccontextmanager
async def production_runtime(
    config: Settings | None = None, **overrides
) -> AsyncGenerator[ProductionContainer, None]:
    """Initialize observability and yield a ready container."""
    config = config or settings
    initialize_observability(config)
    container = ProductionContainer(config, **overrides)
    logger.info(
        "Production runtime started",
        project_name=config.PROJECT_NAME,
        environment=config.ENVIRONMENT,
    )
    try:
        yield container
    finally:
        await container.shutdown()
        logger.info("Production runtime stopped")
