"""
Production Analytics

Read-only reporting over stored batches: rates, efficiency, timing,
throughput, trends and per-workflow figures for an analysis window.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from ....core.config import Settings, settings
from ....core.observability import get_logger, log_error_with_context, monitor_performance
from ...shared.exceptions import ValidationError
from ..entities.batch import ProductionBatch
from ..read_models.production_metrics import (
    AnalysisPeriod,
    EfficiencyReport,
    ProductionMetrics,
    build_production_metrics,
)
from ..repositories.batch_repository import BatchRepository
from ..value_objects.enums import MetricPeriod

logger = get_logger(__name__)


class ProductionAnalyticsService:
    """Computes production metrics for a window of planned start times."""

    def __init__(
        self,
        batch_repository: BatchRepository,
        clock: Callable[[], datetime] = datetime.now,
        config: Settings | None = None,
    ) -> None:
        config = config or settings
        self._batches = batch_repository
        self._now = clock
        self._window = timedelta(days=config.ANALYTICS_WINDOW_DAYS)

    def _period(self, start: datetime | None, end: datetime | None) -> AnalysisPeriod:
        end = end or self._now()
        start = start or end - self._window
        if end <= start:
            raise ValidationError("end", end.isoformat(), "Analysis end must be after its start")
        return AnalysisPeriod(start=start, end=end)

    async def _load(
        self, period: AnalysisPeriod, workflow_id: str | None
    ) -> list[ProductionBatch]:
        try:
            return await self._batches.find_between(period.start, period.end, workflow_id)
        except Exception as e:
            log_error_with_context(
                e,
                "load_batches_for_analytics",
                {"start": period.start.isoformat(), "end": period.end.isoformat()},
            )
            raise

    @monitor_performance("calculate_production_metrics")
    async def calculate_production_metrics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        workflow_id: str | None = None,
        group_by: MetricPeriod = MetricPeriod.DAY,
    ) -> ProductionMetrics:
        """
        Metrics for batches planned to start within ``[start, end]``.

        Args:
            start: Window start, defaults to ``ANALYTICS_WINDOW_DAYS`` before end
            end: Window end, defaults to now
            workflow_id: Only batches of this workflow
            group_by: Throughput bucket size

        Returns:
            Overview, efficiency, quality, timing, throughput, trends,
            workflow analysis and recommendations
        """
        period = self._period(start, end)
        batches = await self._load(period, workflow_id)
        metrics = build_production_metrics(batches, period, self._now(), group_by)

        logger.info(
            "Production metrics calculated",
            batch_count=len(batches),
            workflow_id=workflow_id,
            period_days=period.days,
            group_by=group_by.value,
        )
        return metrics

    @monitor_performance("generate_efficiency_report")
    async def generate_efficiency_report(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        workflow_id: str | None = None,
    ) -> EfficiencyReport:
        """Efficiency figures with the efficiency and timing recommendations only."""
        metrics = await self.calculate_production_metrics(start, end, workflow_id)
        efficiency = metrics.efficiency
        improvements = [
            item for item in metrics.recommendations if item.type in ("efficiency", "timing")
        ]
        return EfficiencyReport(
            efficiency=efficiency,
            score=efficiency.score,
            improvements=improvements,
            period=metrics.period,
            generated_at=metrics.generated_at,
        )
