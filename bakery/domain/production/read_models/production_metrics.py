"""
Production metrics read model for efficiency, timing and throughput analysis.

Pure projections over stored batches: completion and failure rates, quantity,
time and quality efficiency, on-time delivery, throughput per period, trends,
per-workflow figures and performance recommendations.
"""

from collections.abc import Sequence
from datetime import datetime

from pydantic import Field

from ...shared.base import ValueObject
from ..entities.batch import ProductionBatch
from ..value_objects.enums import BatchStatus, MetricPeriod, Priority, TrendDirection

ON_TIME_TOLERANCE_MINUTES = 15
MAX_TIME_EFFICIENCY = 2.0
TREND_THRESHOLD_PERCENT = 5

LOW_EFFICIENCY = 70
HIGH_DELAY_RATE = 20
HIGH_ISSUE_RATE = 15
LOW_COMPLETION_RATE = 60

THROUGHPUT_COUNTERS = ("batches", "planned_quantity", "actual_quantity", "completed", "failed")


def _percent(part: float, whole: float, default: int = 0) -> int:
    return round(part / whole * 100) if whole else default


class OverviewMetrics(ValueObject):
    total_batches: int = Field(ge=0, default=0)
    completed_batches: int = Field(ge=0, default=0)
    failed_batches: int = Field(ge=0, default=0)
    cancelled_batches: int = Field(ge=0, default=0)
    in_progress_batches: int = Field(ge=0, default=0)
    completion_rate: int = 0
    failure_rate: int = 0
    total_planned_quantity: int = 0
    total_produced_quantity: int = 0
    production_efficiency: int = 0


class EfficiencyMetrics(ValueObject):
    """Percentages; ``overall`` weighs time and quantity 40% each and quality 20%."""

    overall: int = 0
    production: int = 0
    time: int = 0
    quality: int = 0
    sample_size: int = Field(ge=0, default=0)

    @property
    def score(self) -> int:
        return round((self.overall + self.production + self.time + self.quality) / 4)


class QualityMetrics(ValueObject):
    overall_quality_score: int = 100
    quality_check_completion_rate: int = 0
    issue_rate: int = 0
    total_quality_checks: int = 0
    total_issues: int = 0
    batches_with_issues: int = 0


class TimingMetrics(ValueObject):
    on_time_percentage: int = 0
    delayed_percentage: int = 0
    early_percentage: int = 0
    average_delay_minutes: int = 0
    currently_delayed: int = 0
    on_time_batches: int = 0
    delayed_batches: int = 0
    early_batches: int = 0


class ThroughputPeriod(ValueObject):
    period: str
    batches: int = 0
    planned_quantity: int = 0
    actual_quantity: int = 0
    completed: int = 0
    failed: int = 0


class ThroughputSummary(ValueObject):
    total_periods: int = 0
    average_batches_per_period: float = 0.0
    average_quantity_per_period: float = 0.0
    peak_batches: int = 0
    peak_quantity: int = 0


class ThroughputMetrics(ValueObject):
    by_period: list[ThroughputPeriod] = Field(default_factory=list)
    summary: ThroughputSummary = Field(default_factory=ThroughputSummary)


class Trend(ValueObject):
    trend: TrendDirection = TrendDirection.STABLE
    change: float = 0.0
    first_period_avg: float | None = None
    second_period_avg: float | None = None


class TrendMetrics(ValueObject):
    efficiency: Trend = Field(default_factory=Trend)
    throughput: Trend = Field(default_factory=Trend)
    quality: Trend = Field(default_factory=Trend)


class WorkflowMetrics(ValueObject):
    workflow_id: str
    total_batches: int = 0
    completion_rate: int = 0
    failure_rate: int = 0
    production_efficiency: int = 0
    average_duration_minutes: int = 0
    total_quantity_produced: int = 0


class WorkflowAnalysis(ValueObject):
    by_workflow: list[WorkflowMetrics] = Field(default_factory=list)
    total_workflows: int = 0
    most_used_workflow: str | None = None
    highest_efficiency_workflow: str | None = None


class Recommendation(ValueObject):
    type: str
    priority: Priority
    title: str
    description: str
    impact: str
    effort: str


class AnalysisPeriod(ValueObject):
    start: datetime
    end: datetime

    @property
    def days(self) -> int:
        seconds = (self.end - self.start).total_seconds()
        return max(0, -(-int(seconds) // 86400))


class ProductionMetrics(ValueObject):
    """Everything the analytics dashboard shows for a period."""

    overview: OverviewMetrics
    efficiency: EfficiencyMetrics
    quality: QualityMetrics
    timing: TimingMetrics
    throughput: ThroughputMetrics
    trends: TrendMetrics
    workflow_analysis: WorkflowAnalysis
    recommendations: list[Recommendation] = Field(default_factory=list)
    period: AnalysisPeriod
    generated_at: datetime


class EfficiencyReport(ValueObject):
    efficiency: EfficiencyMetrics
    score: int
    improvements: list[Recommendation] = Field(default_factory=list)
    period: AnalysisPeriod
    generated_at: datetime


def _produced(batch: ProductionBatch) -> int:
    return batch.actual_quantity or 0


def build_overview_metrics(batches: Sequence[ProductionBatch]) -> OverviewMetrics:
    total = len(batches)
    completed = sum(1 for b in batches if b.status == BatchStatus.COMPLETED)
    failed = sum(1 for b in batches if b.status == BatchStatus.FAILED)
    planned = sum(b.planned_quantity for b in batches)
    produced = sum(_produced(b) for b in batches)
    return OverviewMetrics(
        total_batches=total,
        completed_batches=completed,
        failed_batches=failed,
        cancelled_batches=sum(1 for b in batches if b.status == BatchStatus.CANCELLED),
        in_progress_batches=sum(1 for b in batches if b.status == BatchStatus.IN_PROGRESS),
        completion_rate=_percent(completed, total),
        failure_rate=_percent(failed, total),
        total_planned_quantity=planned,
        total_produced_quantity=produced,
        production_efficiency=_percent(produced, planned),
    )


def build_efficiency_metrics(batches: Sequence[ProductionBatch]) -> EfficiencyMetrics:
    """
    Time, quantity and quality efficiency of the finished batches.

    Time efficiency compares planned with actual duration per batch, capped at
    200%. Quality efficiency is the share of batches that did not fail.
    """
    finished = [
        b
        for b in batches
        if b.status == BatchStatus.COMPLETED
        and b.actual_start is not None
        and b.actual_end is not None
    ]
    if not finished:
        return EfficiencyMetrics()

    ratios = []
    for batch in finished:
        planned = (batch.planned_end - batch.planned_start).total_seconds()
        actual = (batch.actual_end - batch.actual_start).total_seconds()
        if planned > 0 and actual > 0:
            ratios.append(min(planned / actual, MAX_TIME_EFFICIENCY) * 100)
    time_efficiency = sum(ratios) / len(ratios) if ratios else 0.0

    planned_quantity = sum(b.planned_quantity for b in finished)
    production = sum(_produced(b) for b in finished) / planned_quantity * 100

    failed = sum(1 for b in batches if b.status == BatchStatus.FAILED)
    quality = (len(batches) - failed) / len(batches) * 100

    return EfficiencyMetrics(
        overall=round(time_efficiency * 0.4 + production * 0.4 + quality * 0.2),
        production=round(production),
        time=round(time_efficiency),
        quality=round(quality),
        sample_size=len(finished),
    )


def build_quality_metrics(batches: Sequence[ProductionBatch]) -> QualityMetrics:
    steps = [step for batch in batches for step in batch.steps]
    with_issues = sum(1 for step in steps if step.has_issues)
    checked = sum(1 for step in steps if step.quality_results)
    batches_with_issues = sum(1 for b in batches if any(s.has_issues for s in b.steps))
    return QualityMetrics(
        overall_quality_score=_percent(len(steps) - with_issues, len(steps), default=100),
        quality_check_completion_rate=_percent(checked, len(steps)),
        issue_rate=_percent(batches_with_issues, len(batches)),
        total_quality_checks=checked,
        total_issues=with_issues,
        batches_with_issues=batches_with_issues,
    )


def build_timing_metrics(batches: Sequence[ProductionBatch], now: datetime) -> TimingMetrics:
    """On-time delivery of completed batches with a 15 minute tolerance either way."""
    completed = [b for b in batches if b.status == BatchStatus.COMPLETED]
    on_time = early = delayed = 0
    total_delay = 0.0
    for batch in completed:
        if batch.actual_end is None:
            continue
        delay = (batch.actual_end - batch.planned_end).total_seconds() / 60
        if delay > ON_TIME_TOLERANCE_MINUTES:
            delayed += 1
            total_delay += delay
        elif delay < -ON_TIME_TOLERANCE_MINUTES:
            early += 1
        else:
            on_time += 1

    return TimingMetrics(
        on_time_percentage=_percent(on_time, len(completed)),
        delayed_percentage=_percent(delayed, len(completed)),
        early_percentage=_percent(early, len(completed)),
        average_delay_minutes=round(total_delay / delayed) if delayed else 0,
        currently_delayed=sum(1 for b in batches if b.is_delayed(now)),
        on_time_batches=on_time,
        delayed_batches=delayed,
        early_batches=early,
    )


def build_throughput_metrics(
    batches: Sequence[ProductionBatch], group_by: MetricPeriod = MetricPeriod.DAY
) -> ThroughputMetrics:
    """Batches and quantities per period of planned start, oldest period first."""
    buckets: dict[str, dict[str, int]] = {}
    for batch in batches:
        key = group_by.key_for(batch.planned_start)
        bucket = buckets.setdefault(key, dict.fromkeys(THROUGHPUT_COUNTERS, 0))
        bucket["batches"] += 1
        bucket["planned_quantity"] += batch.planned_quantity
        bucket["actual_quantity"] += _produced(batch)
        bucket["completed"] += batch.status == BatchStatus.COMPLETED
        bucket["failed"] += batch.status == BatchStatus.FAILED

    periods = [ThroughputPeriod(period=key, **buckets[key]) for key in sorted(buckets)]
    if not periods:
        return ThroughputMetrics()

    return ThroughputMetrics(
        by_period=periods,
        summary=ThroughputSummary(
            total_periods=len(periods),
            average_batches_per_period=round(sum(p.batches for p in periods) / len(periods), 2),
            average_quantity_per_period=round(
                sum(p.actual_quantity for p in periods) / len(periods), 2
            ),
            peak_batches=max(p.batches for p in periods),
            peak_quantity=max(p.actual_quantity for p in periods),
        ),
    )


def calculate_trend(values: Sequence[float]) -> Trend:
    """
    Compare the mean of the later half of ``values`` with the earlier half.

    A change of more than 5% of the earlier mean is a trend; the middle value
    of an odd series belongs to the later half.
    """
    if len(values) < 2:
        return Trend()

    middle = len(values) // 2
    first = sum(values[:middle]) / middle
    second = sum(values[middle:]) / (len(values) - middle)
    change = (second - first) / first * 100 if first > 0 else 0.0

    trend = TrendDirection.STABLE
    if abs(change) > TREND_THRESHOLD_PERCENT:
        trend = TrendDirection.IMPROVING if second > first else TrendDirection.DECLINING

    return Trend(
        trend=trend,
        change=round(change, 2),
        first_period_avg=round(first, 2),
        second_period_avg=round(second, 2),
    )


def build_trend_metrics(throughput: ThroughputMetrics) -> TrendMetrics:
    periods = throughput.by_period
    if len(periods) < 2:
        return TrendMetrics()
    return TrendMetrics(
        efficiency=calculate_trend([p.completed / p.batches * 100 for p in periods]),
        throughput=calculate_trend([p.batches for p in periods]),
        quality=calculate_trend([(p.batches - p.failed) / p.batches * 100 for p in periods]),
    )


def build_workflow_analysis(batches: Sequence[ProductionBatch]) -> WorkflowAnalysis:
    """Per-workflow rates, most used workflow first."""
    grouped: dict[str, list[ProductionBatch]] = {}
    for batch in batches:
        grouped.setdefault(batch.workflow_id, []).append(batch)

    metrics = []
    for workflow_id, items in grouped.items():
        completed = [b for b in items if b.status == BatchStatus.COMPLETED]
        failed = sum(1 for b in items if b.status == BatchStatus.FAILED)
        durations = [
            (b.actual_end - b.actual_start).total_seconds() / 60
            for b in completed
            if b.actual_start is not None and b.actual_end is not None
        ]
        planned = sum(b.planned_quantity for b in items)
        produced = sum(_produced(b) for b in items)
        metrics.append(
            WorkflowMetrics(
                workflow_id=workflow_id,
                total_batches=len(items),
                completion_rate=_percent(len(completed), len(items)),
                failure_rate=_percent(failed, len(items)),
                production_efficiency=_percent(produced, planned),
                average_duration_minutes=(
                    round(sum(durations) / len(completed)) if completed else 0
                ),
                total_quantity_produced=produced,
            )
        )
    metrics.sort(key=lambda item: item.total_batches, reverse=True)

    best = None
    for item in metrics:
        if item.production_efficiency > (best.production_efficiency if best else 0):
            best = item

    return WorkflowAnalysis(
        by_workflow=metrics,
        total_workflows=len(metrics),
        most_used_workflow=metrics[0].workflow_id if metrics else None,
        highest_efficiency_workflow=best.workflow_id if best else None,
    )


def build_recommendations(
    batches: Sequence[ProductionBatch],
    efficiency: EfficiencyMetrics,
    timing: TimingMetrics,
    quality: QualityMetrics,
) -> list[Recommendation]:
    """Improvement hints for weak figures, high priority first."""
    recommendations = []
    if efficiency.sample_size and efficiency.overall < LOW_EFFICIENCY:
        recommendations.append(
            Recommendation(
                type="efficiency",
                priority=Priority.HIGH,
                title="Low overall efficiency",
                description=(
                    f"Overall efficiency is {efficiency.overall}%. "
                    "Review workflows and resource allocation."
                ),
                impact="high",
                effort="medium",
            )
        )
    if timing.delayed_percentage > HIGH_DELAY_RATE:
        recommendations.append(
            Recommendation(
                type="timing",
                priority=Priority.HIGH,
                title="High delay rate",
                description=(
                    f"{timing.delayed_percentage}% of batches finished late. "
                    "Review scheduling and capacity planning."
                ),
                impact="high",
                effort="medium",
            )
        )
    if quality.issue_rate > HIGH_ISSUE_RATE:
        recommendations.append(
            Recommendation(
                type="quality",
                priority=Priority.HIGH,
                title="Quality issues",
                description=(
                    f"{quality.issue_rate}% of batches have quality issues. "
                    "Add quality controls."
                ),
                impact="high",
                effort="high",
            )
        )
    if batches:
        completed = sum(1 for b in batches if b.status == BatchStatus.COMPLETED)
        if _percent(completed, len(batches)) < LOW_COMPLETION_RATE:
            recommendations.append(
                Recommendation(
                    type="utilization",
                    priority=Priority.MEDIUM,
                    title="Low capacity utilization",
                    description=(
                        "Production capacity may be underused. "
                        "Consider larger or more frequent batches."
                    ),
                    impact="medium",
                    effort="low",
                )
            )
    return sorted(recommendations, key=lambda item: item.priority.rank)


def build_production_metrics(
    batches: Sequence[ProductionBatch],
    period: AnalysisPeriod,
    now: datetime,
    group_by: MetricPeriod = MetricPeriod.DAY,
) -> ProductionMetrics:
    efficiency = build_efficiency_metrics(batches)
    quality = build_quality_metrics(batches)
    timing = build_timing_metrics(batches, now)
    throughput = build_throughput_metrics(batches, group_by)
    return ProductionMetrics(
        overview=build_overview_metrics(batches),
        efficiency=efficiency,
        quality=quality,
        timing=timing,
        throughput=throughput,
        trends=build_trend_metrics(throughput),
        workflow_analysis=build_workflow_analysis(batches),
        recommendations=build_recommendations(batches, efficiency, timing, quality),
        period=period,
        generated_at=now,
    )
