"""
Domain Services

Services coordinating several aggregates: the resource ledger guarding shared
staff and stations, the capacity planner producing daily plans, the execution
engine running batches on the floor and the analytics service reporting on them.
"""

from .capacity_planner import CapacityPlanner, PlanningResult
from .execution_engine import IssueReport, ProductionExecutionEngine
from .monitoring import BatchMonitorRegistry, MonitoringSession
from .production_analytics import ProductionAnalyticsService
from .resource_ledger import LedgerRegistry, ResourceLedger

__all__ = [
    "BatchMonitorRegistry",
    "CapacityPlanner",
    "IssueReport",
    "LedgerRegistry",
    "MonitoringSession",
    "PlanningResult",
    "ProductionAnalyticsService",
    "ProductionExecutionEngine",
    "ResourceLedger",
]
