"""Production entities and aggregate roots."""

from .batch import ProductionBatch
from .issue import QUALITY_FAILURE, Issue
from .schedule import ProductionSchedule
from .step import ProductionStep
from .workflow import StepTemplate, WorkflowDefinition

__all__ = [
    "ProductionBatch",
    "ProductionSchedule",
    "ProductionStep",
    "Issue",
    "QUALITY_FAILURE",
    "StepTemplate",
    "WorkflowDefinition",
]
