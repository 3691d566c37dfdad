"""Construction of production batches from workflow templates."""

from datetime import datetime, timedelta
from uuid import UUID, uuid4

from .entities.batch import ProductionBatch
from .entities.step import ProductionStep
from .entities.workflow import WorkflowDefinition
from .value_objects.enums import Priority


def build_steps(
    batch_id: UUID,
    workflow: WorkflowDefinition,
    planned_start: datetime,
    duration_minutes: float,
) -> list[ProductionStep]:
    """
    Create one step per workflow template, laid out back to back.

    Step estimates are stretched or shrunk proportionally so the steps exactly
    fill ``duration_minutes`` starting at ``planned_start``.
    """
    template_total = sum(template.duration_minutes for template in workflow.steps)
    scale = duration_minutes / template_total if template_total else 0.0

    steps = []
    cursor = planned_start
    for index, template in enumerate(workflow.steps):
        minutes = template.duration_minutes * scale
        step_end = cursor + timedelta(minutes=minutes)
        steps.append(
            ProductionStep(
                batch_id=batch_id,
                step_index=index,
                name=template.name,
                kind=template.kind,
                planned_start=cursor,
                planned_end=step_end,
                planned_duration_minutes=round(minutes),
                activities=list(template.activities),
                conditions=list(template.conditions),
                required_equipment=list(template.required_equipment),
                notes=template.notes,
            )
        )
        cursor = step_end
    return steps


def create_batch_from_workflow(
    workflow: WorkflowDefinition,
    quantity: int,
    planned_start: datetime,
    duration_minutes: float | None = None,
    name: str | None = None,
    priority: Priority = Priority.MEDIUM,
    product_id: str | None = None,
    schedule_id: UUID | None = None,
    unit: str = "pieces",
    created_by: str | None = None,
    notes: str | None = None,
) -> ProductionBatch:
    """
    Create a planned batch with its steps.

    Without an explicit ``duration_minutes`` the batch lasts one pass of the
    workflow.
    """
    if duration_minutes is None:
        duration_minutes = workflow.total_duration_minutes
    batch_id = uuid4()
    planned_end = planned_start + timedelta(minutes=duration_minutes)
    return ProductionBatch(
        id=batch_id,
        name=name or workflow.name,
        workflow_id=workflow.id,
        product_id=product_id,
        schedule_id=schedule_id,
        planned_quantity=quantity,
        unit=unit,
        planned_start=planned_start,
        planned_end=planned_end,
        priority=priority,
        required_equipment=list(workflow.required_equipment),
        steps=build_steps(batch_id, workflow, planned_start, duration_minutes),
        created_by=created_by,
        notes=notes,
    )
