"""Workflow source holding templates in memory."""

from collections.abc import Iterable

from ...domain.production.entities.workflow import WorkflowDefinition


class InMemoryWorkflowSource:
    def __init__(self, workflows: Iterable[WorkflowDefinition] = ()) -> None:
        self._workflows = {workflow.id: workflow for workflow in workflows}

    def add(self, workflow: WorkflowDefinition) -> None:
        self._workflows[workflow.id] = workflow

    def get_workflow_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._workflows.get(workflow_id)

    def list_workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())
