"""Immutable workflow templates consumed by the planner and the batch factory."""

from typing import Any

from pydantic import Field, computed_field

from ...shared.base import ValueObject
from ..value_objects.duration import parse_duration_minutes
from ..value_objects.enums import StepKind

DEFAULT_WORKFLOW_MINUTES = 60


class StepTemplate(ValueObject):
    """One ordered step definition of a workflow."""

    name: str
    kind: StepKind = StepKind.ACTIVE
    duration_minutes: int = Field(default=30, ge=0)
    required_equipment: tuple[str, ...] = ()
    activities: tuple[str, ...] = ()
    conditions: tuple[str, ...] = ()
    notes: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "StepTemplate":
        """
        Build a template from a process-file mapping.

        ``timeout`` wins over ``duration`` the same way the process files are
        interpreted by the shop floor tooling. Conditions may be plain strings
        or single-key mappings (``{"temp > 25°C": "30m"}``).
        """
        conditions = []
        for condition in data.get("conditions") or []:
            if isinstance(condition, dict):
                conditions.extend(f"{key}: {value}" for key, value in condition.items())
            else:
                conditions.append(str(condition))

        return cls(
            name=str(data["name"]),
            kind=StepKind(data.get("type") or data.get("kind") or StepKind.ACTIVE.value),
            duration_minutes=parse_duration_minutes(
                data.get("timeout") or data.get("duration") or data.get("duration_minutes")
            ),
            required_equipment=tuple(data.get("equipment") or data.get("required_equipment") or ()),
            activities=tuple(str(a) for a in data.get("activities") or ()),
            conditions=tuple(conditions),
            notes=data.get("notes"),
            params=dict(data.get("params") or {}),
        )


class WorkflowDefinition(ValueObject):
    """A named, ordered production process. Never mutated by the core."""

    id: str
    name: str
    version: str = "1.0"
    steps: tuple[StepTemplate, ...] = ()
    equipment: tuple[str, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_duration_minutes(self) -> int:
        """Sum of step estimates; a workflow without steps counts as one hour."""
        if not self.steps:
            return DEFAULT_WORKFLOW_MINUTES
        return sum(step.duration_minutes for step in self.steps)

    @property
    def required_equipment(self) -> tuple[str, ...]:
        """Union of workflow-level and step-level equipment, first seen first."""
        seen: dict[str, None] = {}
        for item in self.equipment:
            seen.setdefault(item, None)
        for step in self.steps:
            for item in step.required_equipment:
                seen.setdefault(item, None)
        return tuple(seen)

    @property
    def complexity(self) -> float:
        """Batch complexity heuristic, capped at 5."""
        complexity = 1.0
        complexity += len(self.steps) * 0.1
        complexity += sum(1 for step in self.steps if step.kind.is_special) * 0.2
        if len(self.required_equipment) > 2:
            complexity += 0.3
        return min(complexity, 5.0)

    @classmethod
    def from_mapping(
        cls, data: dict[str, Any], workflow_id: str | None = None
    ) -> "WorkflowDefinition":
        """Build a workflow from a parsed process file."""
        name = str(data.get("name") or workflow_id or "")
        return cls(
            id=str(workflow_id or data.get("id") or name),
            name=name,
            version=str(data.get("version", "1.0")),
            steps=tuple(StepTemplate.from_mapping(step) for step in data.get("steps") or ()),
            equipment=tuple(data.get("equipment") or ()),
        )
