"""Tests for workflow templates and duration parsing."""

import pytest

from bakery.domain.production.entities.workflow import StepTemplate, WorkflowDefinition
from bakery.domain.production.value_objects.duration import (
    DEFAULT_STEP_MINUTES,
    parse_duration_minutes,
)
from bakery.domain.production.value_objects.enums import StepKind


@pytest.mark.parametrize(
    "value, expected",
    [
        ("15m", 15),
        ("30min", 30),
        ("2h", 120),
        ("1.5 hours", 90),
        ("45", 45),
        (20, 20),
        (None, DEFAULT_STEP_MINUTES),
        ("soon", DEFAULT_STEP_MINUTES),
    ],
)
def test_parse_duration_minutes(value, expected):
    assert parse_duration_minutes(value) == expected


def test_boolean_duration_rejected():
    with pytest.raises(TypeError):
        parse_duration_minutes(True)


class TestStepTemplate:
    def test_timeout_wins_over_duration(self):
        step = StepTemplate.from_mapping({"name": "mix", "timeout": "10m", "duration": "1h"})

        assert step.duration_minutes == 10

    def test_conditions_flattened(self):
        step = StepTemplate.from_mapping(
            {
                "name": "rise",
                "type": "sleep",
                "duration": "45m",
                "conditions": [{"temp > 25°C": "30m"}, "covered"],
            }
        )

        assert step.kind == StepKind.SLEEP
        assert step.conditions == ("temp > 25°C: 30m", "covered")


class TestWorkflowDefinition:
    def test_total_duration(self, bread_workflow):
        assert bread_workflow.total_duration_minutes == 180

    def test_empty_workflow_counts_one_hour(self):
        assert WorkflowDefinition(id="empty", name="Empty").total_duration_minutes == 60

    def test_required_equipment_is_deduplicated(self):
        workflow = WorkflowDefinition(
            id="w",
            name="W",
            equipment=("mixer",),
            steps=(
                StepTemplate(name="a", required_equipment=("oven", "mixer")),
                StepTemplate(name="b", required_equipment=("oven",)),
            ),
        )

        assert workflow.required_equipment == ("mixer", "oven")

    def test_complexity(self, bread_workflow):
        # three steps, one of them a sleep
        assert bread_workflow.complexity == pytest.approx(1.5)

    def test_from_mapping_prefers_given_id(self):
        workflow = WorkflowDefinition.from_mapping(
            {"name": "Baguette", "version": 2, "steps": [{"name": "mix"}]},
            workflow_id="baguette",
        )

        assert workflow.id == "baguette"
        assert workflow.version == "2"
        assert workflow.steps[0].duration_minutes == DEFAULT_STEP_MINUTES
