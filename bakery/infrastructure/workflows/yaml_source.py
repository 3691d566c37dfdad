"""
Workflow templates read from process files.

A process directory holds one ``*.yaml`` file per workflow; the file stem is
the workflow id. Files are parsed once and cached.
"""

import logging
import threading
from pathlib import Path
from typing import Any

import yaml

from ...core.config import settings
from ...domain.production.entities.workflow import WorkflowDefinition
from ...domain.shared.exceptions import ValidationError

logger = logging.getLogger(__name__)

PROCESS_SUFFIXES = (".yaml", ".yml")


def load_workflow_file(path: Path) -> WorkflowDefinition:
    """
    Parse one process file.

    Raises:
        ValidationError: If the file is not a mapping with a step list
    """
    with path.open(encoding="utf-8") as f:
        data: Any = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValidationError(
            "workflow", str(path), "Process file must contain a mapping",
            error_code="INVALID_WORKFLOW_FILE",
        )
    if not isinstance(data.get("steps", []), list):
        raise ValidationError(
            "steps", str(path), "Process steps must be a list",
            error_code="INVALID_WORKFLOW_FILE",
        )
    return WorkflowDefinition.from_mapping(data, workflow_id=path.stem)


class YamlWorkflowSource:
    """Workflow source backed by a directory of process files."""

    def __init__(self, directory: Path | str | None = None) -> None:
        directory = directory or settings.WORKFLOW_DIRECTORY
        if directory is None:
            raise ValueError("A workflow directory is required")
        self.directory = Path(directory)
        self._cache: dict[str, WorkflowDefinition] | None = None
        self._lock = threading.Lock()

    def _load_all(self) -> dict[str, WorkflowDefinition]:
        with self._lock:
            if self._cache is not None:
                return self._cache

            workflows: dict[str, WorkflowDefinition] = {}
            if not self.directory.is_dir():
                logger.warning("Workflow directory %s does not exist", self.directory)
            else:
                for path in sorted(self.directory.iterdir()):
                    if path.suffix not in PROCESS_SUFFIXES:
                        continue
                    try:
                        workflow = load_workflow_file(path)
                    except (yaml.YAMLError, ValidationError) as e:
                        logger.error("Skipping workflow file %s: %s", path.name, e)
                        continue
                    workflows[workflow.id] = workflow

            logger.info("Loaded %d workflows from %s", len(workflows), self.directory)
            self._cache = workflows
            return workflows

    def reload(self) -> None:
        with self._lock:
            self._cache = None
        self._load_all()

    def get_workflow_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._load_all().get(workflow_id)

    def list_workflows(self) -> list[WorkflowDefinition]:
        return list(self._load_all().values())
