"""Workflow template sources."""

from .in_memory import InMemoryWorkflowSource
from .yaml_source import YamlWorkflowSource, load_workflow_file

__all__ = ["InMemoryWorkflowSource", "YamlWorkflowSource", "load_workflow_file"]
