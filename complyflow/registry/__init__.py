"""Workflow definition registry.

Definitions are validated when they are registered so a malformed catalog
fails at startup instead of at the first ``advance`` call.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from pydantic import ValidationError

from ..config import ComplyFlowConfig, load_config
from ..contracts import WorkflowType
from ..exceptions import (
    CyclicDependencyError,
    DanglingDependencyError,
    DefinitionError,
    DuplicateDefinitionError,
    UnknownWorkflowType,
)
from .catalog import BUILTIN_DEFINITIONS
from .models import DeadlineRule, PhaseDefinition, TaskDefinition, WorkflowDefinition

logger = logging.getLogger(__name__)


def _find_cycle(edges: dict[str, tuple[str, ...]]) -> Optional[list[str]]:
    """Return the first dependency cycle found, closed on its start node."""
    visiting: set[str] = set()
    done: set[str] = set()
    stack: list[str] = []

    def visit(node: str) -> Optional[list[str]]:
        visiting.add(node)
        stack.append(node)
        for dep in edges.get(node, ()):
            if dep in visiting:
                return stack[stack.index(dep) :] + [dep]
            if dep not in done:
                cycle = visit(dep)
                if cycle:
                    return cycle
        stack.pop()
        visiting.discard(node)
        done.add(node)
        return None

    for node in edges:
        if node not in done:
            cycle = visit(node)
            if cycle:
                return cycle
    return None


def validate_definition(definition: WorkflowDefinition) -> None:
    """Raise a ``DefinitionError`` subclass if ``definition`` is malformed."""

    workflow_type = definition.workflow_type.value
    seen_orders: set[int] = set()
    seen_phases: set[str] = set()
    position: dict[str, int] = {}

    for index, phase in enumerate(definition.phases):
        if phase.order in seen_orders:
            raise DuplicateDefinitionError(workflow_type, "phase order", phase.order)
        if phase.phase_key in seen_phases:
            raise DuplicateDefinitionError(workflow_type, "phase", phase.phase_key)
        seen_orders.add(phase.order)
        seen_phases.add(phase.phase_key)
        for task in phase.tasks:
            if task.task_key in position:
                raise DuplicateDefinitionError(workflow_type, "task", task.task_key)
            position[task.task_key] = index

    def check_reference(task: TaskDefinition, reference: str, index: int) -> None:
        if reference not in position:
            raise DanglingDependencyError(
                workflow_type, task.task_key, reference, "no such task"
            )
        if position[reference] > index:
            raise DanglingDependencyError(
                workflow_type, task.task_key, reference, "task belongs to a later phase"
            )

    edges: dict[str, tuple[str, ...]] = {}
    for index, phase in enumerate(definition.phases):
        for task in phase.tasks:
            for dep in task.depends_on:
                check_reference(task, dep, index)
            for rule in (task.deadline_rule, task.resubmission_rule):
                if rule is None or rule.anchor_task is None:
                    continue
                if rule.anchor_task == task.task_key:
                    raise DanglingDependencyError(
                        workflow_type,
                        task.task_key,
                        rule.anchor_task,
                        "a task cannot anchor its own deadline",
                    )
                check_reference(task, rule.anchor_task, index)
            edges[task.task_key] = task.depends_on

    cycle = _find_cycle(edges)
    if cycle:
        raise CyclicDependencyError(workflow_type, cycle)


class WorkflowDefinitionRegistry:
    """Catalog of validated workflow definitions keyed by type."""

    def __init__(self, definitions: Iterable[WorkflowDefinition] = ()) -> None:
        self._definitions: dict[WorkflowType, WorkflowDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: WorkflowDefinition, replace: bool = False) -> None:
        """Validate and add ``definition``.

        Registering a type twice fails unless ``replace`` is set, which is how
        configured YAML definitions override the built-in catalog.
        """
        validate_definition(definition)
        workflow_type = definition.workflow_type
        if workflow_type in self._definitions and not replace:
            raise DuplicateDefinitionError(
                workflow_type.value, "workflow type", workflow_type.value
            )
        self._definitions[workflow_type] = definition

    def get_definition(self, workflow_type: WorkflowType | str) -> WorkflowDefinition:
        try:
            key = WorkflowType(workflow_type)
        except ValueError:
            raise UnknownWorkflowType(workflow_type) from None
        try:
            return self._definitions[key]
        except KeyError:
            raise UnknownWorkflowType(workflow_type) from None

    def workflow_types(self) -> list[WorkflowType]:
        return list(self._definitions)

    def definitions(self) -> list[WorkflowDefinition]:
        return list(self._definitions.values())

    def __contains__(self, workflow_type: Any) -> bool:
        try:
            return WorkflowType(workflow_type) in self._definitions
        except ValueError:
            return False


def load_definitions(path: str | Path) -> list[WorkflowDefinition]:
    """Load workflow definitions from a YAML file with a ``workflows`` list."""

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    definitions: list[WorkflowDefinition] = []
    for item in data.get("workflows", []):
        try:
            definitions.append(WorkflowDefinition.model_validate(item))
        except ValidationError as exc:
            raise DefinitionError(
                f"Invalid workflow definition in {path}: {exc}",
                "INVALID_DEFINITION",
                {"path": str(path), "workflow_type": str(item.get("workflow_type"))},
            ) from exc
    return definitions


def get_registry(config: Optional[ComplyFlowConfig] = None) -> WorkflowDefinitionRegistry:
    """Return a registry with the built-in catalog plus configured overrides."""

    config = config or load_config()
    registry = WorkflowDefinitionRegistry(BUILTIN_DEFINITIONS)
    if config.definitions_path:
        for definition in load_definitions(config.definitions_path):
            registry.register(definition, replace=True)
            logger.info(
                f"Loaded {definition.workflow_type.value} definition from {config.definitions_path}"
            )
    return registry


# Validated once at import so a broken built-in catalog stops startup.
REGISTRY = WorkflowDefinitionRegistry(BUILTIN_DEFINITIONS)


__all__ = [
    "DeadlineRule",
    "TaskDefinition",
    "PhaseDefinition",
    "WorkflowDefinition",
    "WorkflowDefinitionRegistry",
    "validate_definition",
    "load_definitions",
    "get_registry",
    "REGISTRY",
]
