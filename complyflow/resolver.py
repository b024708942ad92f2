"""Task eligibility and transition validation."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .contracts import EligibilityState, TaskOutcome, TaskState, TaskStatus
from .exceptions import (
    DependencyNotSatisfiedError,
    InvalidOutcomeError,
    TaskAlreadyCompletedError,
    UnknownTaskError,
)
from .persistence.models import WorkflowInstance
from .registry.models import WorkflowDefinition

_SETTLED = {
    TaskStatus.COMPLETED: EligibilityState.COMPLETED,
    TaskStatus.REJECTED: EligibilityState.REJECTED,
}


def _status(task_states: Mapping[str, TaskState], task_key: str) -> TaskStatus:
    state = task_states.get(task_key)
    return state.status if state else TaskStatus.NOT_STARTED


class TaskDependencyResolver:
    """Derives task eligibility from a definition and an instance.

    Every method is a pure function of its arguments. This is the single
    place where "may this task move forward" is decided; the orchestrator
    calls :meth:`ensure_can_advance` before every transition.
    """

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------
    def resolve_states(
        self, definition: WorkflowDefinition, task_states: Mapping[str, TaskState]
    ) -> dict[str, EligibilityState]:
        eligibility: dict[str, EligibilityState] = {}
        for _, task in definition.iter_tasks():
            status = _status(task_states, task.task_key)
            if status in _SETTLED:
                eligibility[task.task_key] = _SETTLED[status]
            elif all(_status(task_states, dep) == TaskStatus.COMPLETED for dep in task.depends_on):
                eligibility[task.task_key] = EligibilityState.ELIGIBLE
            else:
                eligibility[task.task_key] = EligibilityState.LOCKED
        return eligibility

    def resolve(
        self, definition: WorkflowDefinition, instance: WorkflowInstance
    ) -> dict[str, EligibilityState]:
        """Return ``task_key -> EligibilityState`` in definition order."""
        return self.resolve_states(definition, instance.task_states)

    def current_phase(
        self, definition: WorkflowDefinition, instance: WorkflowInstance
    ) -> Optional[str]:
        """Earliest phase with a task that is neither completed nor rejected."""
        for phase in definition.phases:
            for task in phase.tasks:
                if not instance.task_states.get(task.task_key, TaskState()).is_settled:
                    return phase.phase_key
        return None

    def first_unmet_dependency(
        self, definition: WorkflowDefinition, instance: WorkflowInstance, task_key: str
    ) -> Optional[str]:
        task = definition.get_task(task_key)
        if task is None:
            raise UnknownTaskError(definition.workflow_type.value, task_key)
        for dep in task.depends_on:
            if instance.task_status(dep) != TaskStatus.COMPLETED:
                return dep
        return None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def ensure_can_advance(
        self,
        definition: WorkflowDefinition,
        instance: WorkflowInstance,
        task_key: str,
        outcome: Any,
    ) -> TaskOutcome:
        """Validate a transition and return the parsed outcome.

        Rejected tasks whose dependencies are met may be advanced again so a
        corrected submission can go through.
        """

        unmet = self.first_unmet_dependency(definition, instance, task_key)
        if instance.task_status(task_key) == TaskStatus.COMPLETED:
            raise TaskAlreadyCompletedError(instance.instance_id, task_key)
        if unmet is not None:
            raise DependencyNotSatisfiedError(instance.instance_id, task_key, unmet)
        try:
            return TaskOutcome(outcome)
        except ValueError:
            raise InvalidOutcomeError(task_key, outcome) from None

    def sync_statuses(
        self, definition: WorkflowDefinition, task_states: Mapping[str, TaskState]
    ) -> dict[str, TaskState]:
        """Recompute stored ``not_started``/``blocked`` statuses from eligibility.

        Tasks in any other status are returned unchanged.
        """

        eligibility = self.resolve_states(definition, task_states)
        synced: dict[str, TaskState] = {}
        for _, task in definition.iter_tasks():
            state = task_states.get(task.task_key) or TaskState()
            if state.status in (TaskStatus.NOT_STARTED, TaskStatus.BLOCKED):
                wanted = (
                    TaskStatus.NOT_STARTED
                    if eligibility[task.task_key] == EligibilityState.ELIGIBLE
                    else TaskStatus.BLOCKED
                )
                if state.status != wanted:
                    state = state.model_copy(update={"status": wanted})
            synced[task.task_key] = state
        return synced

    def initial_states(self, definition: WorkflowDefinition) -> dict[str, TaskState]:
        return self.sync_statuses(definition, {})
