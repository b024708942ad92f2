"""Completion percentages for workflow instances."""

from __future__ import annotations

from .contracts import CompletionSummary, PhaseProgress, TaskStatus
from .persistence.models import WorkflowInstance
from .registry.models import WorkflowDefinition
from .resolver import TaskDependencyResolver


def _round_half_up(numerator: int, denominator: int) -> int:
    """``round(numerator * 100 / denominator)`` with halves rounded up."""
    return (200 * numerator + denominator) // (2 * denominator)


class CompletionAggregator:
    """Computes per-phase and overall completion.

    Phase percentages are floored. The overall percentage weights phases by
    task count, which reduces to completed tasks over all tasks; it is
    rounded half up so one of three tasks reads 33 and two read 67.
    """

    def __init__(self, resolver: TaskDependencyResolver | None = None) -> None:
        self._resolver = resolver or TaskDependencyResolver()

    def aggregate(
        self, definition: WorkflowDefinition, instance: WorkflowInstance
    ) -> CompletionSummary:
        per_phase: list[PhaseProgress] = []
        completed_all = 0
        total_all = 0
        for phase in definition.phases:
            total = len(phase.tasks)
            completed = sum(
                1
                for task in phase.tasks
                if instance.task_status(task.task_key) == TaskStatus.COMPLETED
            )
            percent = completed * 100 // total if total else 0
            per_phase.append(
                PhaseProgress(
                    phase_key=phase.phase_key,
                    completed=completed,
                    total=total,
                    percent=percent,
                )
            )
            completed_all += completed
            total_all += total

        overall = _round_half_up(completed_all, total_all) if total_all else 0
        return CompletionSummary(
            overall_percent=overall,
            per_phase=per_phase,
            current_phase=self._resolver.current_phase(definition, instance),
        )
