"""Pydantic models describing workflow definitions."""

from __future__ import annotations

from datetime import date
from typing import Any, Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..contracts import WorkflowType


class DeadlineRule(BaseModel):
    """How a task's due date is derived.

    ``fixed`` uses ``due_date``; ``after_start`` counts ``days`` from instance
    creation; ``after_task`` counts ``days`` from ``anchor_task`` completion;
    ``after_rejection`` counts ``days`` from the task's own rejection and is
    only meaningful as a re-submission rule.
    """

    kind: Literal["fixed", "after_start", "after_task", "after_rejection"]
    days: int = 0
    due_date: Optional[date] = None
    anchor_task: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_kind_fields(self) -> DeadlineRule:
        if self.kind == "fixed" and self.due_date is None:
            raise ValueError("fixed deadline rules require due_date")
        if self.kind == "after_task" and not self.anchor_task:
            raise ValueError("after_task deadline rules require anchor_task")
        if self.kind != "after_task" and self.anchor_task:
            raise ValueError("anchor_task is only valid for after_task rules")
        return self

    @classmethod
    def fixed(cls, due_date: date) -> "DeadlineRule":
        return cls(kind="fixed", due_date=due_date)

    @classmethod
    def after_start(cls, days: int) -> "DeadlineRule":
        return cls(kind="after_start", days=days)

    @classmethod
    def after_task(cls, anchor_task: str, days: int) -> "DeadlineRule":
        return cls(kind="after_task", anchor_task=anchor_task, days=days)

    @classmethod
    def after_rejection(cls, days: int) -> "DeadlineRule":
        return cls(kind="after_rejection", days=days)


class TaskDefinition(BaseModel):
    """Smallest unit of trackable progress within a phase."""

    task_key: str
    title: str = ""
    depends_on: tuple[str, ...] = Field(default_factory=tuple)
    is_critical: bool = False
    deadline_rule: Optional[DeadlineRule] = None
    resubmission_rule: Optional[DeadlineRule] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("task_key")
    @classmethod
    def _ensure_key(cls, v: str) -> str:
        if not v:
            raise ValueError("task_key must be a non-empty string")
        return v

    @model_validator(mode="before")
    @classmethod
    def _default_title(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("title") and data.get("task_key"):
            data = {**data, "title": str(data["task_key"]).replace("_", " ").title()}
        return data

    @model_validator(mode="after")
    def _check_rules(self) -> TaskDefinition:
        if self.deadline_rule is not None and self.deadline_rule.kind == "after_rejection":
            raise ValueError("after_rejection is only valid as a resubmission_rule")
        return self


class PhaseDefinition(BaseModel):
    """Ordered grouping of tasks."""

    phase_key: str
    order: int
    title: str = ""
    tasks: tuple[TaskDefinition, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)


class WorkflowDefinition(BaseModel):
    """Immutable template for one workflow type."""

    workflow_type: WorkflowType
    title: str = ""
    phases: tuple[PhaseDefinition, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    @field_validator("phases")
    @classmethod
    def _sort_phases(
        cls, v: tuple[PhaseDefinition, ...]
    ) -> tuple[PhaseDefinition, ...]:
        return tuple(sorted(v, key=lambda phase: phase.order))

    def iter_tasks(self) -> Iterator[tuple[PhaseDefinition, TaskDefinition]]:
        """Yield ``(phase, task)`` pairs in definition order."""
        for phase in self.phases:
            for task in phase.tasks:
                yield phase, task

    def task_keys(self) -> list[str]:
        return [task.task_key for _, task in self.iter_tasks()]

    def get_task(self, task_key: str) -> Optional[TaskDefinition]:
        for _, task in self.iter_tasks():
            if task.task_key == task_key:
                return task
        return None

    def phase_of(self, task_key: str) -> Optional[PhaseDefinition]:
        for phase, task in self.iter_tasks():
            if task.task_key == task_key:
                return phase
        return None
