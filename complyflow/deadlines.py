"""Deadline resolution and alert classification."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .config import AlertConfig
from .contracts import Alert, Severity, TaskState, TaskStatus, utcnow
from .exceptions import InvalidMetadataError
from .persistence.models import WorkflowInstance
from .registry.models import DeadlineRule, TaskDefinition, WorkflowDefinition

DEADLINE_KEY = "deadline"
RESUBMIT_KEY = "resubmit_by"


def as_date(value: date | datetime | None) -> date:
    """Normalize ``value`` to a UTC calendar date; ``None`` means today."""
    if value is None:
        return utcnow().date()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def parse_deadline(task_key: str, field: str, value: Any) -> date:
    """Parse an explicit deadline from task metadata.

    Accepts an ISO date (``2025-03-17``) or a full ISO datetime, which is
    normalized to its UTC date.
    """
    if isinstance(value, (date, datetime)):
        return as_date(value)
    text = str(value).strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return as_date(datetime.fromisoformat(text))
    except ValueError:
        raise InvalidMetadataError(task_key, field, f"{value!r} is not an ISO date") from None


class DeadlineTracker:
    """Derives alerts from task state; nothing is cached between calls."""

    def __init__(self, config: Optional[AlertConfig] = None) -> None:
        self.config = config or AlertConfig()

    # ------------------------------------------------------------------
    # Due date resolution
    # ------------------------------------------------------------------
    def resolve_rule(
        self, rule: DeadlineRule, instance: WorkflowInstance, state: TaskState
    ) -> Optional[date]:
        """Return the concrete due date, or ``None`` while it is pending."""
        if rule.kind == "fixed":
            return rule.due_date
        if rule.kind == "after_start":
            return as_date(instance.created_at) + timedelta(days=rule.days)
        if rule.kind == "after_task":
            anchor = instance.task_states.get(rule.anchor_task or "")
            if anchor is None or anchor.status != TaskStatus.COMPLETED or not anchor.completed_at:
                return None
            return as_date(anchor.completed_at) + timedelta(days=rule.days)
        # after_rejection
        rejected_at = state.updated_at or instance.updated_at
        return as_date(rejected_at) + timedelta(days=rule.days)

    def due_date(
        self, task: TaskDefinition, instance: WorkflowInstance
    ) -> Optional[date]:
        state = instance.task_states.get(task.task_key) or TaskState()
        if state.status == TaskStatus.COMPLETED:
            return None
        if state.status == TaskStatus.REJECTED:
            if RESUBMIT_KEY in state.metadata:
                return parse_deadline(task.task_key, RESUBMIT_KEY, state.metadata[RESUBMIT_KEY])
            if task.resubmission_rule is not None:
                return self.resolve_rule(task.resubmission_rule, instance, state)
            return None
        if DEADLINE_KEY in state.metadata:
            return parse_deadline(task.task_key, DEADLINE_KEY, state.metadata[DEADLINE_KEY])
        if task.deadline_rule is not None:
            return self.resolve_rule(task.deadline_rule, instance, state)
        return None

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------
    def classify(self, task: TaskDefinition, days_remaining: int) -> Optional[Severity]:
        if days_remaining <= self.config.critical_days or (
            task.is_critical and days_remaining < 0
        ):
            return Severity.CRITICAL
        if days_remaining <= self.config.high_days:
            return Severity.HIGH
        return None

    @staticmethod
    def _message(task: TaskDefinition, rejected: bool, days_remaining: int) -> str:
        subject = f"Re-submit {task.title}" if rejected else task.title
        if days_remaining < 0:
            return f"{subject} is overdue by {-days_remaining} day(s)"
        if days_remaining == 0:
            return f"{subject} is due today"
        return f"{subject} is due in {days_remaining} day(s)"

    def compute_deadlines(
        self,
        definition: WorkflowDefinition,
        instance: WorkflowInstance,
        as_of: date | datetime | None = None,
    ) -> list[Alert]:
        """Return actionable alerts, most urgent first."""

        today = as_date(as_of)
        ranked: list[tuple[int, int, Alert]] = []
        for index, (phase, task) in enumerate(definition.iter_tasks()):
            due = self.due_date(task, instance)
            if due is None:
                continue
            days_remaining = (due - today).days
            severity = self.classify(task, days_remaining)
            if severity is None:
                continue
            rejected = instance.task_status(task.task_key) == TaskStatus.REJECTED
            alert = Alert(
                task_key=task.task_key,
                phase_key=phase.phase_key,
                severity=severity,
                message=self._message(task, rejected, days_remaining),
                due_date=due,
                days_remaining=days_remaining,
            )
            ranked.append((days_remaining, index, alert))
        ranked.sort(key=lambda item: item[:2])
        return [alert for _, _, alert in ranked]
