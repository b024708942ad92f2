"""Core contracts shared by the complyflow engine components."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowType(str, Enum):
    DISSOLUTION = "dissolution"
    NAME_CHANGE = "name_change"
    LICENSE_DISCOVERY = "license_discovery"


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    REJECTED = "rejected"


class TaskOutcome(str, Enum):
    """Outcomes a caller may report through ``advance``."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class EligibilityState(str, Enum):
    LOCKED = "locked"
    ELIGIBLE = "eligible"
    COMPLETED = "completed"
    REJECTED = "rejected"


class InstanceStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not InstanceStatus.ACTIVE


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, lowest first (critical = 0)."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"


class TaskState(BaseModel):
    """Mutable progress record for one task of an instance."""

    status: TaskStatus = TaskStatus.NOT_STARTED
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_settled(self) -> bool:
        """``True`` for completed or rejected tasks."""
        return self.status in (TaskStatus.COMPLETED, TaskStatus.REJECTED)


class Alert(BaseModel):
    """Actionable deadline derived from task state; never persisted."""

    task_key: str
    phase_key: str
    severity: Severity
    message: str
    due_date: date
    days_remaining: int

    model_config = ConfigDict(frozen=True)


class PhaseProgress(BaseModel):
    phase_key: str
    completed: int
    total: int
    percent: int

    model_config = ConfigDict(frozen=True)


class CompletionSummary(BaseModel):
    """Aggregated completion view for an instance."""

    overall_percent: int
    per_phase: List[PhaseProgress] = Field(default_factory=list)
    current_phase: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class WorkflowEvent(BaseModel):
    """Envelope published after every committed instance transition."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    instance_id: str
    business_entity_id: str
    workflow_type: WorkflowType
    version: int
    task_key: Optional[str] = None
    outcome: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    alerts: List[Alert] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "WorkflowEvent":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)
