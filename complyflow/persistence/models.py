"""Data models for persisted workflow instances."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..contracts import InstanceStatus, TaskState, TaskStatus, WorkflowType, utcnow
from ..discovery.entities import Requirement


class WorkflowInstance(BaseModel):
    """One run of a workflow type for one business entity.

    ``version`` starts at 1 and is bumped by the store on every committed
    write; it is the compare-and-swap token.
    """

    instance_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    business_entity_id: str
    workflow_type: WorkflowType
    status: InstanceStatus = InstanceStatus.ACTIVE
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status_reason: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)
    task_states: dict[str, TaskState] = Field(default_factory=dict)
    requirements: list[Requirement] = Field(default_factory=list)
    requirement_generation: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def task_status(self, task_key: str) -> TaskStatus:
        state = self.task_states.get(task_key)
        return state.status if state else TaskStatus.NOT_STARTED

    def active_requirements(self) -> list[Requirement]:
        return [req for req in self.requirements if req.status == "active"]

    def to_record(self) -> dict[str, Any]:
        """Flatten into the column layout used by the SQL stores."""
        return {
            "instance_id": self.instance_id,
            "business_entity_id": self.business_entity_id,
            "workflow_type": self.workflow_type.value,
            "status": self.status.value,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "state": self.model_dump_json(
                include={
                    "status_reason",
                    "context",
                    "task_states",
                    "requirements",
                    "requirement_generation",
                }
            ),
        }

    @classmethod
    def from_record(cls, record: Any) -> "WorkflowInstance":
        """Rebuild an instance from a row produced by :meth:`to_record`."""
        return cls.model_validate(
            {
                "instance_id": record["instance_id"],
                "business_entity_id": record["business_entity_id"],
                "workflow_type": record["workflow_type"],
                "status": record["status"],
                "version": record["version"],
                "created_at": record["created_at"],
                "updated_at": record["updated_at"],
                **json.loads(record["state"]),
            }
        )
