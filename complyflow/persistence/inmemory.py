"""In-memory implementation of the workflow instance store."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from ..contracts import InstanceStatus, WorkflowType, utcnow
from ..exceptions import ActiveInstanceExistsError, InstanceNotFoundError, VersionConflict
from .models import WorkflowInstance
from .repository import Mutator, WorkflowInstanceStore


class InMemoryWorkflowStore(WorkflowInstanceStore):
    """Store workflow instances in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Callers always receive copies, so a
    caller mutating a returned instance never changes stored state.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, WorkflowInstance] = {}
        self._lock = asyncio.Lock()

    def _active_for(
        self, business_entity_id: str, workflow_type: WorkflowType
    ) -> Optional[WorkflowInstance]:
        for instance in self._instances.values():
            if (
                instance.business_entity_id == business_entity_id
                and instance.workflow_type == workflow_type
                and instance.status == InstanceStatus.ACTIVE
            ):
                return instance
        return None

    # ------------------------------------------------------------------
    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        async with self._lock:
            existing = self._active_for(instance.business_entity_id, instance.workflow_type)
            if existing is not None:
                raise ActiveInstanceExistsError(
                    instance.business_entity_id,
                    instance.workflow_type.value,
                    existing.instance_id,
                )
            self._instances[instance.instance_id] = instance.model_copy(deep=True)
        return instance.model_copy(deep=True)

    async def get(self, instance_id: str) -> WorkflowInstance:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance.model_copy(deep=True)

    async def find_active(
        self, business_entity_id: str, workflow_type: WorkflowType
    ) -> Optional[WorkflowInstance]:
        instance = self._active_for(business_entity_id, WorkflowType(workflow_type))
        return instance.model_copy(deep=True) if instance else None

    async def list_instances(
        self, business_entity_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        return [
            instance.model_copy(deep=True)
            for instance in self._instances.values()
            if business_entity_id is None or instance.business_entity_id == business_entity_id
        ]

    async def compare_and_swap(
        self, instance_id: str, expected_version: int, mutator: Mutator
    ) -> WorkflowInstance:
        current = await self.get(instance_id)
        if current.version != expected_version:
            raise VersionConflict(instance_id, expected_version, current.version)

        updated = mutator(current)

        async with self._lock:
            stored = self._instances[instance_id]
            if stored.version != expected_version:
                raise VersionConflict(instance_id, expected_version, stored.version)
            committed = updated.model_copy(
                update={
                    "instance_id": instance_id,
                    "version": expected_version + 1,
                    "updated_at": utcnow(),
                },
                deep=True,
            )
            self._instances[instance_id] = committed
        return committed.model_copy(deep=True)
