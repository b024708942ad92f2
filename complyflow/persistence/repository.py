"""Store abstraction for workflow instance persistence."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from ..contracts import WorkflowType
from .models import WorkflowInstance

Mutator = Callable[[WorkflowInstance], WorkflowInstance]


class WorkflowInstanceStore(Protocol):
    """Protocol for workflow instance persistence backends.

    All mutation goes through :meth:`compare_and_swap`; backends never hold a
    lock while the mutator runs.
    """

    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Persist a new instance.

        Raises ``ActiveInstanceExistsError`` when an active instance already
        exists for the same business entity and workflow type.
        """

    async def get(self, instance_id: str) -> WorkflowInstance:
        """Return the stored instance or raise ``InstanceNotFoundError``."""

    async def find_active(
        self, business_entity_id: str, workflow_type: WorkflowType
    ) -> Optional[WorkflowInstance]:
        """Return the active instance for the pair, if any."""

    async def list_instances(
        self, business_entity_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        """Return stored instances, optionally for one business entity."""

    async def compare_and_swap(
        self, instance_id: str, expected_version: int, mutator: Mutator
    ) -> WorkflowInstance:
        """Apply ``mutator`` and commit it if the version is still ``expected_version``.

        Raises ``VersionConflict`` when another writer committed first. The
        committed instance carries ``expected_version + 1``.
        """
