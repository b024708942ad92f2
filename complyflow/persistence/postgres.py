"""PostgreSQL implementation of the workflow instance store."""

from __future__ import annotations

from typing import Optional

import asyncpg

from ..contracts import WorkflowType, utcnow
from ..exceptions import ActiveInstanceExistsError, InstanceNotFoundError, VersionConflict
from .models import WorkflowInstance
from .repository import Mutator, WorkflowInstanceStore

_COLUMNS = (
    "instance_id, business_entity_id, workflow_type, status, version, "
    "created_at, updated_at, state::text AS state"
)


class PostgresWorkflowStore(WorkflowInstanceStore):
    """Persist workflow instances using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                instance_id TEXT PRIMARY KEY,
                business_entity_id TEXT NOT NULL,
                workflow_type TEXT NOT NULL,
                status TEXT NOT NULL,
                version INTEGER NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL,
                state JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS uq_workflow_instances_active
            ON workflow_instances (business_entity_id, workflow_type)
            WHERE status = 'active'
            """
        )

    # ------------------------------------------------------------------
    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        record = instance.to_record()
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_instances (
                    instance_id, business_entity_id, workflow_type, status, version,
                    created_at, updated_at, state
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb)
                """,
                record["instance_id"],
                record["business_entity_id"],
                record["workflow_type"],
                record["status"],
                record["version"],
                record["created_at"],
                record["updated_at"],
                record["state"],
            )
        except asyncpg.UniqueViolationError:
            row = await conn.fetchrow(
                """
                SELECT instance_id FROM workflow_instances
                WHERE business_entity_id = $1 AND workflow_type = $2 AND status = 'active'
                """,
                record["business_entity_id"],
                record["workflow_type"],
            )
            raise ActiveInstanceExistsError(
                instance.business_entity_id,
                instance.workflow_type.value,
                row["instance_id"] if row else None,
            ) from None
        finally:
            await conn.close()
        return instance.model_copy(deep=True)

    async def get(self, instance_id: str) -> WorkflowInstance:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM workflow_instances WHERE instance_id = $1",
                instance_id,
            )
        finally:
            await conn.close()
        if not row:
            raise InstanceNotFoundError(instance_id)
        return WorkflowInstance.from_record(row)

    async def find_active(
        self, business_entity_id: str, workflow_type: WorkflowType
    ) -> Optional[WorkflowInstance]:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM workflow_instances
                WHERE business_entity_id = $1 AND workflow_type = $2 AND status = 'active'
                """,
                business_entity_id,
                WorkflowType(workflow_type).value,
            )
        finally:
            await conn.close()
        return WorkflowInstance.from_record(row) if row else None

    async def list_instances(
        self, business_entity_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        conn = await self._connect()
        try:
            if business_entity_id is None:
                rows = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM workflow_instances ORDER BY created_at"
                )
            else:
                rows = await conn.fetch(
                    f"""
                    SELECT {_COLUMNS} FROM workflow_instances
                    WHERE business_entity_id = $1 ORDER BY created_at
                    """,
                    business_entity_id,
                )
        finally:
            await conn.close()
        return [WorkflowInstance.from_record(r) for r in rows]

    async def compare_and_swap(
        self, instance_id: str, expected_version: int, mutator: Mutator
    ) -> WorkflowInstance:
        current = await self.get(instance_id)
        if current.version != expected_version:
            raise VersionConflict(instance_id, expected_version, current.version)

        committed = mutator(current).model_copy(
            update={
                "instance_id": instance_id,
                "version": expected_version + 1,
                "updated_at": utcnow(),
            }
        )
        record = committed.to_record()
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                UPDATE workflow_instances
                SET status = $1, version = $2, updated_at = $3, state = $4::jsonb
                WHERE instance_id = $5 AND version = $6
                """,
                record["status"],
                record["version"],
                record["updated_at"],
                record["state"],
                instance_id,
                expected_version,
            )
            if result.split()[-1] == "0":
                actual = await conn.fetchval(
                    "SELECT version FROM workflow_instances WHERE instance_id = $1",
                    instance_id,
                )
                raise VersionConflict(instance_id, expected_version, actual)
        finally:
            await conn.close()
        return committed
