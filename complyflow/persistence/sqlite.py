"""SQLite implementation of the workflow instance store."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from ..contracts import WorkflowType, utcnow
from ..exceptions import ActiveInstanceExistsError, InstanceNotFoundError, VersionConflict
from .models import WorkflowInstance
from .repository import Mutator, WorkflowInstanceStore

_COLUMNS = (
    "instance_id, business_entity_id, workflow_type, status, version, "
    "created_at, updated_at, state"
)


class SQLiteWorkflowStore(WorkflowInstanceStore):
    """Persist workflow instances using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn_lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                instance_id TEXT PRIMARY KEY,
                business_entity_id TEXT NOT NULL,
                workflow_type TEXT NOT NULL,
                status TEXT NOT NULL,
                version INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                state TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS uq_workflow_instances_active
            ON workflow_instances (business_entity_id, workflow_type)
            WHERE status = 'active'
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._conn_lock:
            cur = self._conn.cursor()
            try:
                cur.execute(query, params)
            except sqlite3.Error:
                self._conn.rollback()
                raise
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._conn_lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._conn_lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _params(instance: WorkflowInstance) -> dict[str, Any]:
        record = instance.to_record()
        record["created_at"] = record["created_at"].isoformat()
        record["updated_at"] = record["updated_at"].isoformat()
        return record

    # ------------------------------------------------------------------
    # Store API
    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        record = self._params(instance)
        try:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO workflow_instances ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                record["instance_id"],
                record["business_entity_id"],
                record["workflow_type"],
                record["status"],
                record["version"],
                record["created_at"],
                record["updated_at"],
                record["state"],
            )
        except sqlite3.IntegrityError:
            existing = await self.find_active(instance.business_entity_id, instance.workflow_type)
            raise ActiveInstanceExistsError(
                instance.business_entity_id,
                instance.workflow_type.value,
                existing.instance_id if existing else None,
            ) from None
        return instance.model_copy(deep=True)

    async def get(self, instance_id: str) -> WorkflowInstance:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM workflow_instances WHERE instance_id = ?",
            instance_id,
        )
        if not row:
            raise InstanceNotFoundError(instance_id)
        return WorkflowInstance.from_record(row)

    async def find_active(
        self, business_entity_id: str, workflow_type: WorkflowType
    ) -> Optional[WorkflowInstance]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"""
            SELECT {_COLUMNS} FROM workflow_instances
            WHERE business_entity_id = ? AND workflow_type = ? AND status = 'active'
            """,
            business_entity_id,
            WorkflowType(workflow_type).value,
        )
        return WorkflowInstance.from_record(row) if row else None

    async def list_instances(
        self, business_entity_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        if business_entity_id is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_COLUMNS} FROM workflow_instances ORDER BY created_at",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_COLUMNS} FROM workflow_instances WHERE business_entity_id = ? ORDER BY created_at",
                business_entity_id,
            )
        return [WorkflowInstance.from_record(row) for row in rows]

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
        record = self._params(committed)
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_instances
            SET status = ?, version = ?, updated_at = ?, state = ?
            WHERE instance_id = ? AND version = ?
            """,
            record["status"],
            record["version"],
            record["updated_at"],
            record["state"],
            instance_id,
            expected_version,
        )
        if updated == 0:
            latest = await self.get(instance_id)
            raise VersionConflict(instance_id, expected_version, latest.version)
        return committed
