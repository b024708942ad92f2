"""Persistence layer for workflow instances."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ComplyFlowConfig, load_config
from .inmemory import InMemoryWorkflowStore
from .models import WorkflowInstance
from .repository import Mutator, WorkflowInstanceStore
from .sqlite import SQLiteWorkflowStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowStore = None  # type: ignore

_repository_instance: WorkflowInstanceStore | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[ComplyFlowConfig] = None
) -> WorkflowInstanceStore:
    """Factory function to obtain a workflow instance store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``COMPLYFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("COMPLYFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryWorkflowStore()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteWorkflowStore(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresWorkflowStore is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresWorkflowStore(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "Mutator",
    "WorkflowInstance",
    "WorkflowInstanceStore",
    "SQLiteWorkflowStore",
    "PostgresWorkflowStore",
    "InMemoryWorkflowStore",
    "get_repository",
]
