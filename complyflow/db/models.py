from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TimelineEntry(SQLModel, table=True):
    """One committed transition of a workflow instance.

    Rows are only ever inserted, so the history of an instance survives
    cancellation and requirement re-discovery.
    """

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: str = Field(index=True, unique=True)
    instance_id: str = Field(index=True)
    business_entity_id: str = Field(index=True)
    workflow_type: str
    event_type: str
    version: int
    task_key: Optional[str] = None
    outcome: Optional[str] = None
    recorded_at: datetime = Field(default_factory=_now)
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
