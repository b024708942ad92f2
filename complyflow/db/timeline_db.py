from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from ..contracts import WorkflowEvent
from .models import TimelineEntry


class TimelineDB:
    """Async helper for the append-only transition timeline."""

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine) as session:
            yield session

    async def record(self, event: WorkflowEvent) -> TimelineEntry:
        entry = TimelineEntry(
            event_id=event.event_id,
            instance_id=event.instance_id,
            business_entity_id=event.business_entity_id,
            workflow_type=event.workflow_type.value,
            event_type=event.event_type,
            version=event.version,
            task_key=event.task_key,
            outcome=event.outcome,
            recorded_at=event.timestamp,
            payload=event.model_dump(mode="json", include={"payload", "alerts"}),
        )
        async with self.session() as session:
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
        return entry

    async def list_entries(
        self, instance_id: Optional[str] = None, business_entity_id: Optional[str] = None
    ) -> list[TimelineEntry]:
        statement = select(TimelineEntry)
        if instance_id is not None:
            statement = statement.where(TimelineEntry.instance_id == instance_id)
        if business_entity_id is not None:
            statement = statement.where(TimelineEntry.business_entity_id == business_entity_id)
        statement = statement.order_by(TimelineEntry.recorded_at, TimelineEntry.version)
        async with self.session() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())
