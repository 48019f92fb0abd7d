"""Job and timeline repositories."""
from __future__ import annotations

import secrets
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.db.base import utcnow
from field_crm.db.models.jobs import JobModel, JobTimelineEventModel
from field_crm.db.repositories.base import BaseRepository, as_uuid


class JobRepository(BaseRepository[JobModel]):
    """Repository for job database operations."""

    entity_name = "Job"

    def __init__(self, session: AsyncSession):
        super().__init__(JobModel, session)

    @staticmethod
    def generate_job_number(now: datetime | None = None) -> str:
        """Return a job number such as ``JOB-20261018-4F2A9C``."""
        now = now or utcnow()
        return f"JOB-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"

    async def list_jobs(
        self,
        *,
        status: str | None = None,
        technician_id: UUID | str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Sequence[JobModel]:
        """List jobs, newest first, optionally filtered."""
        stmt = select(self._model)
        if status:
            stmt = stmt.where(self._model.status == status)
        if technician_id:
            stmt = stmt.where(self._model.assigned_technician_id == as_uuid(technician_id))

        stmt = stmt.order_by(self._model.created_at.desc()).offset(skip).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(self._model.status, func.count()).group_by(self._model.status)
        result = await self._session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}


class TimelineRepository(BaseRepository[JobTimelineEventModel]):
    """Append-only access to job timeline events.

    Events are never updated or deleted.
    """

    entity_name = "Timeline event"

    def __init__(self, session: AsyncSession):
        super().__init__(JobTimelineEventModel, session)

    async def _next_sequence(self, job_id: UUID) -> int:
        stmt = select(func.max(self._model.sequence)).where(self._model.job_id == job_id)
        result = await self._session.execute(stmt)
        return (result.scalar() or 0) + 1

    async def append(
        self,
        job_id: UUID | str,
        event_type: str,
        description: str,
        *,
        created_by: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> JobTimelineEventModel:
        """Append one event after the job's latest event."""
        job_uuid = as_uuid(job_id)
        event = JobTimelineEventModel(
            job_id=job_uuid,
            sequence=await self._next_sequence(job_uuid),
            event_type=event_type,
            description=description,
            created_by=created_by,
            metadata_json=metadata,
            created_at=utcnow(),
        )
        self._session.add(event)
        await self._session.flush()
        return event

    async def list_for_job(self, job_id: UUID | str) -> Sequence[JobTimelineEventModel]:
        """Events for a job in the order they were written."""
        stmt = (
            select(self._model)
            .where(self._model.job_id == as_uuid(job_id))
            .order_by(self._model.sequence)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
