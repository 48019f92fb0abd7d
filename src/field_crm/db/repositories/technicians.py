"""Technician directory and GPS location repositories."""
from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.db.base import utcnow
from field_crm.db.models.technicians import (
    TechnicianLocationModel,
    TechnicianModel,
    TechnicianStatus,
)
from field_crm.db.repositories.base import BaseRepository, as_uuid


class TechnicianRepository(BaseRepository[TechnicianModel]):
    """Repository for technician records.

    Availability is always read from the database; there is no
    in-process directory to drift out of date.
    """

    entity_name = "Technician"

    def __init__(self, session: AsyncSession):
        super().__init__(TechnicianModel, session)

    async def list_available(self) -> Sequence[TechnicianModel]:
        """Technicians with status ``available``, oldest record first."""
        stmt = (
            select(self._model)
            .where(self._model.status == TechnicianStatus.AVAILABLE)
            .order_by(self._model.created_at, self._model.id)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def claim_for_job(self, technician_id: UUID | str, job_id: UUID | str) -> bool:
        """Mark a technician busy on ``job_id`` if they are free.

        Runs as one conditional UPDATE, so two concurrent claims for the
        same technician cannot both succeed. Re-claiming for the job the
        technician already holds succeeds.

        Returns:
            True if the technician now holds the job
        """
        tech_id = as_uuid(technician_id)
        job_uuid = as_uuid(job_id)
        stmt = (
            update(self._model)
            .where(self._model.id == tech_id)
            .where(
                or_(
                    self._model.status == TechnicianStatus.AVAILABLE,
                    self._model.current_job_id == job_uuid,
                )
            )
            .values(
                status=TechnicianStatus.BUSY,
                current_job_id=job_uuid,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        claimed = result.rowcount > 0

        # Bring any cached instance in line with the row
        await self._session.get(self._model, tech_id, populate_existing=True)
        return claimed

    async def release(
        self,
        technician: TechnicianModel,
        job_id: UUID | str,
        *,
        completed: bool = False,
    ) -> bool:
        """Free a technician from ``job_id``.

        The technician is only made available when they are holding this
        job (or, on completion, no job); a technician already moved to other work keeps
        that assignment.

        Returns:
            True if the technician was released
        """
        released = False
        holds_job = technician.current_job_id == as_uuid(job_id)
        if holds_job or (completed and technician.current_job_id is None):
            technician.status = TechnicianStatus.AVAILABLE
            technician.current_job_id = None
            released = True
        if completed:
            technician.completed_jobs_today += 1
        await self._session.flush()
        return released

    async def reset_daily_counters(self) -> int:
        """Zero ``completed_jobs_today`` for everyone (run at day start)."""
        stmt = (
            update(self._model)
            .where(self._model.completed_jobs_today != 0)
            .values(completed_jobs_today=0)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount


class TechnicianLocationRepository(BaseRepository[TechnicianLocationModel]):
    """Append-only GPS samples per technician."""

    entity_name = "Technician location"

    def __init__(self, session: AsyncSession):
        super().__init__(TechnicianLocationModel, session)

    async def record(
        self,
        technician: TechnicianModel,
        latitude: float,
        longitude: float,
        **fields: Any,
    ) -> TechnicianLocationModel:
        """Store a GPS sample and refresh the technician's cached position."""
        now = utcnow()
        location = TechnicianLocationModel(
            technician_id=technician.id,
            latitude=latitude,
            longitude=longitude,
            created_at=now,
            **fields,
        )
        self._session.add(location)

        technician.last_location_lat = latitude
        technician.last_location_lng = longitude
        technician.last_location_update = now

        await self._session.flush()
        return location

    async def get_latest(self, technician_id: UUID | str) -> TechnicianLocationModel | None:
        """Most recent sample for a technician, or None if never reported."""
        stmt = (
            select(self._model)
            .where(self._model.technician_id == as_uuid(technician_id))
            .order_by(self._model.created_at.desc(), self._model.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_technician(
        self,
        technician_id: UUID | str,
        *,
        limit: int = 50,
    ) -> Sequence[TechnicianLocationModel]:
        """Recent samples, newest first."""
        stmt = (
            select(self._model)
            .where(self._model.technician_id == as_uuid(technician_id))
            .order_by(self._model.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
