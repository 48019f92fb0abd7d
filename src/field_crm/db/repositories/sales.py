"""Salesperson and commission repositories."""
from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.db.models.sales import SalesCommissionModel, SalespersonModel
from field_crm.db.repositories.base import BaseRepository, as_uuid


class SalespersonRepository(BaseRepository[SalespersonModel]):
    entity_name = "Salesperson"

    def __init__(self, session: AsyncSession):
        super().__init__(SalespersonModel, session)


class CommissionRepository(BaseRepository[SalesCommissionModel]):
    """Repository for commission records, unique per (job, salesperson)."""

    entity_name = "Commission"

    def __init__(self, session: AsyncSession):
        super().__init__(SalesCommissionModel, session)

    async def get_for_job_and_salesperson(
        self,
        job_id: UUID | str,
        salesperson_id: UUID | str,
    ) -> SalesCommissionModel | None:
        stmt = select(self._model).where(
            self._model.job_id == as_uuid(job_id),
            self._model.salesperson_id == as_uuid(salesperson_id),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_job(self, job_id: UUID | str) -> Sequence[SalesCommissionModel]:
        stmt = (
            select(self._model)
            .where(self._model.job_id == as_uuid(job_id))
            .order_by(self._model.calculated_at)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_by_salesperson(
        self,
        salesperson_id: UUID | str,
        *,
        status: str | None = None,
    ) -> Sequence[SalesCommissionModel]:
        stmt = select(self._model).where(
            self._model.salesperson_id == as_uuid(salesperson_id)
        )
        if status:
            stmt = stmt.where(self._model.status == status)
        stmt = stmt.order_by(self._model.calculated_at.desc())
        result = await self._session.execute(stmt)
        return result.scalars().all()
