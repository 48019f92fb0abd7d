"""Base Repository Pattern for Field CRM.

Provides generic async data access shared by all repositories.
Repositories never commit; the unit of work that owns the session does.
"""
from __future__ import annotations

from typing import Generic, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.core.exceptions import RecordNotFoundError
from field_crm.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


def as_uuid(value: UUID | str) -> UUID:
    """Accept either form of an identifier."""
    return value if isinstance(value, UUID) else UUID(str(value))


class BaseRepository(Generic[ModelT]):
    """Generic base repository with async CRUD operations.

    Usage:
        class TechnicianRepository(BaseRepository[TechnicianModel]):
            def __init__(self, session: AsyncSession):
                super().__init__(TechnicianModel, session)
    """

    # Used in not-found messages, e.g. "Job not found"
    entity_name: str = "Record"

    def __init__(self, model: type[ModelT], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    # ========================================================================
    # Basic CRUD Operations
    # ========================================================================

    async def get(self, id: UUID | str) -> ModelT | None:
        """Get a single record by ID."""
        stmt = select(self._model).where(self._model.id == as_uuid(id))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_raise(self, id: UUID | str) -> ModelT:
        """Get a single record by ID.

        Raises:
            RecordNotFoundError: If no record has this ID
        """
        obj = await self.get(id)
        if obj is None:
            raise RecordNotFoundError(
                f"{self.entity_name} not found",
                details={"id": str(id)},
            )
        return obj

    async def get_multi(
        self,
        *,
        skip: int = 0,
        limit: int = 100,
        descending: bool = True,
    ) -> Sequence[ModelT]:
        """Get multiple records with pagination, newest first by default."""
        stmt = select(self._model)
        if hasattr(self._model, "created_at"):
            stmt = stmt.order_by(
                self._model.created_at.desc() if descending else self._model.created_at
            )
        stmt = stmt.offset(skip).limit(limit)

        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def create(self, obj_in: ModelT) -> ModelT:
        """Insert a record and return it with generated fields populated."""
        self._session.add(obj_in)
        await self._session.flush()
        await self._session.refresh(obj_in)
        return obj_in

    # ========================================================================
    # Query Helpers
    # ========================================================================

    async def count(self) -> int:
        stmt = select(func.count()).select_from(self._model)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
