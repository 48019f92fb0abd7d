"""Contact attempt and in-app notification repositories."""
from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.db.models.communications import ContactAttemptModel, NotificationModel
from field_crm.db.repositories.base import BaseRepository, as_uuid


class ContactAttemptRepository(BaseRepository[ContactAttemptModel]):
    entity_name = "Contact attempt"

    def __init__(self, session: AsyncSession):
        super().__init__(ContactAttemptModel, session)

    async def list_for_job(self, job_id: UUID | str) -> Sequence[ContactAttemptModel]:
        stmt = (
            select(self._model)
            .where(self._model.job_id == as_uuid(job_id))
            .order_by(self._model.sent_at)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()


class NotificationRepository(BaseRepository[NotificationModel]):
    entity_name = "Notification"

    def __init__(self, session: AsyncSession):
        super().__init__(NotificationModel, session)

    async def list_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
    ) -> Sequence[NotificationModel]:
        stmt = select(self._model).where(self._model.user_id == user_id)
        if unread_only:
            stmt = stmt.where(self._model.is_read.is_(False))
        stmt = stmt.order_by(self._model.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()
