"""Dependency Injection for Field CRM.

Provides FastAPI dependency functions for services and components.
Tests override these through ``app.dependency_overrides``.

Usage:
    from field_crm.dependencies import UnitOfWorkDep

    @router.post("/endpoint")
    async def handler(uow: UnitOfWorkDep):
        ...
"""

from __future__ import annotations

from typing import Annotated, AsyncGenerator, Awaitable, Callable, TypeVar

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from field_crm.config import Settings, get_settings
from field_crm.core.retry import RetryConfig
from field_crm.db.session import (
    database_retry_config,
    get_session_factory,
    run_transaction,
)
from field_crm.services.dispatch import DispatchService
from field_crm.services.geo_service import GeoService, get_geo_service
from field_crm.services.notifications import NotificationService

T = TypeVar("T")


# =============================================================================
# Settings Dependency
# =============================================================================


def get_app_settings() -> Settings:
    """Get application settings.

    Returns cached settings instance.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# =============================================================================
# Database Dependencies
# =============================================================================


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_retry_config() -> RetryConfig:
    return database_retry_config()


class UnitOfWork:
    """Runs request work as retried, committed transactions.

    Each ``run`` call is one unit of work on a fresh session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_config: RetryConfig,
    ):
        self.session_factory = session_factory
        self.retry_config = retry_config

    async def run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        return await run_transaction(
            operation,
            session_factory=self.session_factory,
            config=self.retry_config,
        )


def get_unit_of_work(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)],
    retry_config: Annotated[RetryConfig, Depends(get_retry_config)],
) -> UnitOfWork:
    return UnitOfWork(session_factory, retry_config)


UnitOfWorkDep = Annotated[UnitOfWork, Depends(get_unit_of_work)]


async def get_db(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for read-only endpoints."""
    async with session_factory() as session:
        yield session


DatabaseDep = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Service Dependencies
# =============================================================================


def get_geo() -> GeoService:
    return get_geo_service()


GeoDep = Annotated[GeoService, Depends(get_geo)]


def get_notification_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)],
    retry_config: Annotated[RetryConfig, Depends(get_retry_config)],
) -> NotificationService:
    """Notification service writing contact attempts through the request's database."""
    return NotificationService(session_factory=session_factory, retry_config=retry_config)


NotificationDep = Annotated[NotificationService, Depends(get_notification_service)]


def get_dispatch_service(
    geo: GeoDep,
    notifications: NotificationDep,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)],
    retry_config: Annotated[RetryConfig, Depends(get_retry_config)],
) -> DispatchService:
    return DispatchService(
        geo_service=geo,
        notification_service=notifications,
        session_factory=session_factory,
        retry_config=retry_config,
    )


DispatchDep = Annotated[DispatchService, Depends(get_dispatch_service)]
