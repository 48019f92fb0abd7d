"""Health check endpoints."""
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from field_crm.config import APP_VERSION, get_settings
from field_crm.core.log import get_logger
from field_crm.dependencies import get_db_session_factory

log = get_logger(__name__)

router = APIRouter()

SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)]


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    checks: dict[str, Any]


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("/health")
async def health_check(session_factory: SessionFactoryDep) -> HealthResponse:
    """Report API and component status.

    Components checked:
    - Database: connectivity via SELECT 1
    - Geocoding, email and SMS: configured provider
    """
    settings = get_settings()

    checks: dict[str, Any] = {
        "api": "ok",
        "database": await _check_database(session_factory),
        "geocoding": settings.geocoding.provider,
        "email": settings.integrations.email.provider if settings.integrations.email.enabled else "disabled",
        "sms": settings.integrations.sms.provider if settings.integrations.sms.enabled else "disabled",
    }

    return HealthResponse(
        status="healthy" if checks["database"] == "ok" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=APP_VERSION,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/ready")
async def readiness_check(session_factory: SessionFactoryDep) -> ReadinessResponse:
    """Ready means the database answers. Providers are optional."""
    database = await _check_database(session_factory)
    checks = {"database": database if isinstance(database, str) else "error"}
    return ReadinessResponse(
        status="ready" if checks["database"] == "ok" else "not_ready",
        checks=checks,
    )


async def _check_database(
    session_factory: async_sessionmaker[AsyncSession],
) -> str | dict[str, Any]:
    try:
        async with session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.fetchone()
        return "ok"
    except (SQLAlchemyError, OSError) as e:
        log.warning("Database health check failed", error=str(e))
        return {"status": "error", "message": str(e)}
