"""Technician API: availability and GPS tracking."""
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.api.rate_limits import RateLimits, limiter
from field_crm.core.exceptions import RecordNotFoundError
from field_crm.core.log import get_logger
from field_crm.db.repositories import TechnicianLocationRepository, TechnicianRepository
from field_crm.dependencies import DatabaseDep, UnitOfWorkDep

log = get_logger(__name__)

router = APIRouter(prefix="/technicians", tags=["Technicians"])


class LocationReport(BaseModel):
    """One GPS sample from a technician's device."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(None, ge=0, description="Meters")
    speed: float | None = Field(None, ge=0, description="Meters per second")
    heading: float | None = Field(None, ge=0, lt=360)
    altitude: float | None = None
    battery_level: int | None = Field(None, ge=0, le=100)
    is_moving: bool = False
    job_id: UUID | None = None


@router.get("/available")
@limiter.limit(RateLimits.READ)
async def list_available_technicians(request: Request, db: DatabaseDep) -> dict[str, Any]:
    technicians = await TechnicianRepository(db).list_available()
    return {
        "technicians": [tech.to_dict() for tech in technicians],
        "total": len(technicians),
    }


@router.post("/{technician_id}/location", status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.LOCATION)
async def report_location(
    request: Request,
    technician_id: UUID,
    body: LocationReport,
    uow: UnitOfWorkDep,
) -> dict[str, Any]:
    """Store a GPS sample and update the technician's last known position."""

    async def operation(session: AsyncSession) -> dict[str, Any]:
        technician = await TechnicianRepository(session).get_or_raise(technician_id)
        location = await TechnicianLocationRepository(session).record(
            technician,
            body.latitude,
            body.longitude,
            **body.model_dump(exclude={"latitude", "longitude"}),
        )
        return location.to_dict()

    return await uow.run(operation)


@router.get("/{technician_id}/location/latest")
@limiter.limit(RateLimits.READ)
async def get_latest_location(
    request: Request,
    technician_id: UUID,
    db: DatabaseDep,
) -> dict[str, Any]:
    await TechnicianRepository(db).get_or_raise(technician_id)
    location = await TechnicianLocationRepository(db).get_latest(technician_id)
    if location is None:
        raise RecordNotFoundError(
            "Technician has not reported a location",
            details={"technician_id": str(technician_id)},
        )
    return location.to_dict()


@router.get("/{technician_id}/locations")
@limiter.limit(RateLimits.READ)
async def list_locations(
    request: Request,
    technician_id: UUID,
    db: DatabaseDep,
    limit: int = Query(50, ge=1, le=500),
) -> dict[str, Any]:
    """Recent GPS samples, newest first."""
    await TechnicianRepository(db).get_or_raise(technician_id)
    locations = await TechnicianLocationRepository(db).list_for_technician(
        technician_id, limit=limit
    )
    return {
        "technician_id": str(technician_id),
        "locations": [location.to_dict() for location in locations],
    }


@router.post("/reset-daily-counters")
@limiter.limit(RateLimits.WRITE)
async def reset_daily_counters(request: Request, uow: UnitOfWorkDep) -> dict[str, int]:
    """Zero every technician's completed-jobs counter. Run once per day."""

    async def operation(session: AsyncSession) -> int:
        return await TechnicianRepository(session).reset_daily_counters()

    reset = await uow.run(operation)
    log.info("Daily technician counters reset", technicians=reset)
    return {"reset": reset}
