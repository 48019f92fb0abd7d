"""Dispatch API: find and notify the closest available technician."""
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from field_crm.api.rate_limits import RateLimits, limiter
from field_crm.dependencies import DispatchDep

router = APIRouter(prefix="/dispatch", tags=["Dispatch"])


class DispatchRequest(BaseModel):
    address: str = Field(..., min_length=1, description="Job site address to geocode")
    job_id: UUID | None = None
    customer_name: str | None = None
    service_type: str | None = None


@router.post("/closest-technician")
@limiter.limit(RateLimits.DISPATCH)
async def dispatch_closest_technician(
    request: Request,
    body: DispatchRequest,
    dispatch: DispatchDep,
) -> dict[str, Any]:
    """Pick the nearest available technician with a known location.

    Always answers 200; ``success`` and ``error`` tell whether a
    technician was found. ``email_sent`` reports the notification.
    """
    result = await dispatch.dispatch_to_closest(
        body.address,
        job_id=body.job_id,
        customer_name=body.customer_name,
        service_type=body.service_type,
    )
    return result.to_dict()
