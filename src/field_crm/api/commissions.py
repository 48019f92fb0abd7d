"""Sales commission API."""
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.api.rate_limits import RateLimits, limiter
from field_crm.config import get_settings
from field_crm.core.exceptions import ValidationError
from field_crm.db.models.sales import CommissionStatus
from field_crm.db.repositories import JobRepository
from field_crm.dependencies import DatabaseDep, UnitOfWorkDep
from field_crm.services.commissions import CommissionService

router = APIRouter(prefix="/commissions", tags=["Commissions"])


class CalculateCommissionRequest(BaseModel):
    """Defaults to the salesperson attached to the job."""

    salesperson_id: UUID | None = None


class CommissionNoteRequest(BaseModel):
    notes: str | None = None


def _service(session: AsyncSession) -> CommissionService:
    return CommissionService(session, get_settings().dispatch.default_commission_rate)


@router.post("/calculate/{job_id}")
@limiter.limit(RateLimits.WRITE)
async def calculate_commission(
    request: Request,
    job_id: UUID,
    uow: UnitOfWorkDep,
    body: CalculateCommissionRequest | None = None,
) -> dict[str, Any]:
    """Calculate (or fetch) the commission for a completed job.

    ``commission`` is null when none is due: the job is not completed,
    has no revenue, or made no profit.
    """

    async def operation(session: AsyncSession) -> dict[str, Any]:
        salesperson_id = body.salesperson_id if body else None
        if salesperson_id is None:
            job = await JobRepository(session).get_or_raise(job_id)
            salesperson_id = job.assigned_salesperson_id
        if salesperson_id is None:
            raise ValidationError(
                "Job has no salesperson; pass salesperson_id",
                details={"job_id": str(job_id)},
            )

        commission = await _service(session).calculate_commission(job_id, salesperson_id)
        return {
            "job_id": str(job_id),
            "salesperson_id": str(salesperson_id),
            "commission": commission.to_dict() if commission else None,
        }

    return await uow.run(operation)


@router.get("")
@limiter.limit(RateLimits.READ)
async def list_commissions(
    request: Request,
    db: DatabaseDep,
    job_id: UUID | None = Query(None),
    salesperson_id: UUID | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
) -> dict[str, Any]:
    """Commissions for a job or for a salesperson (one filter is required)."""
    if (job_id is None) == (salesperson_id is None):
        raise ValidationError("Pass exactly one of job_id or salesperson_id")
    if status_filter and status_filter not in CommissionStatus.ALL:
        raise ValidationError(
            "Unknown commission status",
            details={"status": status_filter, "allowed": list(CommissionStatus.ALL)},
        )

    service = _service(db)
    if job_id is not None:
        commissions = await service.list_by_job(job_id)
    else:
        commissions = await service.list_by_salesperson(salesperson_id, status=status_filter)

    return {"commissions": [c.to_dict() for c in commissions]}


@router.post("/{commission_id}/approve")
@limiter.limit(RateLimits.WRITE)
async def approve_commission(
    request: Request,
    commission_id: UUID,
    uow: UnitOfWorkDep,
    body: CommissionNoteRequest | None = None,
) -> dict[str, Any]:
    async def operation(session: AsyncSession) -> dict[str, Any]:
        commission = await _service(session).approve(commission_id, body.notes if body else None)
        return commission.to_dict()

    return await uow.run(operation)


@router.post("/{commission_id}/pay")
@limiter.limit(RateLimits.WRITE)
async def pay_commission(
    request: Request,
    commission_id: UUID,
    uow: UnitOfWorkDep,
    body: CommissionNoteRequest | None = None,
) -> dict[str, Any]:
    async def operation(session: AsyncSession) -> dict[str, Any]:
        commission = await _service(session).mark_paid(commission_id, body.notes if body else None)
        return commission.to_dict()

    return await uow.run(operation)
