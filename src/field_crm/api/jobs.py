"""Job Management API.

Create jobs, drive them through the lifecycle, and read their timeline.
Each write endpoint is one unit of work; customer and technician
notifications go out in the background once it has committed.
"""
from decimal import Decimal
from typing import Any, Awaitable, Callable, Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.api.rate_limits import RateLimits, limiter
from field_crm.core.exceptions import ValidationError
from field_crm.core.log import get_logger
from field_crm.db.models.jobs import JobModel, JobPriority, JobStatus, TimelineEventType
from field_crm.db.repositories import JobRepository
from field_crm.dependencies import (
    DatabaseDep,
    GeoDep,
    NotificationDep,
    UnitOfWork,
    UnitOfWorkDep,
)
from field_crm.services.costs import CostUpdate
from field_crm.services.job_lifecycle import JobDraft, JobLifecycleService, locate_draft
from field_crm.services.notifications import NotificationService

log = get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


# ============================================================================
# Request/Response Models
# ============================================================================


class CreateJobRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1, max_length=500)
    service_type: str = Field(..., min_length=1, max_length=100)
    customer_phone: str | None = None
    customer_email: str | None = None
    city: str | None = None
    zip_code: str | None = None
    description: str | None = None
    priority: str = Field(JobPriority.NORMAL, description="low, normal, high or urgent")
    lead_id: str | None = None
    assigned_salesperson_id: UUID | None = None
    dispatcher_id: str | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class JobListResponse(BaseModel):
    jobs: list[dict[str, Any]]
    total: int
    page: int
    page_size: int


class VersionedRequest(BaseModel):
    """Base for transition bodies.

    ``expected_version`` rejects the call with 409 if the job changed
    since the client read it.
    """

    expected_version: int | None = Field(None, ge=1)


class AssignRequest(VersionedRequest):
    technician_id: UUID
    dispatcher_id: str | None = None


class ClaimRequest(BaseModel):
    technician_id: UUID


class AutoAssignRequest(BaseModel):
    dispatcher_id: str | None = None


class ActorRequest(VersionedRequest):
    actor: str | None = Field(None, description="User or technician performing the action")


class EnRouteRequest(ActorRequest):
    technician_id: UUID | None = None


class ArriveRequest(ActorRequest):
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class CostFields(BaseModel):
    labor_hours: Decimal | None = Field(None, ge=0)
    labor_rate: Decimal | None = Field(None, ge=0)
    labor_cost: Decimal | None = Field(None, ge=0)
    materials_cost: Decimal | None = Field(None, ge=0)
    travel_expense: Decimal | None = Field(None, ge=0)
    equipment_cost: Decimal | None = Field(None, ge=0)
    other_expenses: Decimal | None = Field(None, ge=0)
    total_revenue: Decimal | None = Field(None, ge=0)
    expense_notes: str | None = None

    def to_update(self) -> CostUpdate:
        return CostUpdate.from_mapping(self.model_dump(exclude_none=True))


class CompleteRequest(ActorRequest, CostFields):
    pass


class UpdateCostsRequest(VersionedRequest, CostFields):
    pass


class CancelRequest(VersionedRequest):
    cancelled_by: str = Field("system", min_length=1)
    reason: str = Field(..., min_length=1)


class TimelineEntryRequest(BaseModel):
    event_type: Literal["note", "quote_sent"] = TimelineEventType.NOTE
    description: str | None = None
    quote_reference: str | None = None
    created_by: str | None = None


# ============================================================================
# Helpers
# ============================================================================


async def _transition(
    uow: UnitOfWork,
    background_tasks: BackgroundTasks,
    notifications: NotificationService,
    apply: Callable[[JobLifecycleService], Awaitable[JobModel]],
) -> dict[str, Any]:
    """Run one lifecycle operation and queue its notifications after commit."""

    async def operation(session: AsyncSession) -> tuple[dict[str, Any], list]:
        service = JobLifecycleService(session)
        job = await apply(service)
        return job.to_dict(), list(service.outbox)

    job_data, outbox = await uow.run(operation)
    if outbox:
        background_tasks.add_task(notifications.deliver_all, outbox)
    return job_data


# ============================================================================
# Endpoints
# ============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.WRITE)
async def create_job(
    request: Request,
    body: CreateJobRequest,
    uow: UnitOfWorkDep,
    geo: GeoDep,
) -> dict[str, Any]:
    """Create a pending job, geocoding the address when no coordinates are given.

    A geocoding failure does not block creation; the job is stored
    without coordinates and arrival can then not be verified.
    """
    draft = await locate_draft(JobDraft(**body.model_dump()), geo)

    async def operation(session: AsyncSession) -> dict[str, Any]:
        job = await JobLifecycleService(session).create_job(draft, created_by=body.dispatcher_id)
        return job.to_dict()

    return await uow.run(operation)


@router.get("", response_model=JobListResponse)
@limiter.limit(RateLimits.READ)
async def list_jobs(
    request: Request,
    db: DatabaseDep,
    status_filter: str | None = Query(None, alias="status", description="Filter by status"),
    technician_id: UUID | None = Query(None, description="Filter by assigned technician"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
) -> JobListResponse:
    """List jobs, newest first."""
    if status_filter and status_filter not in JobStatus.ALL:
        raise ValidationError(
            "Unknown job status",
            details={"status": status_filter, "allowed": list(JobStatus.ALL)},
        )

    repo = JobRepository(db)
    jobs = await repo.list_jobs(
        status=status_filter,
        technician_id=technician_id,
        skip=(page - 1) * page_size,
        limit=page_size,
    )
    counts = await repo.count_by_status()
    total = counts.get(status_filter, 0) if status_filter else sum(counts.values())

    return JobListResponse(
        jobs=[job.to_dict() for job in jobs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{job_id}")
@limiter.limit(RateLimits.READ)
async def get_job(request: Request, job_id: UUID, db: DatabaseDep) -> dict[str, Any]:
    job = await JobRepository(db).get_or_raise(job_id)
    return job.to_dict()


@router.post("/{job_id}/assign")
@limiter.limit(RateLimits.WRITE)
async def assign_job(
    request: Request,
    job_id: UUID,
    body: AssignRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    """Assign (or re-assign) a technician. The technician is notified by email."""
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.assign(
            job_id, body.technician_id, body.dispatcher_id, body.expected_version
        ),
    )


@router.post("/{job_id}/claim")
@limiter.limit(RateLimits.WRITE)
async def claim_job(
    request: Request,
    job_id: UUID,
    body: ClaimRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    """Technician self-assigns a pending job they are approved for."""
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.claim(job_id, body.technician_id),
    )


@router.post("/{job_id}/auto-assign")
@limiter.limit(RateLimits.WRITE)
async def auto_assign_job(
    request: Request,
    job_id: UUID,
    body: AutoAssignRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.auto_assign(job_id, body.dispatcher_id),
    )


@router.post("/{job_id}/confirm")
@limiter.limit(RateLimits.WRITE)
async def confirm_job(
    request: Request,
    job_id: UUID,
    body: ActorRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.confirm(job_id, body.actor, body.expected_version),
    )


@router.post("/{job_id}/en-route")
@limiter.limit(RateLimits.WRITE)
async def en_route_job(
    request: Request,
    job_id: UUID,
    body: EnRouteRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    """Mark the technician en route. Fails with 409 if they are busy elsewhere."""
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.en_route(
            job_id, body.technician_id, body.actor, body.expected_version
        ),
    )


@router.post("/{job_id}/arrive")
@limiter.limit(RateLimits.WRITE)
async def arrive_job(
    request: Request,
    job_id: UUID,
    body: ArriveRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    """Record arrival, verifying the technician's GPS against the job site."""
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.arrive(
            job_id, body.latitude, body.longitude, body.actor, body.expected_version
        ),
    )


@router.post("/{job_id}/start")
@limiter.limit(RateLimits.WRITE)
async def start_job(
    request: Request,
    job_id: UUID,
    body: ActorRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.start(job_id, body.actor, body.expected_version),
    )


@router.post("/{job_id}/complete")
@limiter.limit(RateLimits.WRITE)
async def complete_job(
    request: Request,
    job_id: UUID,
    body: CompleteRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    """Complete the job, reconciling any supplied cost and revenue fields."""
    costs = body.to_update()
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.complete(job_id, costs, body.actor, body.expected_version),
    )


@router.post("/{job_id}/cancel")
@limiter.limit(RateLimits.WRITE)
async def cancel_job(
    request: Request,
    job_id: UUID,
    body: CancelRequest,
    uow: UnitOfWorkDep,
    background_tasks: BackgroundTasks,
    notifications: NotificationDep,
) -> dict[str, Any]:
    return await _transition(
        uow, background_tasks, notifications,
        lambda svc: svc.cancel(
            job_id, body.cancelled_by, body.reason, body.expected_version
        ),
    )


@router.patch("/{job_id}/costs")
@limiter.limit(RateLimits.WRITE)
async def update_job_costs(
    request: Request,
    job_id: UUID,
    body: UpdateCostsRequest,
    uow: UnitOfWorkDep,
) -> dict[str, Any]:
    """Update expenses or revenue without changing status."""
    costs = body.to_update()

    async def operation(session: AsyncSession) -> dict[str, Any]:
        job = await JobLifecycleService(session).update_costs(
            job_id, costs, body.expected_version
        )
        return job.to_dict()

    return await uow.run(operation)


@router.get("/{job_id}/timeline")
@limiter.limit(RateLimits.READ)
async def get_job_timeline(
    request: Request,
    job_id: UUID,
    db: DatabaseDep,
) -> dict[str, Any]:
    """Ordered timeline events for a job, oldest first."""
    events = await JobLifecycleService(db).get_timeline(job_id)
    return {
        "job_id": str(job_id),
        "events": [event.to_dict() for event in events],
    }


@router.post("/{job_id}/timeline", status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.WRITE)
async def add_timeline_entry(
    request: Request,
    job_id: UUID,
    body: TimelineEntryRequest,
    uow: UnitOfWorkDep,
) -> dict[str, Any]:
    """Add a note or record that a quote went out."""

    async def operation(session: AsyncSession) -> dict[str, Any]:
        service = JobLifecycleService(session)
        if body.event_type == TimelineEventType.QUOTE_SENT:
            event = await service.record_quote_sent(
                job_id, body.quote_reference or "", body.created_by
            )
        else:
            event = await service.add_note(job_id, body.description or "", body.created_by)
        return event.to_dict()

    return await uow.run(operation)
