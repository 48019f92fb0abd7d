"""Job lifecycle state machine.

Drives a job through

    pending -> assigned -> confirmed -> en_route -> on_site -> in_progress -> completed

with ``cancelled`` reachable from any non-terminal state. Every
transition runs inside the caller's unit of work: the job row is
written first, then exactly one timeline event. Notifications that
must go out afterwards are collected in ``outbox`` and sent by the
caller once the unit of work has committed.

Usage:
    async def op(session):
        service = JobLifecycleService(session)
        job = await service.confirm(job_id, actor="tech-7")
        return job, service.outbox

    job, outbox = await run_transaction(op)
    await NotificationService().deliver_all(outbox)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.config import DispatchSettings, get_settings
from field_crm.core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    TechnicianUnavailableError,
    ValidationError,
)
from field_crm.core.log import get_logger
from field_crm.db.base import utcnow
from field_crm.db.models.communications import NotificationModel
from field_crm.db.models.jobs import (
    JobModel,
    JobPriority,
    JobStatus,
    JobTimelineEventModel,
    TimelineEventType,
)
from field_crm.db.models.technicians import TechnicianModel
from field_crm.db.repositories.communications import NotificationRepository
from field_crm.db.repositories.jobs import JobRepository
from field_crm.db.repositories.sales import SalespersonRepository
from field_crm.db.repositories.technicians import TechnicianRepository
from field_crm.services.commissions import CommissionService
from field_crm.services.costs import CostUpdate, reconcile
from field_crm.services.geo_service import GeoService, within_radius
from field_crm.services.notifications import Notice, NoticeKind
from field_crm.services.timeline import (
    ArrivedPayload,
    AssignedPayload,
    CancelledPayload,
    CompletedPayload,
    CreatedPayload,
    NotePayload,
    QuoteSentPayload,
    TechnicianPayload,
    TimelineRecorder,
)

log = get_logger(__name__)


_ACTIVE = frozenset(JobStatus.ALL) - JobStatus.TERMINAL

# Source states each target accepts when transitions are strict
ALLOWED_PREDECESSORS: dict[str, frozenset[str]] = {
    JobStatus.ASSIGNED: frozenset({JobStatus.PENDING, JobStatus.ASSIGNED}),
    JobStatus.CONFIRMED: frozenset({JobStatus.ASSIGNED}),
    JobStatus.EN_ROUTE: frozenset({JobStatus.CONFIRMED}),
    JobStatus.ON_SITE: frozenset({JobStatus.EN_ROUTE}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.ON_SITE}),
    JobStatus.COMPLETED: frozenset({JobStatus.IN_PROGRESS}),
    JobStatus.CANCELLED: _ACTIVE,
}


@dataclass
class JobDraft:
    """Fields supplied when a job is created."""

    customer_name: str
    address: str
    service_type: str
    customer_phone: str | None = None
    customer_email: str | None = None
    city: str | None = None
    zip_code: str | None = None
    description: str | None = None
    priority: str = JobPriority.NORMAL
    lead_id: str | None = None
    assigned_salesperson_id: UUID | None = None
    dispatcher_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def full_address(self) -> str:
        return ", ".join(part for part in (self.address, self.city, self.zip_code) if part)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


async def locate_draft(draft: JobDraft, geo: GeoService) -> JobDraft:
    """Fill in coordinates by geocoding, unless the caller supplied them.

    Call this before opening the unit of work; a geocoding miss just
    leaves the coordinates empty.
    """
    if draft.has_coordinates:
        return draft
    location = await geo.geocode(draft.full_address)
    if location is None:
        return draft
    return replace(draft, latitude=location.latitude, longitude=location.longitude)


class JobLifecycleService:
    """Applies lifecycle transitions to jobs within one session."""

    def __init__(
        self,
        session: AsyncSession,
        settings: DispatchSettings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings().dispatch
        self.jobs = JobRepository(session)
        self.technicians = TechnicianRepository(session)
        self.salespersons = SalespersonRepository(session)
        self.notifications = NotificationRepository(session)
        self.timeline = TimelineRecorder(session)
        self.outbox: list[Notice] = []

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _load(self, job_id: UUID | str, expected_version: int | None = None) -> JobModel:
        job = await self.jobs.get_or_raise(job_id)
        if expected_version is not None and job.version != expected_version:
            raise ConcurrencyConflictError(
                "Job was modified since it was read",
                details={
                    "job_id": str(job.id),
                    "expected_version": expected_version,
                    "current_version": job.version,
                },
            )
        return job

    def _should_apply(self, job: JobModel, target: str) -> bool:
        """Validate the source state for ``target``.

        Returns False when the job is already in ``target`` so the caller
        can return it untouched.

        Raises:
            InvalidTransitionError: Source state is not accepted
        """
        if job.status == target:
            return False

        allowed = ALLOWED_PREDECESSORS[target]
        if job.is_terminal:
            raise InvalidTransitionError(job.id, job.status, target, allowed)
        if self.settings.strict_transitions and job.status not in allowed:
            raise InvalidTransitionError(job.id, job.status, target, allowed)
        return True

    async def _technician_for(
        self,
        job: JobModel,
        technician_id: UUID | str | None,
    ) -> TechnicianModel:
        """The technician acting on ``job``: explicit id or the assignee."""
        tech_id = technician_id or job.assigned_technician_id
        if tech_id is None:
            raise ValidationError(
                "Job has no assigned technician",
                details={"job_id": str(job.id)},
            )
        technician = await self.technicians.get_or_raise(tech_id)
        if job.assigned_technician_id and technician.id != job.assigned_technician_id:
            raise ValidationError(
                "Technician is not assigned to this job",
                details={"job_id": str(job.id), "technician_id": str(technician.id)},
            )
        return technician

    async def _assigned_technician(self, job: JobModel) -> TechnicianModel | None:
        if job.assigned_technician_id is None:
            return None
        return await self.technicians.get(job.assigned_technician_id)

    async def _write(self, job: JobModel) -> None:
        # Job row first; the event that follows describes this state
        await self.session.flush()

    # ========================================================================
    # Creation
    # ========================================================================

    async def create_job(self, draft: JobDraft, created_by: str | None = None) -> JobModel:
        """Persist a new pending job and its ``created`` event."""
        if not draft.customer_name.strip() or not draft.address.strip():
            raise ValidationError("Customer name and address are required")
        if not draft.service_type.strip():
            raise ValidationError("Service type is required")
        if draft.priority not in JobPriority.ALL:
            raise ValidationError(
                "Unknown priority",
                details={"priority": draft.priority, "allowed": list(JobPriority.ALL)},
            )
        if draft.assigned_salesperson_id is not None:
            await self.salespersons.get_or_raise(draft.assigned_salesperson_id)

        job = await self.jobs.create(
            JobModel(
                job_number=self.jobs.generate_job_number(),
                customer_name=draft.customer_name.strip(),
                customer_phone=draft.customer_phone,
                customer_email=draft.customer_email,
                address=draft.address.strip(),
                city=draft.city,
                zip_code=draft.zip_code,
                latitude=draft.latitude,
                longitude=draft.longitude,
                service_type=draft.service_type.strip(),
                description=draft.description,
                priority=draft.priority,
                status=JobStatus.PENDING,
                lead_id=draft.lead_id,
                assigned_salesperson_id=draft.assigned_salesperson_id,
                dispatcher_id=draft.dispatcher_id,
            )
        )

        await self.timeline.record(
            job.id,
            TimelineEventType.CREATED,
            f"Job {job.job_number} created",
            created_by=created_by,
            payload=CreatedPayload(
                job_number=job.job_number,
                service_type=job.service_type,
                geocoded=draft.has_coordinates,
            ),
        )

        log.info(
            "Job created",
            job_id=str(job.id),
            job_number=job.job_number,
            geocoded=draft.has_coordinates,
        )
        return job

    # ========================================================================
    # Assignment
    # ========================================================================

    async def assign(
        self,
        job_id: UUID | str,
        technician_id: UUID | str,
        dispatcher_id: str | None = None,
        expected_version: int | None = None,
    ) -> JobModel:
        """Assign (or re-assign) a technician chosen by a dispatcher."""
        job = await self._load(job_id, expected_version)
        technician = await self.technicians.get_or_raise(technician_id)

        if job.status == JobStatus.ASSIGNED and job.assigned_technician_id == technician.id:
            return job
        # assigned -> assigned is a re-assignment, so the no-op check above is the only one
        allowed = ALLOWED_PREDECESSORS[JobStatus.ASSIGNED]
        if job.is_terminal or (self.settings.strict_transitions and job.status not in allowed):
            raise InvalidTransitionError(job.id, job.status, JobStatus.ASSIGNED, allowed)

        return await self._apply_assignment(job, technician, dispatcher_id, method="dispatcher")

    async def claim(self, job_id: UUID | str, technician_id: UUID | str) -> JobModel:
        """A technician takes a pending, unassigned job from the pool."""
        job = await self._load(job_id)
        technician = await self.technicians.get_or_raise(technician_id)

        if job.status != JobStatus.PENDING or job.assigned_technician_id is not None:
            raise InvalidTransitionError(
                job.id, job.status, JobStatus.ASSIGNED, frozenset({JobStatus.PENDING})
            )
        if not technician.approves(job.service_type):
            raise ValidationError(
                "Technician is not approved for this job type",
                details={"service_type": job.service_type, "technician_id": str(technician.id)},
            )

        return await self._apply_assignment(
            job, technician, None, method="claim", notify=False
        )

    async def auto_assign(
        self,
        job_id: UUID | str,
        dispatcher_id: str | None = None,
    ) -> JobModel:
        """Assign the first available, approved technician under their daily cap.

        Falls back to the first approved technician when everyone is at
        their cap.
        """
        job = await self._load(job_id)
        if not self._should_apply(job, JobStatus.ASSIGNED):
            return job
        if self.settings.strict_transitions and job.status != JobStatus.PENDING:
            raise InvalidTransitionError(
                job.id, job.status, JobStatus.ASSIGNED, frozenset({JobStatus.PENDING})
            )

        eligible = [
            tech for tech in await self.technicians.list_available()
            if tech.approves(job.service_type)
        ]
        if not eligible:
            raise TechnicianUnavailableError(
                "No available technician for this service type",
                details={"job_id": str(job.id), "service_type": job.service_type},
            )

        under_cap = [
            tech for tech in eligible
            if tech.completed_jobs_today < (tech.max_daily_jobs or self.settings.default_max_daily_jobs)
        ]
        technician = (under_cap or eligible)[0]

        return await self._apply_assignment(job, technician, dispatcher_id, method="auto")

    async def _apply_assignment(
        self,
        job: JobModel,
        technician: TechnicianModel,
        dispatcher_id: str | None,
        method: str,
        notify: bool = True,
    ) -> JobModel:
        previous = job.assigned_technician_id

        job.status = JobStatus.ASSIGNED
        job.assigned_technician_id = technician.id
        job.assigned_at = utcnow()
        if dispatcher_id is not None:
            job.dispatcher_id = dispatcher_id
        if job.labor_rate is None:
            job.labor_rate = technician.hourly_rate
        await self._write(job)

        description = {
            "dispatcher": f"Assigned to {technician.full_name}",
            "claim": f"Claimed by {technician.full_name}",
            "auto": f"Auto-assigned to {technician.full_name}",
        }[method]

        await self.timeline.record(
            job.id,
            TimelineEventType.ASSIGNED,
            description,
            created_by=dispatcher_id if method != "claim" else str(technician.id),
            payload=AssignedPayload(
                technician_id=str(technician.id),
                dispatcher_id=dispatcher_id,
                method=method,
                previous_technician_id=str(previous) if previous and previous != technician.id else None,
            ),
        )

        if notify:
            if technician.user_id:
                await self.notifications.create(
                    NotificationModel(
                        user_id=technician.user_id,
                        notification_type="job_assigned",
                        title="New Job Assigned",
                        message=f"You have been assigned to {job.service_type} at {job.address}",
                        job_id=job.id,
                        action_url=f"{self.settings.technician_job_path}/{job.id}",
                    )
                )
            self.outbox.append(Notice.for_job(NoticeKind.JOB_ASSIGNED, job, technician))

        log.info(
            "Job assigned",
            job_id=str(job.id),
            technician_id=str(technician.id),
            method=method,
        )
        return job

    # ========================================================================
    # Field work
    # ========================================================================

    async def confirm(
        self,
        job_id: UUID | str,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> JobModel:
        """Technician acknowledges the assignment."""
        job = await self._load(job_id, expected_version)
        if not self._should_apply(job, JobStatus.CONFIRMED):
            return job

        job.status = JobStatus.CONFIRMED
        job.confirmed_at = utcnow()
        await self._write(job)

        await self.timeline.record(
            job.id,
            TimelineEventType.CONFIRMED,
            "Technician confirmed assignment",
            created_by=actor,
            payload=TechnicianPayload(technician_id=_str(job.assigned_technician_id)),
        )
        log.info("Job confirmed", job_id=str(job.id))
        return job

    async def en_route(
        self,
        job_id: UUID | str,
        technician_id: UUID | str | None = None,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> JobModel:
        """Technician leaves for the site and becomes busy on this job.

        Raises:
            TechnicianUnavailableError: Technician is already busy elsewhere
        """
        job = await self._load(job_id, expected_version)
        technician = await self._technician_for(job, technician_id)
        if not self._should_apply(job, JobStatus.EN_ROUTE):
            return job

        if not await self.technicians.claim_for_job(technician.id, job.id):
            raise TechnicianUnavailableError(
                "Technician is already committed to another job",
                details={
                    "technician_id": str(technician.id),
                    "current_job_id": _str(technician.current_job_id),
                },
            )

        job.status = JobStatus.EN_ROUTE
        job.en_route_at = utcnow()
        if job.assigned_technician_id is None:
            job.assigned_technician_id = technician.id
        await self._write(job)

        await self.timeline.record(
            job.id,
            TimelineEventType.EN_ROUTE,
            "Technician en route to job",
            created_by=actor or str(technician.id),
            payload=TechnicianPayload(technician_id=str(technician.id)),
        )
        self.outbox.append(Notice.for_job(NoticeKind.TECHNICIAN_EN_ROUTE, job, technician))

        log.info("Technician en route", job_id=str(job.id), technician_id=str(technician.id))
        return job

    async def arrive(
        self,
        job_id: UUID | str,
        latitude: float | None = None,
        longitude: float | None = None,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> JobModel:
        """Technician reaches the site; verify position when both fixes exist.

        Without a technician fix or job coordinates, verification stays
        unknown (NULL) rather than false.
        """
        if (latitude is None) != (longitude is None):
            raise ValidationError("Latitude and longitude must be given together")

        job = await self._load(job_id, expected_version)
        if not self._should_apply(job, JobStatus.ON_SITE):
            return job

        has_fix = latitude is not None
        verified: bool | None = None
        distance: int | None = None
        if has_fix and job.latitude is not None and job.longitude is not None:
            check = within_radius(
                latitude,
                longitude,
                job.latitude,
                job.longitude,
                self.settings.arrival_radius_meters,
            )
            verified = check.is_within
            distance = check.distance

        job.status = JobStatus.ON_SITE
        job.arrived_at = utcnow()
        job.arrival_lat = latitude
        job.arrival_lng = longitude
        job.arrival_verified = verified
        job.arrival_distance = distance
        await self._write(job)

        description = "Technician arrived at job site"
        if verified is not None:
            summary = "Location verified" if verified else "Location not verified"
            description += f" ({summary} - {distance}m from job site)"

        await self.timeline.record(
            job.id,
            TimelineEventType.ARRIVED,
            description,
            created_by=actor,
            payload=ArrivedPayload(
                latitude=latitude,
                longitude=longitude,
                arrival_verified=verified,
                arrival_distance=distance,
            ),
        )

        log.info(
            "Technician arrived",
            job_id=str(job.id),
            arrival_verified=verified,
            arrival_distance=distance,
        )
        return job

    async def start(
        self,
        job_id: UUID | str,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> JobModel:
        job = await self._load(job_id, expected_version)
        if not self._should_apply(job, JobStatus.IN_PROGRESS):
            return job

        job.status = JobStatus.IN_PROGRESS
        job.started_at = utcnow()
        await self._write(job)

        await self.timeline.record(
            job.id,
            TimelineEventType.STARTED,
            "Work started",
            created_by=actor,
            payload=TechnicianPayload(technician_id=_str(job.assigned_technician_id)),
        )
        technician = await self._assigned_technician(job)
        self.outbox.append(Notice.for_job(NoticeKind.JOB_STARTED, job, technician))
        log.info("Job started", job_id=str(job.id))
        return job

    async def complete(
        self,
        job_id: UUID | str,
        costs: CostUpdate | None = None,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> JobModel:
        """Finish the job: reconcile costs, free the technician, book commission."""
        job = await self._load(job_id, expected_version)
        if not self._should_apply(job, JobStatus.COMPLETED):
            return job

        if costs is not None and not costs.is_empty():
            reconcile(job, costs, self.settings.default_labor_rate)

        job.status = JobStatus.COMPLETED
        job.completed_at = utcnow()
        await self._write(job)

        technician = await self._assigned_technician(job)
        if technician is not None:
            await self.technicians.release(technician, job.id, completed=True)

        await self.timeline.record(
            job.id,
            TimelineEventType.COMPLETED,
            "Job completed",
            created_by=actor,
            payload=CompletedPayload(
                total_cost=job.total_cost,
                total_revenue=job.total_revenue,
                profit=job.profit,
                technician_id=_str(job.assigned_technician_id),
            ),
        )

        if job.assigned_salesperson_id is not None:
            await CommissionService(
                self.session, self.settings.default_commission_rate
            ).calculate_commission(job.id, job.assigned_salesperson_id)

        self.outbox.append(Notice.for_job(NoticeKind.JOB_COMPLETED, job, technician))

        log.info(
            "Job completed",
            job_id=str(job.id),
            total_cost=_str(job.total_cost),
            total_revenue=_str(job.total_revenue),
            profit=_str(job.profit),
        )
        return job

    async def cancel(
        self,
        job_id: UUID | str,
        cancelled_by: str,
        reason: str,
        expected_version: int | None = None,
    ) -> JobModel:
        """Abandon a job. Cost data already on the job is kept."""
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        if not cancelled_by or not cancelled_by.strip():
            raise ValidationError("Cancelling actor is required")

        job = await self._load(job_id, expected_version)
        if not self._should_apply(job, JobStatus.CANCELLED):
            return job

        job.status = JobStatus.CANCELLED
        job.cancelled_at = utcnow()
        job.cancelled_by = cancelled_by
        job.cancellation_reason = reason.strip()
        await self._write(job)

        released = False
        technician = await self._assigned_technician(job)
        if technician is not None and technician.current_job_id == job.id:
            released = await self.technicians.release(technician, job.id)

        await self.timeline.record(
            job.id,
            TimelineEventType.CANCELLED,
            f"Job cancelled. Reason: {job.cancellation_reason}",
            created_by=cancelled_by,
            payload=CancelledPayload(
                reason=job.cancellation_reason,
                cancelled_by=cancelled_by,
                technician_released=released,
            ),
        )

        log.info(
            "Job cancelled",
            job_id=str(job.id),
            cancelled_by=cancelled_by,
            technician_released=released,
        )
        return job

    # ========================================================================
    # Costs and annotations
    # ========================================================================

    async def update_costs(
        self,
        job_id: UUID | str,
        costs: CostUpdate,
        expected_version: int | None = None,
    ) -> JobModel:
        """Reconcile costs without changing status or writing an event."""
        if costs.is_empty():
            raise ValidationError("No cost fields supplied")

        job = await self._load(job_id, expected_version)
        summary = reconcile(job, costs, self.settings.default_labor_rate)
        await self._write(job)

        log.info("Job costs updated", job_id=str(job.id), **summary.to_dict())
        return job

    async def add_note(
        self,
        job_id: UUID | str,
        description: str,
        created_by: str | None = None,
    ) -> JobTimelineEventModel:
        if not description or not description.strip():
            raise ValidationError("Note text is required")

        job = await self._load(job_id)
        return await self.timeline.record(
            job.id,
            TimelineEventType.NOTE,
            description.strip(),
            created_by=created_by,
            payload=NotePayload(),
        )

    async def record_quote_sent(
        self,
        job_id: UUID | str,
        quote_reference: str,
        created_by: str | None = None,
    ) -> JobTimelineEventModel:
        if not quote_reference or not quote_reference.strip():
            raise ValidationError("Quote reference is required")

        job = await self._load(job_id)
        return await self.timeline.record(
            job.id,
            TimelineEventType.QUOTE_SENT,
            f"Quote {quote_reference} sent to customer",
            created_by=created_by,
            payload=QuoteSentPayload(quote_reference=quote_reference),
        )

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_job(self, job_id: UUID | str) -> JobModel:
        return await self.jobs.get_or_raise(job_id)

    async def get_timeline(self, job_id: UUID | str) -> Sequence[JobTimelineEventModel]:
        await self.jobs.get_or_raise(job_id)
        return await self.timeline.list_for_job(job_id)


def _str(value: UUID | Decimal | None) -> str | None:
    return None if value is None else str(value)
