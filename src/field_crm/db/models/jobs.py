"""Job and timeline ORM models.

Contains:
- JobModel: a unit of field work moving through the dispatch lifecycle
- JobTimelineEventModel: append-only audit entries for a job
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from field_crm.db.base import (
    Base,
    MoneyType,
    TimestampMixin,
    UTCDateTime,
    UUIDMixin,
    UUIDType,
    utcnow,
)


# Enums as string constants for database storage
class JobStatus:
    """Job status values, in lifecycle order."""
    PENDING = "pending"          # Created, nobody assigned
    ASSIGNED = "assigned"        # Technician assigned by dispatcher
    CONFIRMED = "confirmed"      # Technician accepted the assignment
    EN_ROUTE = "en_route"        # Technician driving to site
    ON_SITE = "on_site"          # Technician arrived
    IN_PROGRESS = "in_progress"  # Work started
    COMPLETED = "completed"      # Work finished, costs reconciled
    CANCELLED = "cancelled"      # Abandoned

    ALL = (
        PENDING, ASSIGNED, CONFIRMED, EN_ROUTE,
        ON_SITE, IN_PROGRESS, COMPLETED, CANCELLED,
    )
    TERMINAL = frozenset({COMPLETED, CANCELLED})


class JobPriority:
    """Job priority levels."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    ALL = (LOW, NORMAL, HIGH, URGENT)


class TimelineEventType:
    """Timeline event types."""
    CREATED = "created"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NOTE = "note"
    QUOTE_SENT = "quote_sent"

    ALL = (
        CREATED, ASSIGNED, CONFIRMED, EN_ROUTE, ARRIVED,
        STARTED, COMPLETED, CANCELLED, NOTE, QUOTE_SENT,
    )


COST_FIELDS = (
    "labor_cost",
    "materials_cost",
    "travel_expense",
    "equipment_cost",
    "other_expenses",
)


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class JobModel(Base, UUIDMixin, TimestampMixin):
    """Service job ORM model.

    Tracks one job from creation through dispatch, on-site work and
    cost reconciliation. Rows are never deleted; cancelled jobs keep
    their history and cost data.
    """

    __tablename__ = "jobs"

    job_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable job number (e.g., JOB-20261018-4F2A)",
    )

    # Customer (fixed at creation)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Location
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Work
    service_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobPriority.NORMAL,
        comment="low, normal, high, urgent",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        default=JobStatus.PENDING,
    )
    lead_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Originating lead, if any",
    )

    # People
    assigned_technician_id: Mapped[UUID | None] = mapped_column(
        UUIDType(),
        ForeignKey("technicians.id"),
        nullable=True,
        index=True,
    )
    dispatcher_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_salesperson_id: Mapped[UUID | None] = mapped_column(
        UUIDType(),
        ForeignKey("salespersons.id"),
        nullable=True,
    )

    # Lifecycle timestamps
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    en_route_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    arrived_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Arrival verification
    arrival_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    arrival_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    arrival_verified: Mapped[bool | None] = mapped_column(
        Boolean,
        nullable=True,
        comment="NULL when no GPS fix or no job coordinates",
    )
    arrival_distance: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Meters between technician and job site at arrival",
    )

    # Financials
    labor_hours: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    labor_rate: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    labor_cost: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    materials_cost: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    travel_expense: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    equipment_cost: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    other_expenses: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    expense_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    total_revenue: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    profit: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)

    # Cancellation
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_jobs_status_technician", "status", "assigned_technician_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary for API responses."""
        return {
            "id": str(self.id),
            "job_number": self.job_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "address": self.address,
            "city": self.city,
            "zip_code": self.zip_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "service_type": self.service_type,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "lead_id": self.lead_id,
            "assigned_technician_id": (
                str(self.assigned_technician_id) if self.assigned_technician_id else None
            ),
            "dispatcher_id": self.dispatcher_id,
            "assigned_salesperson_id": (
                str(self.assigned_salesperson_id) if self.assigned_salesperson_id else None
            ),
            "assigned_at": _iso(self.assigned_at),
            "confirmed_at": _iso(self.confirmed_at),
            "en_route_at": _iso(self.en_route_at),
            "arrived_at": _iso(self.arrived_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "arrival": {
                "latitude": self.arrival_lat,
                "longitude": self.arrival_lng,
                "verified": self.arrival_verified,
                "distance_meters": self.arrival_distance,
            },
            "costs": {
                "labor_hours": _money(self.labor_hours),
                "labor_rate": _money(self.labor_rate),
                "labor_cost": _money(self.labor_cost),
                "materials_cost": _money(self.materials_cost),
                "travel_expense": _money(self.travel_expense),
                "equipment_cost": _money(self.equipment_cost),
                "other_expenses": _money(self.other_expenses),
                "expense_notes": self.expense_notes,
                "total_cost": _money(self.total_cost),
                "total_revenue": _money(self.total_revenue),
                "profit": _money(self.profit),
            },
            "cancellation_reason": self.cancellation_reason,
            "cancelled_by": self.cancelled_by,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class JobTimelineEventModel(Base, UUIDMixin):
    """Immutable audit entry for a job.

    ``sequence`` is assigned per job at insert time and is the ordering
    key; timestamps may tie within the same request.
    """

    __tablename__ = "job_timeline_events"

    job_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("jobs.id"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("job_id", "sequence", name="uq_timeline_job_sequence"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "job_id": str(self.job_id),
            "sequence": self.sequence,
            "event_type": self.event_type,
            "description": self.description,
            "created_by": self.created_by,
            "metadata": self.metadata_json,
            "created_at": _iso(self.created_at),
        }
