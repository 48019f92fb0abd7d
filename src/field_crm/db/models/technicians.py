"""Technician ORM models."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from field_crm.db.base import (
    Base,
    MoneyType,
    RateType,
    TimestampMixin,
    UTCDateTime,
    UUIDMixin,
    UUIDType,
    utcnow,
)


class TechnicianStatus:
    """Technician availability values."""
    AVAILABLE = "available"
    BUSY = "busy"
    OFF_DUTY = "off_duty"


class TechnicianModel(Base, UUIDMixin, TimestampMixin):
    """Field technician who can be dispatched to jobs."""

    __tablename__ = "technicians"

    user_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Linked login account; receives in-app notifications",
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        default=TechnicianStatus.AVAILABLE,
    )
    current_job_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)

    approved_job_types: Mapped[list[str] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Service types this technician may take; NULL or empty means all",
    )
    hourly_rate: Mapped[Decimal] = mapped_column(
        MoneyType(), nullable=False, default=Decimal("25.00")
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        RateType(), nullable=False, default=Decimal("0.10")
    )
    max_daily_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    completed_jobs_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Denormalised copy of the latest TechnicianLocation
    last_location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_location_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_location_update: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    def approves(self, service_type: str) -> bool:
        """Whether this technician may take jobs of ``service_type``."""
        if not self.approved_job_types:
            return True
        return service_type in self.approved_job_types

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "status": self.status,
            "current_job_id": str(self.current_job_id) if self.current_job_id else None,
            "approved_job_types": self.approved_job_types,
            "hourly_rate": str(self.hourly_rate),
            "commission_rate": str(self.commission_rate),
            "max_daily_jobs": self.max_daily_jobs,
            "completed_jobs_today": self.completed_jobs_today,
            "last_location": {
                "latitude": self.last_location_lat,
                "longitude": self.last_location_lng,
                "updated_at": (
                    self.last_location_update.isoformat()
                    if self.last_location_update else None
                ),
            },
        }


class TechnicianLocationModel(Base, UUIDMixin):
    """Immutable GPS sample reported by a technician's device."""

    __tablename__ = "technician_locations"

    technician_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("technicians.id"),
        nullable=False,
    )
    job_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    heading: Mapped[float | None] = mapped_column(Float, nullable=True)
    altitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    battery_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_moving: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_technician_locations_tech_created", "technician_id", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "technician_id": str(self.technician_id),
            "job_id": str(self.job_id) if self.job_id else None,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "speed": self.speed,
            "heading": self.heading,
            "altitude": self.altitude,
            "battery_level": self.battery_level,
            "is_moving": self.is_moving,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
