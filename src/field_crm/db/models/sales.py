"""Salesperson and commission ORM models."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
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


class CommissionStatus:
    """Commission payout status values."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"

    ALL = (PENDING, APPROVED, PAID)


class SalespersonModel(Base, UUIDMixin, TimestampMixin):
    """Salesperson who earns commission on completed jobs."""

    __tablename__ = "salespersons"

    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    commission_rate: Mapped[Decimal] = mapped_column(
        RateType(), nullable=False, default=Decimal("0.15")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "commission_rate": str(self.commission_rate),
            "is_active": self.is_active,
        }


class SalesCommissionModel(Base, UUIDMixin, TimestampMixin):
    """Commission earned on one job by one salesperson.

    Financial inputs are snapshotted at calculation time; later edits
    to the job do not change an existing record.
    """

    __tablename__ = "sales_commissions"

    salesperson_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("salespersons.id"),
        nullable=False,
        index=True,
    )
    job_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("jobs.id"),
        nullable=False,
        index=True,
    )
    lead_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Snapshot
    job_revenue: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    labor_cost: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    materials_cost: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    travel_expense: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    equipment_cost: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    other_expenses: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    total_costs: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    net_profit: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    commission_rate: Mapped[Decimal] = mapped_column(RateType(), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.PENDING,
    )
    calculated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", "salesperson_id", name="uq_commission_job_salesperson"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "salesperson_id": str(self.salesperson_id),
            "job_id": str(self.job_id),
            "lead_id": self.lead_id,
            "job_revenue": str(self.job_revenue),
            "labor_cost": str(self.labor_cost),
            "materials_cost": str(self.materials_cost),
            "travel_expense": str(self.travel_expense),
            "equipment_cost": str(self.equipment_cost),
            "other_expenses": str(self.other_expenses),
            "total_costs": str(self.total_costs),
            "net_profit": str(self.net_profit),
            "commission_rate": str(self.commission_rate),
            "commission_amount": str(self.commission_amount),
            "status": self.status,
            "calculated_at": self.calculated_at.isoformat() if self.calculated_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "notes": self.notes,
        }
