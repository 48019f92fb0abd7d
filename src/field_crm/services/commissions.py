"""Sales commission calculation."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.core.exceptions import ConcurrencyConflictError, ValidationError
from field_crm.core.log import get_logger
from field_crm.db.base import quantize_money, utcnow
from field_crm.db.models.jobs import JobStatus
from field_crm.db.models.sales import CommissionStatus, SalesCommissionModel
from field_crm.db.repositories.jobs import JobRepository
from field_crm.db.repositories.sales import CommissionRepository, SalespersonRepository
from field_crm.services.costs import ZERO, net_profit

log = get_logger(__name__)

DEFAULT_COMMISSION_RATE = Decimal("0.15")


class CommissionService:
    """Derives and tracks salesperson commissions on completed jobs."""

    def __init__(self, session: AsyncSession, default_rate: Decimal = DEFAULT_COMMISSION_RATE):
        self.jobs = JobRepository(session)
        self.salespersons = SalespersonRepository(session)
        self.commissions = CommissionRepository(session)
        self.default_rate = default_rate

    async def calculate_commission(
        self,
        job_id: UUID | str,
        salesperson_id: UUID | str,
    ) -> SalesCommissionModel | None:
        """Commission for one salesperson on one job.

        Returns the existing record if one was already calculated, even
        if the job's figures changed since. Returns None when the job
        is missing, not completed, has no revenue, the salesperson is
        missing, or the job made no profit.
        """
        existing = await self.commissions.get_for_job_and_salesperson(job_id, salesperson_id)
        if existing is not None:
            return existing

        job = await self.jobs.get(job_id)
        if job is None or job.status != JobStatus.COMPLETED or job.total_revenue is None:
            log.info(
                "Commission not applicable",
                job_id=str(job_id),
                job_status=job.status if job else None,
            )
            return None

        salesperson = await self.salespersons.get(salesperson_id)
        if salesperson is None:
            log.info("Commission salesperson not found", salesperson_id=str(salesperson_id))
            return None

        profit = net_profit(job)
        if profit is None or profit <= ZERO:
            log.info("No commission on unprofitable job", job_id=str(job.id), net_profit=str(profit))
            return None

        rate = salesperson.commission_rate if salesperson.commission_rate is not None else self.default_rate
        components = {
            "labor_cost": job.labor_cost or ZERO,
            "materials_cost": job.materials_cost or ZERO,
            "travel_expense": job.travel_expense or ZERO,
            "equipment_cost": job.equipment_cost or ZERO,
            "other_expenses": job.other_expenses or ZERO,
        }

        record = SalesCommissionModel(
            salesperson_id=salesperson.id,
            job_id=job.id,
            lead_id=job.lead_id,
            job_revenue=job.total_revenue,
            total_costs=quantize_money(sum(components.values(), ZERO)),
            net_profit=profit,
            commission_rate=rate,
            commission_amount=quantize_money(profit * rate),
            status=CommissionStatus.PENDING,
            calculated_at=utcnow(),
            **components,
        )
        try:
            commission = await self.commissions.create(record)
        except IntegrityError as e:
            raise ConcurrencyConflictError(
                "Commission was recorded concurrently, retry to read it",
                details={"job_id": str(job.id), "salesperson_id": str(salesperson.id)},
                cause=e,
            ) from e

        log.info(
            "Commission calculated",
            job_id=str(job.id),
            salesperson_id=str(salesperson.id),
            net_profit=str(profit),
            commission_amount=str(commission.commission_amount),
        )
        return commission

    async def list_by_job(self, job_id: UUID | str) -> Sequence[SalesCommissionModel]:
        return await self.commissions.list_by_job(job_id)

    async def list_by_salesperson(
        self,
        salesperson_id: UUID | str,
        status: str | None = None,
    ) -> Sequence[SalesCommissionModel]:
        return await self.commissions.list_by_salesperson(salesperson_id, status=status)

    async def approve(self, commission_id: UUID | str, notes: str | None = None) -> SalesCommissionModel:
        """Move a pending commission to approved."""
        commission = await self.commissions.get_or_raise(commission_id)
        if commission.status == CommissionStatus.APPROVED:
            return commission
        if commission.status != CommissionStatus.PENDING:
            raise ValidationError(
                "Only pending commissions can be approved",
                details={"commission_id": str(commission.id), "status": commission.status},
            )
        commission.status = CommissionStatus.APPROVED
        commission.approved_at = utcnow()
        if notes:
            commission.notes = notes
        await self.commissions.session.flush()
        log.info("Commission approved", commission_id=str(commission.id))
        return commission

    async def mark_paid(self, commission_id: UUID | str, notes: str | None = None) -> SalesCommissionModel:
        """Move an approved commission to paid."""
        commission = await self.commissions.get_or_raise(commission_id)
        if commission.status == CommissionStatus.PAID:
            return commission
        if commission.status != CommissionStatus.APPROVED:
            raise ValidationError(
                "Only approved commissions can be marked paid",
                details={"commission_id": str(commission.id), "status": commission.status},
            )
        commission.status = CommissionStatus.PAID
        commission.paid_at = utcnow()
        if notes:
            commission.notes = notes
        await self.commissions.session.flush()
        log.info("Commission paid", commission_id=str(commission.id))
        return commission
