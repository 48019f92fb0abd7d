"""Cost and revenue reconciliation for jobs.

``reconcile`` touches only the job's financial fields. Technician and
timeline changes belong to the calling transition.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any

from field_crm.db.base import quantize_money
from field_crm.db.models.jobs import COST_FIELDS, JobModel

DEFAULT_LABOR_RATE = Decimal("25.00")
ZERO = Decimal("0.00")


@dataclass
class CostUpdate:
    """Newly supplied financial values for a job. ``None`` means "not supplied"."""

    labor_hours: Decimal | None = None
    labor_rate: Decimal | None = None
    labor_cost: Decimal | None = None
    materials_cost: Decimal | None = None
    travel_expense: Decimal | None = None
    equipment_cost: Decimal | None = None
    other_expenses: Decimal | None = None
    total_revenue: Decimal | None = None
    expense_notes: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "CostUpdate":
        """Build from a dict, ignoring unknown keys and converting numbers."""
        values: dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None:
                continue
            if f.name == "expense_notes":
                values[f.name] = str(value)
            else:
                values[f.name] = value if isinstance(value, Decimal) else Decimal(str(value))
        return cls(**values)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class CostSummary:
    """Reconciled totals, as written to the job."""

    total_cost: Decimal
    total_revenue: Decimal | None
    profit: Decimal | None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "total_cost": str(self.total_cost),
            "total_revenue": None if self.total_revenue is None else str(self.total_revenue),
            "profit": None if self.profit is None else str(self.profit),
        }


def _pick(supplied: Decimal | None, prior: Decimal | None) -> Decimal | None:
    return supplied if supplied is not None else prior


def reconcile(
    job: JobModel,
    update: CostUpdate,
    default_labor_rate: Decimal = DEFAULT_LABOR_RATE,
) -> CostSummary:
    """Merge ``update`` into the job's financials and recompute totals.

    Rules:
        - supplied values win, otherwise the prior value is kept;
          components never set count as 0
        - an explicitly supplied labor cost is used as-is
        - labor cost is recomputed as hours * rate (rate falls back to the
          default) when this update supplies hours or rate, or when no
          labor cost is stored yet; otherwise the stored figure stands
        - total cost is the sum of the five cost components
        - profit is revenue - total cost, only when revenue is known
        - every amount is rounded to cents
    """
    labor_hours = _pick(update.labor_hours, job.labor_hours)
    labor_rate = _pick(update.labor_rate, job.labor_rate) or default_labor_rate

    labor_inputs_supplied = update.labor_hours is not None or update.labor_rate is not None

    if update.labor_cost is not None:
        labor_cost = update.labor_cost
    elif labor_hours is not None and (labor_inputs_supplied or job.labor_cost is None):
        labor_cost = labor_hours * labor_rate
    else:
        labor_cost = job.labor_cost if job.labor_cost is not None else ZERO

    job.labor_hours = quantize_money(labor_hours)
    job.labor_rate = quantize_money(labor_rate)
    job.labor_cost = quantize_money(labor_cost)

    for name in COST_FIELDS[1:]:
        value = _pick(getattr(update, name), getattr(job, name))
        setattr(job, name, quantize_money(value if value is not None else ZERO))

    if update.expense_notes is not None:
        job.expense_notes = update.expense_notes

    job.total_cost = quantize_money(sum((getattr(job, name) for name in COST_FIELDS), ZERO))

    revenue = _pick(update.total_revenue, job.total_revenue)
    if revenue is not None:
        job.total_revenue = quantize_money(revenue)
        job.profit = quantize_money(job.total_revenue - job.total_cost)

    return CostSummary(
        total_cost=job.total_cost,
        total_revenue=job.total_revenue,
        profit=job.profit,
    )


def net_profit(job: JobModel) -> Decimal | None:
    """Revenue minus all five cost components, or None without revenue."""
    if job.total_revenue is None:
        return None
    costs = sum(
        (getattr(job, name) or ZERO for name in COST_FIELDS),
        ZERO,
    )
    return quantize_money(job.total_revenue - costs)
