"""Read-only projection of a financed unit's debt.

Nothing here writes to the session. Closed periods contribute their
frozen interest; the open period is projected to ``as_of`` with the same
formula used when it is eventually closed.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from stock_interest.models.financed_unit_model import FinancedUnit
from stock_interest.schemas.debt_schema import DebtStatus, DebtSummaryOut
from stock_interest.services.interest_ledger import periods_for, projected_interest, today
from stock_interest.utils.interest_calculations import ZERO


def debt_status(unit: FinancedUnit) -> DebtStatus:
    if not unit.has_financing or unit.original_debt is None:
        return DebtStatus.NO_DEBT
    if unit.paid_off_at is not None:
        return DebtStatus.PAID_OFF
    return DebtStatus.ACTIVE


def lifetime_accrued_interest(db: Session, unit: FinancedUnit, as_of: date) -> Decimal:
    total = ZERO
    for p in periods_for(db, unit):
        if p.end_date is not None:
            total += Decimal(p.accrued_interest)
        elif not unit.accrual_halted and unit.paid_off_at is None:
            total += projected_interest(p, as_of)[1]
    return total


def current_rate(db: Session, unit: FinancedUnit) -> Decimal:
    if unit.accrual_halted or unit.paid_off_at is not None:
        return ZERO
    for p in periods_for(db, unit):
        if p.end_date is None:
            return Decimal(p.annual_rate_percent)
    return ZERO


def summarize(db: Session, unit: FinancedUnit, as_of: Optional[date] = None) -> DebtSummaryOut:
    as_of = as_of or today()
    status = debt_status(unit)

    if status is DebtStatus.NO_DEBT:
        return DebtSummaryOut(
            unit_id=unit.unit_id,
            as_of=as_of,
            original_debt=ZERO,
            paid_principal=ZERO,
            remaining_principal=ZERO,
            paid_interest=ZERO,
            outstanding_interest=ZERO,
            lifetime_accrued_interest=ZERO,
            current_rate=ZERO,
            status=status,
            total_payoff_amount=ZERO,
            paid_off_at=None,
        )

    original = Decimal(unit.original_debt)
    paid_principal = Decimal(unit.paid_principal or 0)
    paid_interest = Decimal(unit.paid_interest or 0)

    lifetime = lifetime_accrued_interest(db, unit, as_of)
    outstanding = lifetime - paid_interest
    remaining = max(ZERO, original - paid_principal)

    return DebtSummaryOut(
        unit_id=unit.unit_id,
        as_of=as_of,
        original_debt=original,
        paid_principal=paid_principal,
        remaining_principal=remaining,
        paid_interest=paid_interest,
        outstanding_interest=outstanding,
        lifetime_accrued_interest=lifetime,
        current_rate=current_rate(db, unit),
        status=status,
        total_payoff_amount=remaining + outstanding,
        paid_off_at=unit.paid_off_at,
    )
