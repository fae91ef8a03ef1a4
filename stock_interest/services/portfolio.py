import math
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from stock_interest.models.financed_unit_model import FinancedUnit
from stock_interest.schemas.debt_schema import (
    DebtStatsOut,
    DebtStatus,
    OutstandingDebtsOut,
)
from stock_interest.schemas.interest_schema import InterestStatsOut
from stock_interest.services.debt_summary import lifetime_accrued_interest, summarize
from stock_interest.services.interest_ledger import open_period, today
from stock_interest.utils.interest_calculations import RATE_STEP, ZERO


def financed_units(db: Session) -> list:
    return (
        db.query(FinancedUnit)
        .filter(FinancedUnit.has_financing.is_(True))
        .order_by(FinancedUnit.unit_id.asc())
        .all()
    )


def interest_stats(db: Session, as_of: Optional[date] = None) -> InterestStatsOut:
    as_of = as_of or today()
    units = financed_units(db)

    active = 0
    halted = 0
    total_interest = ZERO
    rates = []

    for unit in units:
        total_interest += lifetime_accrued_interest(db, unit, as_of)
        if unit.paid_off_at is not None:
            continue
        if unit.accrual_halted:
            halted += 1
            continue
        current = open_period(db, unit)
        if current is not None:
            active += 1
            rates.append(Decimal(current.annual_rate_percent))

    average = ZERO
    if rates:
        average = (sum(rates, ZERO) / len(rates)).quantize(RATE_STEP, rounding=ROUND_HALF_UP)

    return InterestStatsOut(
        as_of=as_of,
        financed_units=len(units),
        active_accruals=active,
        halted_accruals=halted,
        total_accrued_interest=total_interest,
        average_rate=average,
    )


def outstanding_debts(
        db: Session,
        as_of: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
) -> OutstandingDebtsOut:
    """ACTIVE debts, largest payoff first."""
    as_of = as_of or today()
    page = max(1, page)
    limit = max(1, limit)

    rows = [summarize(db, u, as_of) for u in financed_units(db)]
    rows = [r for r in rows if r.status is DebtStatus.ACTIVE]
    rows.sort(key=lambda r: (-r.total_payoff_amount, r.unit_id))

    total = len(rows)
    total_pages = math.ceil(total / limit)
    skip = (page - 1) * limit

    return OutstandingDebtsOut(
        data=rows[skip:skip + limit],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def debt_stats(db: Session, as_of: Optional[date] = None) -> DebtStatsOut:
    as_of = as_of or today()
    counts = {s: 0 for s in DebtStatus}
    totals = {
        "original": ZERO,
        "paid_principal": ZERO,
        "paid_interest": ZERO,
        "remaining": ZERO,
        "outstanding": ZERO,
    }

    for unit in db.query(FinancedUnit).order_by(FinancedUnit.unit_id.asc()).all():
        s = summarize(db, unit, as_of)
        counts[s.status] += 1
        totals["original"] += s.original_debt
        totals["paid_principal"] += s.paid_principal
        totals["paid_interest"] += s.paid_interest
        totals["remaining"] += s.remaining_principal
        totals["outstanding"] += s.outstanding_interest

    return DebtStatsOut(
        as_of=as_of,
        units_no_debt=counts[DebtStatus.NO_DEBT],
        units_active=counts[DebtStatus.ACTIVE],
        units_paid_off=counts[DebtStatus.PAID_OFF],
        total_original_debt=totals["original"],
        total_paid_principal=totals["paid_principal"],
        total_paid_interest=totals["paid_interest"],
        total_remaining_principal=totals["remaining"],
        total_outstanding_interest=totals["outstanding"],
    )
