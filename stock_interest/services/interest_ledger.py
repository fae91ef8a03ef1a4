import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from stock_interest.core.errors import (
    AccrualNotHaltedError,
    AlreadyInitializedError,
    AlreadyPaidOffError,
    InvalidAmountError,
    InvalidDateError,
    LedgerIntegrityError,
    NoDebtError,
    NoOpenPeriodError,
    UnitNotFoundError,
)
from stock_interest.models.debt_payment_model import DebtPayment
from stock_interest.models.financed_unit_model import FinancedUnit
from stock_interest.models.interest_period_model import InterestPeriod
from stock_interest.schemas.interest_schema import InterestPeriodOut
from stock_interest.utils.interest_calculations import (
    ZERO,
    PrincipalBasis,
    compute_period_interest,
    day_count,
    principal_for_basis,
    to_basis,
    to_decimal,
    to_rate,
)

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Helpers
# -------------------------------------------------
def today() -> date:
    return date.today()


def get_unit(db: Session, unit_id: int, for_update: bool = False) -> FinancedUnit:
    q = db.query(FinancedUnit).filter(FinancedUnit.unit_id == unit_id)
    if for_update:
        q = q.with_for_update()
    unit = q.first()
    if not unit:
        raise UnitNotFoundError(unit_id)
    return unit


def periods_for(db: Session, unit: FinancedUnit) -> list:
    return (
        db.query(InterestPeriod)
        .filter(InterestPeriod.unit_id == unit.unit_id)
        .order_by(InterestPeriod.start_date.asc(), InterestPeriod.period_id.asc())
        .all()
    )


def open_period(db: Session, unit: FinancedUnit) -> Optional[InterestPeriod]:
    """The period whose end_date is NULL, if any."""
    rows = (
        db.query(InterestPeriod)
        .filter(InterestPeriod.unit_id == unit.unit_id, InterestPeriod.end_date.is_(None))
        .all()
    )
    if len(rows) > 1:
        raise LedgerIntegrityError(
            f"Financed unit {unit.unit_id} has {len(rows)} open interest periods"
        )
    return rows[0] if rows else None


def last_period(db: Session, unit: FinancedUnit) -> Optional[InterestPeriod]:
    return (
        db.query(InterestPeriod)
        .filter(InterestPeriod.unit_id == unit.unit_id)
        .order_by(InterestPeriod.start_date.desc(), InterestPeriod.period_id.desc())
        .first()
    )


def snapshot_principal(unit: FinancedUnit, basis: PrincipalBasis) -> Decimal:
    return principal_for_basis(
        unit.base_cost,
        unit.transport_cost,
        unit.accessory_cost,
        unit.other_costs,
        basis,
    )


def projected_interest(period: InterestPeriod, as_of: date) -> tuple:
    """(days, interest) of an open period up to as_of; never persisted.

    A period that starts after as_of has accrued nothing yet.
    """
    if as_of <= period.start_date:
        return 0, ZERO
    days = day_count(period.start_date, as_of)
    return days, compute_period_interest(period.principal_amount, period.annual_rate_percent, days)


def close_period(period: InterestPeriod, end_date: date) -> InterestPeriod:
    """Freeze a period's days and interest; closed periods are never re-derived."""
    if end_date < period.start_date:
        raise InvalidDateError(
            f"End date {end_date} precedes the open period's start date {period.start_date}"
        )
    days = day_count(period.start_date, end_date)
    period.end_date = end_date
    period.days_count = days
    period.accrued_interest = compute_period_interest(
        period.principal_amount, period.annual_rate_percent, days
    )
    return period


def _require_after_last_payment(db: Session, unit: FinancedUnit, end_date: date) -> None:
    """Closing before a recorded payment would drop interest that payment already covered."""
    last_paid = (
        db.query(func.max(DebtPayment.payment_date))
        .filter(DebtPayment.unit_id == unit.unit_id)
        .scalar()
    )
    if last_paid is not None and end_date < last_paid:
        raise InvalidDateError(
            f"End date {end_date} precedes the last payment dated {last_paid}"
        )


def _require_financing(unit: FinancedUnit) -> None:
    if not unit.has_financing:
        raise NoDebtError(f"Financed unit {unit.unit_id} has no financing")


def _open_new_period(
        db: Session,
        unit: FinancedUnit,
        start_date: date,
        rate: Decimal,
        basis: PrincipalBasis,
        note: Optional[str],
) -> InterestPeriod:
    if open_period(db, unit) is not None:
        raise LedgerIntegrityError(f"Financed unit {unit.unit_id} already has an open period")

    period = InterestPeriod(
        unit=unit,
        start_date=start_date,
        end_date=None,
        annual_rate_percent=rate,
        principal_basis=basis.value,
        principal_amount=snapshot_principal(unit, basis),
        note=note,
    )
    db.add(period)
    unit.principal_basis = basis.value
    db.flush()
    return period


# =================================================
# Ledger operations
# =================================================
def initialize(
        db: Session,
        unit: FinancedUnit,
        annual_rate_percent,
        principal_basis=None,
        start_date: Optional[date] = None,
        note: Optional[str] = None,
        debt_amount=None,
) -> InterestPeriod:
    _require_financing(unit)

    existing = db.query(InterestPeriod).filter(InterestPeriod.unit_id == unit.unit_id).count()
    if existing or unit.paid_off_at is not None:
        raise AlreadyInitializedError(
            f"Financed unit {unit.unit_id} already has interest periods, change the rate instead"
        )

    rate = to_rate(annual_rate_percent)
    basis = to_basis(principal_basis or unit.principal_basis)

    start = start_date or unit.interest_start_date
    if start < unit.interest_start_date:
        raise InvalidDateError(
            f"Start date {start} precedes the interest start date {unit.interest_start_date}"
        )

    period = _open_new_period(db, unit, start, rate, basis, note or "Initial interest period")

    if debt_amount is None:
        unit.original_debt = period.principal_amount
    else:
        debt = to_decimal(debt_amount, "debt amount")
        if debt < 0:
            raise InvalidAmountError(f"Debt amount must be >= 0, got {debt}")
        unit.original_debt = debt

    logger.info(
        "Interest initialized unit=%s start=%s rate=%s%% basis=%s principal=%s debt=%s",
        unit.unit_id, start, rate, basis.value, period.principal_amount, unit.original_debt,
    )
    return period


def change_rate(
        db: Session,
        unit: FinancedUnit,
        new_rate,
        new_basis=None,
        effective_date: Optional[date] = None,
        note: Optional[str] = None,
) -> InterestPeriod:
    _require_financing(unit)
    if unit.paid_off_at is not None:
        raise AlreadyPaidOffError(f"Debt for unit {unit.unit_id} is already paid off")

    current = open_period(db, unit)
    if unit.accrual_halted or current is None:
        raise NoOpenPeriodError(f"Financed unit {unit.unit_id} has no open interest period")

    rate = to_rate(new_rate)
    basis = to_basis(new_basis or unit.principal_basis)
    effective = effective_date or today()
    _require_after_last_payment(db, unit, effective)

    close_period(current, effective)
    db.flush()  # the closed row must land before the new open row

    period = _open_new_period(db, unit, effective, rate, basis, note)

    logger.info(
        "Interest rate changed unit=%s effective=%s closed_interest=%s new_rate=%s%% basis=%s principal=%s",
        unit.unit_id, effective, current.accrued_interest, rate, basis.value, period.principal_amount,
    )
    return period


def stop(
        db: Session,
        unit: FinancedUnit,
        note: Optional[str] = None,
        stop_date: Optional[date] = None,
) -> InterestPeriod:
    _require_financing(unit)
    if unit.paid_off_at is not None:
        raise AlreadyPaidOffError(f"Debt for unit {unit.unit_id} is already paid off")

    current = open_period(db, unit)
    if unit.accrual_halted or current is None:
        raise NoOpenPeriodError(f"Financed unit {unit.unit_id} has no open interest period")

    end = stop_date or today()
    _require_after_last_payment(db, unit, end)
    close_period(current, end)
    if note:
        current.note = f"{current.note or ''}\n[Stopped] {note}".strip()

    unit.accrual_halted = True
    unit.halted_at = datetime.now()
    db.flush()

    logger.info(
        "Interest accrual stopped unit=%s end=%s closed_interest=%s",
        unit.unit_id, current.end_date, current.accrued_interest,
    )
    return current


def resume(
        db: Session,
        unit: FinancedUnit,
        annual_rate_percent,
        principal_basis=None,
        note: Optional[str] = None,
        resume_date: Optional[date] = None,
) -> InterestPeriod:
    _require_financing(unit)
    if unit.paid_off_at is not None:
        raise AlreadyPaidOffError(f"Debt for unit {unit.unit_id} is already paid off")
    if not unit.accrual_halted:
        raise AccrualNotHaltedError(f"Interest accrual is not stopped for unit {unit.unit_id}")

    rate = to_rate(annual_rate_percent)
    basis = to_basis(principal_basis or unit.principal_basis)
    start = resume_date or today()

    previous = last_period(db, unit)
    if previous is not None and previous.end_date is not None and start < previous.end_date:
        raise InvalidDateError(
            f"Resume date {start} precedes the last period's end date {previous.end_date}"
        )

    unit.accrual_halted = False
    unit.halted_at = None
    period = _open_new_period(db, unit, start, rate, basis, note)

    logger.info(
        "Interest accrual resumed unit=%s start=%s rate=%s%% basis=%s principal=%s",
        unit.unit_id, start, rate, basis.value, period.principal_amount,
    )
    return period


def settle(db: Session, unit: FinancedUnit, settled_on: date) -> None:
    """Close accrual for good once the debt is paid off."""
    current = open_period(db, unit)
    if current is not None:
        close_period(current, settled_on)
    unit.accrual_halted = True
    unit.halted_at = datetime.now()
    unit.paid_off_at = settled_on
    db.flush()


def list_periods(db: Session, unit: FinancedUnit, as_of: Optional[date] = None) -> list:
    """Ordered period history; the open row carries its projection to as_of."""
    as_of = as_of or today()
    out = []
    for p in periods_for(db, unit):
        row = InterestPeriodOut.model_validate(p)
        if p.end_date is None:
            row.projected_days, row.projected_interest = projected_interest(p, as_of)
        out.append(row)
    return out
