import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from stock_interest.core.config import settings
from stock_interest.core.errors import (
    AlreadySettledError,
    AmountExceedsPayoffError,
    InvalidAmountError,
    InvalidDateError,
    NoDebtError,
)
from stock_interest.models.debt_payment_model import DebtPayment
from stock_interest.models.financed_unit_model import FinancedUnit
from stock_interest.schemas.debt_schema import DebtPaymentOut, PaymentResult
from stock_interest.services import interest_ledger
from stock_interest.services.debt_summary import summarize
from stock_interest.utils.interest_calculations import ZERO, to_decimal

logger = logging.getLogger(__name__)


def _empty_to_none(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


def last_payment(db: Session, unit: FinancedUnit) -> Optional[DebtPayment]:
    return (
        db.query(DebtPayment)
        .filter(DebtPayment.unit_id == unit.unit_id)
        .order_by(DebtPayment.payment_date.desc(), DebtPayment.payment_id.desc())
        .first()
    )


def split_payment(amount: Decimal, outstanding_interest: Decimal) -> tuple:
    """Interest-first waterfall: (interest_portion, principal_portion).

    An amount equal to the outstanding interest is all interest.
    """
    interest_portion = min(amount, max(ZERO, outstanding_interest))
    return interest_portion, amount - interest_portion


# =================================================
# PAYMENTS (interest first, then principal)
# =================================================
def apply_payment(
        db: Session,
        unit: FinancedUnit,
        amount,
        payment_date: Optional[date] = None,
        method: str = "CASH",
        reference_number: Optional[str] = None,
        note: Optional[str] = None,
        epsilon: Decimal = settings.settlement_epsilon,
) -> PaymentResult:
    pay_amount = to_decimal(amount)
    if pay_amount <= 0:
        raise InvalidAmountError("Payment amount must be > 0")

    if not unit.has_financing or unit.original_debt is None:
        raise NoDebtError(f"Financed unit {unit.unit_id} has no debt to pay")
    if unit.paid_off_at is not None:
        raise AlreadySettledError(f"Debt for unit {unit.unit_id} is already paid off")

    pay_date = payment_date or interest_ledger.today()

    current = interest_ledger.open_period(db, unit)
    if current is not None and pay_date < current.start_date:
        raise InvalidDateError(
            f"Payment date {pay_date} precedes the open period's start date {current.start_date}"
        )
    previous = last_payment(db, unit)
    if previous is not None and pay_date < previous.payment_date:
        raise InvalidDateError(
            f"Payment date {pay_date} precedes the last payment dated {previous.payment_date}"
        )

    before = summarize(db, unit, as_of=pay_date)
    outstanding_interest = before.outstanding_interest
    remaining = before.remaining_principal
    payoff = remaining + outstanding_interest

    if pay_amount > payoff + epsilon:
        raise AmountExceedsPayoffError(pay_amount, payoff)

    interest_portion, principal_portion = split_payment(pay_amount, outstanding_interest)
    remaining_after = max(ZERO, remaining - principal_portion)

    payment = DebtPayment(
        unit=unit,
        payment_date=pay_date,
        amount=pay_amount,
        method=(_empty_to_none(method) or "CASH").upper(),
        reference_number=_empty_to_none(reference_number),
        note=_empty_to_none(note),
        interest_portion=interest_portion,
        principal_portion=principal_portion,
        remaining_principal_after=remaining_after,
    )
    db.add(payment)

    unit.paid_interest = Decimal(unit.paid_interest or 0) + interest_portion
    unit.paid_principal = Decimal(unit.paid_principal or 0) + principal_portion

    # A settled unit reports zero outstanding interest from then on, so settling
    # while interest is still owed would write that interest off. Principal alone
    # within epsilon is not enough.
    settled = remaining_after <= epsilon and interest_portion >= outstanding_interest
    if settled:
        interest_ledger.settle(db, unit, pay_date)
    db.flush()

    logger.info(
        "Debt payment recorded unit=%s date=%s amount=%s interest=%s principal=%s remaining=%s settled=%s",
        unit.unit_id, pay_date, pay_amount, interest_portion, principal_portion, remaining_after, settled,
    )

    return PaymentResult(
        payment=DebtPaymentOut.model_validate(payment),
        summary=summarize(db, unit, as_of=pay_date),
        settled_by_this_payment=settled,
    )


def list_payments(db: Session, unit: FinancedUnit) -> list:
    rows = (
        db.query(DebtPayment)
        .filter(DebtPayment.unit_id == unit.unit_id)
        .order_by(DebtPayment.payment_date.asc(), DebtPayment.payment_id.asc())
        .all()
    )
    return [DebtPaymentOut.model_validate(r) for r in rows]
