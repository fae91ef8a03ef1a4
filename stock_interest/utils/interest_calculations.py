import enum
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from stock_interest.core.errors import (
    InvalidAmountError,
    InvalidBasisError,
    InvalidDateError,
    InvalidRateError,
)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DAYS_IN_YEAR = Decimal("365")
RATE_STEP = Decimal("0.0001")


class PrincipalBasis(str, enum.Enum):
    BASE_COST_ONLY = "BASE_COST_ONLY"
    TOTAL_COST = "TOTAL_COST"


def money(x) -> Decimal:
    """Always return 2-decimal Decimal with HALF_UP rounding."""
    if x is None:
        x = 0
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(x, field: str = "amount") -> Decimal:
    """Parse a monetary input without rounding it.

    More than two fractional digits is an input error, not something to
    round away.
    """
    try:
        value = x if isinstance(x, Decimal) else Decimal(str(x))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"{field} is not a number: {x!r}")
    if not value.is_finite():
        raise InvalidAmountError(f"{field} is not a finite number: {x!r}")
    if value != value.quantize(CENT):
        raise InvalidAmountError(f"{field} has more than 2 decimal places: {value}")
    return value


def to_rate(x) -> Decimal:
    try:
        rate = x if isinstance(x, Decimal) else Decimal(str(x))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidRateError(f"annual rate is not a number: {x!r}")
    if not rate.is_finite() or rate < 0 or rate > 100:
        raise InvalidRateError(f"annual rate must be between 0 and 100 percent, got {x}")
    if rate != rate.quantize(RATE_STEP):
        raise InvalidRateError(f"annual rate has more than 4 decimal places: {rate}")
    return rate


def to_basis(x) -> PrincipalBasis:
    try:
        return PrincipalBasis(x)
    except ValueError:
        raise InvalidBasisError(f"unknown principal basis: {x!r}")


def day_count(start_date: date, end_date: date) -> int:
    """Whole days elapsed from start_date to end_date (actual/365)."""
    if end_date < start_date:
        raise InvalidDateError(f"end date {end_date} precedes start date {start_date}")
    return (end_date - start_date).days


def compute_period_interest(
        principal_amount: Decimal,
        annual_rate_percent: Decimal,
        days: int,
) -> Decimal:
    """
    SIMPLE ACTUAL/365:
      interest = principal * (rate% / 100) * days / 365

    Rounded once, HALF_UP to cents.

    Example:
      principal=1000000, rate=7.5, days=90 => 18493.15
    """
    raw = Decimal(principal_amount) * Decimal(annual_rate_percent) / Decimal("100")
    return money(raw * Decimal(int(days)) / DAYS_IN_YEAR)


def principal_for_basis(
        base_cost: Decimal,
        transport_cost: Decimal,
        accessory_cost: Decimal,
        other_costs: Decimal,
        basis: PrincipalBasis,
) -> Decimal:
    """
    BASE_COST_ONLY: base cost alone
    TOTAL_COST:     base + transport + accessories + other
    """
    if to_basis(basis) is PrincipalBasis.BASE_COST_ONLY:
        return money(base_cost)
    return money(
        Decimal(base_cost or 0)
        + Decimal(transport_cost or 0)
        + Decimal(accessory_cost or 0)
        + Decimal(other_costs or 0)
    )
