from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List


class DebtStatus(str, Enum):
    NO_DEBT = "NO_DEBT"
    ACTIVE = "ACTIVE"
    PAID_OFF = "PAID_OFF"


class DebtSummaryOut(BaseModel):
    unit_id: int
    as_of: date

    original_debt: Decimal
    paid_principal: Decimal
    remaining_principal: Decimal

    paid_interest: Decimal
    outstanding_interest: Decimal
    lifetime_accrued_interest: Decimal

    current_rate: Decimal
    status: DebtStatus
    total_payoff_amount: Decimal
    paid_off_at: Optional[date] = None


class DebtPaymentOut(BaseModel):
    payment_id: int
    unit_id: int
    payment_date: date
    amount: Decimal
    method: str
    reference_number: Optional[str] = None
    note: Optional[str] = None

    interest_portion: Decimal
    principal_portion: Decimal
    remaining_principal_after: Decimal

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    payment: DebtPaymentOut
    summary: DebtSummaryOut
    settled_by_this_payment: bool


class OutstandingDebtsOut(BaseModel):
    data: List[DebtSummaryOut]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class DebtStatsOut(BaseModel):
    as_of: date
    units_no_debt: int
    units_active: int
    units_paid_off: int

    total_original_debt: Decimal
    total_paid_principal: Decimal
    total_paid_interest: Decimal
    total_remaining_principal: Decimal
    total_outstanding_interest: Decimal
