from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


class InterestPeriodOut(BaseModel):
    period_id: int
    unit_id: int

    start_date: date
    end_date: Optional[date] = None

    annual_rate_percent: Decimal
    principal_basis: str
    principal_amount: Decimal

    days_count: Optional[int] = None
    accrued_interest: Optional[Decimal] = None

    # open period only, as of the requested date
    projected_days: Optional[int] = None
    projected_interest: Optional[Decimal] = None

    note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InterestStatsOut(BaseModel):
    as_of: date
    financed_units: int
    active_accruals: int
    halted_accruals: int
    total_accrued_interest: Decimal
    average_rate: Decimal
