"""Unit-of-work guard for financed units.

Every mutation on a unit runs under that unit's write lock, inside one
database transaction that also holds the unit row ``FOR UPDATE``. Reads
take the same lock with shared semantics so a summary never mixes closed
periods and paid totals from different moments.

State machine::

    UNINITIALIZED --initialize--> ACTIVE
    ACTIVE --change_rate--> ACTIVE
    ACTIVE --stop--> HALTED
    HALTED --resume--> ACTIVE
    ACTIVE/HALTED --apply_payment--> (same state) or PAID_OFF

PAID_OFF is terminal.
"""

import logging
from contextlib import contextmanager
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from stock_interest.core.config import Settings, settings as default_settings
from stock_interest.core.errors import (
    AccrualNotHaltedError,
    AlreadyInitializedError,
    AlreadyPaidOffError,
    AlreadySettledError,
    NoDebtError,
    NoOpenPeriodError,
)
from stock_interest.models.financed_unit_model import FinancedUnit
from stock_interest.schemas.debt_schema import DebtSummaryOut, PaymentResult
from stock_interest.schemas.interest_schema import InterestPeriodOut
from stock_interest.services import debt_payments, debt_summary, interest_ledger
from stock_interest.utils.database import SessionLocal
from stock_interest.utils.unit_locks import UnitLockRegistry

logger = logging.getLogger(__name__)


class UnitState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    ACTIVE = "ACTIVE"
    HALTED = "HALTED"
    PAID_OFF = "PAID_OFF"


INITIALIZE = "initialize"
CHANGE_RATE = "change_rate"
STOP = "stop"
RESUME = "resume"
APPLY_PAYMENT = "apply_payment"

# operation -> states it may start from
ALLOWED = {
    INITIALIZE: {UnitState.UNINITIALIZED},
    CHANGE_RATE: {UnitState.ACTIVE},
    STOP: {UnitState.ACTIVE},
    RESUME: {UnitState.HALTED},
    APPLY_PAYMENT: {UnitState.ACTIVE, UnitState.HALTED},
}

# (operation, state) -> error; anything allowed is absent
REJECTIONS = {
    (INITIALIZE, UnitState.ACTIVE): AlreadyInitializedError,
    (INITIALIZE, UnitState.HALTED): AlreadyInitializedError,
    (INITIALIZE, UnitState.PAID_OFF): AlreadyInitializedError,
    (CHANGE_RATE, UnitState.UNINITIALIZED): NoOpenPeriodError,
    (CHANGE_RATE, UnitState.HALTED): NoOpenPeriodError,
    (CHANGE_RATE, UnitState.PAID_OFF): AlreadyPaidOffError,
    (STOP, UnitState.UNINITIALIZED): NoOpenPeriodError,
    (STOP, UnitState.HALTED): NoOpenPeriodError,
    (STOP, UnitState.PAID_OFF): AlreadyPaidOffError,
    (RESUME, UnitState.UNINITIALIZED): AccrualNotHaltedError,
    (RESUME, UnitState.ACTIVE): AccrualNotHaltedError,
    (RESUME, UnitState.PAID_OFF): AlreadyPaidOffError,
    (APPLY_PAYMENT, UnitState.UNINITIALIZED): NoDebtError,
    (APPLY_PAYMENT, UnitState.PAID_OFF): AlreadySettledError,
}


def unit_state(db: Session, unit: FinancedUnit) -> UnitState:
    if unit.paid_off_at is not None:
        return UnitState.PAID_OFF
    if unit.accrual_halted:
        return UnitState.HALTED
    if interest_ledger.open_period(db, unit) is not None:
        return UnitState.ACTIVE
    return UnitState.UNINITIALIZED


def check_transition(operation: str, state: UnitState, unit: FinancedUnit) -> None:
    if not unit.has_financing:
        raise NoDebtError(f"Financed unit {unit.unit_id} has no financing")
    if state in ALLOWED[operation]:
        return
    error = REJECTIONS[(operation, state)]
    raise error(f"Cannot {operation.replace('_', ' ')} unit {unit.unit_id} in state {state.value}")


class UnitGuard:
    """Serialized entry point for the interest engine."""

    def __init__(
            self,
            session_factory=None,
            locks: Optional[UnitLockRegistry] = None,
            settings: Settings = default_settings,
    ):
        self.session_factory = session_factory or SessionLocal
        self.settings = settings
        self.locks = locks if locks is not None else UnitLockRegistry(settings.lock_timeout)

    @contextmanager
    def _unit_of_work(self, unit_id: int, operation: str):
        with self.locks.write(unit_id):
            db = self.session_factory()
            try:
                unit = interest_ledger.get_unit(db, unit_id, for_update=True)
                before = unit_state(db, unit)
                check_transition(operation, before, unit)

                yield db, unit

                after = unit_state(db, unit)
                db.commit()
                if after is not before:
                    logger.info("Unit %s: %s -> %s via %s", unit_id, before.value, after.value, operation)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    @contextmanager
    def _snapshot(self, unit_id: int):
        with self.locks.read(unit_id):
            db = self.session_factory()
            try:
                yield db, interest_ledger.get_unit(db, unit_id)
            finally:
                db.close()

    # -------------------------------------------------
    # Mutations
    # -------------------------------------------------
    def initialize(
            self,
            unit_id: int,
            annual_rate_percent,
            principal_basis=None,
            start_date: Optional[date] = None,
            note: Optional[str] = None,
            debt_amount=None,
    ) -> InterestPeriodOut:
        with self._unit_of_work(unit_id, INITIALIZE) as (db, unit):
            period = interest_ledger.initialize(
                db, unit, annual_rate_percent, principal_basis, start_date, note, debt_amount
            )
            return InterestPeriodOut.model_validate(period)

    def change_rate(
            self,
            unit_id: int,
            new_rate,
            new_basis=None,
            effective_date: Optional[date] = None,
            note: Optional[str] = None,
    ) -> InterestPeriodOut:
        with self._unit_of_work(unit_id, CHANGE_RATE) as (db, unit):
            period = interest_ledger.change_rate(db, unit, new_rate, new_basis, effective_date, note)
            return InterestPeriodOut.model_validate(period)

    def stop(
            self,
            unit_id: int,
            note: Optional[str] = None,
            stop_date: Optional[date] = None,
    ) -> InterestPeriodOut:
        with self._unit_of_work(unit_id, STOP) as (db, unit):
            period = interest_ledger.stop(db, unit, note, stop_date)
            return InterestPeriodOut.model_validate(period)

    def resume(
            self,
            unit_id: int,
            annual_rate_percent,
            principal_basis=None,
            note: Optional[str] = None,
            resume_date: Optional[date] = None,
    ) -> InterestPeriodOut:
        with self._unit_of_work(unit_id, RESUME) as (db, unit):
            period = interest_ledger.resume(db, unit, annual_rate_percent, principal_basis, note, resume_date)
            return InterestPeriodOut.model_validate(period)

    def apply_payment(
            self,
            unit_id: int,
            amount,
            payment_date: Optional[date] = None,
            method: str = "CASH",
            reference_number: Optional[str] = None,
            note: Optional[str] = None,
    ) -> PaymentResult:
        with self._unit_of_work(unit_id, APPLY_PAYMENT) as (db, unit):
            return debt_payments.apply_payment(
                db,
                unit,
                amount,
                payment_date,
                method,
                reference_number,
                note,
                epsilon=self.settings.settlement_epsilon,
            )

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------
    def summarize(self, unit_id: int, as_of: Optional[date] = None) -> DebtSummaryOut:
        with self._snapshot(unit_id) as (db, unit):
            return debt_summary.summarize(db, unit, as_of)

    def list_periods(self, unit_id: int, as_of: Optional[date] = None) -> list:
        with self._snapshot(unit_id) as (db, unit):
            return interest_ledger.list_periods(db, unit, as_of)

    def list_payments(self, unit_id: int) -> list:
        with self._snapshot(unit_id) as (db, unit):
            return debt_payments.list_payments(db, unit)

    def state(self, unit_id: int) -> UnitState:
        with self._snapshot(unit_id) as (db, unit):
            return unit_state(db, unit)
