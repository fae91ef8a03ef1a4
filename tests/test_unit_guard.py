"""Tests for the unit-of-work guard: state machine, transactions and locking."""

from datetime import date
from decimal import Decimal

import pytest

from stock_interest.core.errors import (
    AccrualNotHaltedError,
    AlreadyInitializedError,
    AlreadyPaidOffError,
    AlreadySettledError,
    InvalidDateError,
    LockContentionError,
    NoDebtError,
    NoOpenPeriodError,
    UnitNotFoundError,
)
from stock_interest.services import interest_ledger
from stock_interest.services.unit_guard import UnitState


@pytest.fixture
def unit_id(make_unit) -> int:
    return make_unit().unit_id


class TestStateMachine:
    """Allowed and rejected transitions."""

    def test_lifecycle(self, guard, unit_id) -> None:
        assert guard.state(unit_id) is UnitState.UNINITIALIZED

        guard.initialize(unit_id, Decimal("7.5"))
        assert guard.state(unit_id) is UnitState.ACTIVE

        guard.change_rate(unit_id, Decimal("8"), effective_date=date(2025, 2, 1))
        assert guard.state(unit_id) is UnitState.ACTIVE

        guard.stop(unit_id, stop_date=date(2025, 3, 1))
        assert guard.state(unit_id) is UnitState.HALTED

        guard.resume(unit_id, Decimal("8"), resume_date=date(2025, 3, 15))
        assert guard.state(unit_id) is UnitState.ACTIVE

        payoff = guard.summarize(unit_id, as_of=date(2025, 4, 1)).total_payoff_amount
        result = guard.apply_payment(unit_id, payoff, date(2025, 4, 1))
        assert result.settled_by_this_payment is True
        assert guard.state(unit_id) is UnitState.PAID_OFF

    def test_uninitialized_rejections(self, guard, unit_id) -> None:
        with pytest.raises(NoOpenPeriodError):
            guard.change_rate(unit_id, 6)
        with pytest.raises(NoOpenPeriodError):
            guard.stop(unit_id)
        with pytest.raises(AccrualNotHaltedError):
            guard.resume(unit_id, 6)
        with pytest.raises(NoDebtError):
            guard.apply_payment(unit_id, "100.00", date(2025, 2, 1))

    def test_active_rejections(self, guard, unit_id) -> None:
        guard.initialize(unit_id, 5)
        with pytest.raises(AlreadyInitializedError):
            guard.initialize(unit_id, 5)
        with pytest.raises(AccrualNotHaltedError):
            guard.resume(unit_id, 6)

    def test_halted_rejections_but_payments_allowed(self, guard, unit_id) -> None:
        guard.initialize(unit_id, Decimal("7.5"))
        guard.stop(unit_id, stop_date=date(2025, 4, 1))
        with pytest.raises(NoOpenPeriodError):
            guard.change_rate(unit_id, 6)
        with pytest.raises(NoOpenPeriodError):
            guard.stop(unit_id)

        result = guard.apply_payment(unit_id, "1000.00", date(2025, 4, 5))
        assert result.payment.interest_portion == Decimal("1000.00")
        assert guard.state(unit_id) is UnitState.HALTED

    def test_paid_off_is_terminal(self, guard, unit_id) -> None:
        guard.initialize(unit_id, Decimal("7.5"))
        guard.apply_payment(unit_id, "1018493.15", date(2025, 4, 1))

        with pytest.raises(AlreadyPaidOffError):
            guard.change_rate(unit_id, 6)
        with pytest.raises(AlreadyPaidOffError):
            guard.stop(unit_id)
        with pytest.raises(AlreadyPaidOffError):
            guard.resume(unit_id, 6)
        with pytest.raises(AlreadyInitializedError):
            guard.initialize(unit_id, 6)
        with pytest.raises(AlreadySettledError):
            guard.apply_payment(unit_id, "1.00", date(2025, 5, 1))

        for as_of in (date(2025, 4, 1), date(2026, 1, 1), date(2030, 12, 31)):
            summary = guard.summarize(unit_id, as_of=as_of)
            assert summary.outstanding_interest == Decimal("0.00")
            assert summary.remaining_principal == Decimal("0.00")

    def test_no_financing_rejects_everything(self, guard, make_unit) -> None:
        unit_id = make_unit(has_financing=False).unit_id
        with pytest.raises(NoDebtError):
            guard.initialize(unit_id, 5)
        with pytest.raises(NoDebtError):
            guard.apply_payment(unit_id, "1.00", date(2025, 2, 1))

    def test_unknown_unit(self, guard) -> None:
        with pytest.raises(UnitNotFoundError):
            guard.initialize(9999, 5)
        with pytest.raises(UnitNotFoundError):
            guard.summarize(9999)


class TestTransactions:
    """Each mutation commits whole or not at all."""

    def test_committed_changes_visible_to_new_sessions(self, guard, unit_id) -> None:
        guard.initialize(unit_id, Decimal("7.5"))
        guard.change_rate(unit_id, Decimal("9.0"), effective_date=date(2025, 4, 1))
        periods = guard.list_periods(unit_id, as_of=date(2025, 7, 1))
        assert [p.annual_rate_percent for p in periods] == [Decimal("7.5"), Decimal("9")]
        assert periods[0].accrued_interest == Decimal("18493.15")
        assert periods[1].projected_interest == Decimal("22438.36")

    def test_failed_operation_rolls_back(self, guard, unit_id) -> None:
        guard.initialize(unit_id, Decimal("7.5"), start_date=date(2025, 3, 1))
        with pytest.raises(InvalidDateError):
            guard.change_rate(unit_id, 9, effective_date=date(2025, 2, 1))
        periods = guard.list_periods(unit_id)
        assert len(periods) == 1
        assert periods[0].end_date is None

    def test_payment_rolled_back_when_settlement_fails(self, guard, unit_id, monkeypatch) -> None:
        guard.initialize(unit_id, Decimal("7.5"))

        def broken_settle(db, unit, settled_on):
            raise RuntimeError("disk full")

        monkeypatch.setattr(interest_ledger, "settle", broken_settle)
        with pytest.raises(RuntimeError):
            guard.apply_payment(unit_id, "1018493.15", date(2025, 4, 1))

        assert guard.list_payments(unit_id) == []
        summary = guard.summarize(unit_id, as_of=date(2025, 4, 1))
        assert summary.paid_interest == Decimal("0")
        assert summary.paid_principal == Decimal("0")
        assert summary.status.value == "ACTIVE"


class TestLocking:
    """Per-unit serialization."""

    def test_busy_unit_raises_contention(self, guard, unit_id) -> None:
        guard.initialize(unit_id, 5)
        with guard.locks.write(unit_id):
            with pytest.raises(LockContentionError) as exc:
                guard.apply_payment(unit_id, "10.00", date(2025, 2, 1))
        assert exc.value.retryable is True
        assert guard.list_payments(unit_id) == []

    def test_reader_waits_for_writer(self, guard, unit_id) -> None:
        guard.initialize(unit_id, 5)
        with guard.locks.write(unit_id):
            with pytest.raises(LockContentionError):
                guard.summarize(unit_id)

    def test_readers_do_not_block_each_other(self, guard, unit_id) -> None:
        guard.initialize(unit_id, 5)
        with guard.locks.read(unit_id):
            assert guard.summarize(unit_id, as_of=date(2025, 1, 1)).status.value == "ACTIVE"

    def test_other_units_unaffected(self, guard, make_unit) -> None:
        busy = make_unit().unit_id
        free = make_unit().unit_id
        with guard.locks.write(busy):
            guard.initialize(free, 5)
            assert guard.state(free) is UnitState.ACTIVE

    def test_lock_released_after_error(self, guard, unit_id) -> None:
        with pytest.raises(NoOpenPeriodError):
            guard.stop(unit_id)
        guard.initialize(unit_id, 5)
        assert guard.state(unit_id) is UnitState.ACTIVE


class TestOutstandingInterest:
    """Outstanding interest never goes negative, whatever the mutation order."""

    def test_backdated_mutations_after_payments(self, guard, unit_id) -> None:
        def check(as_of):
            summary = guard.summarize(unit_id, as_of=as_of)
            assert summary.outstanding_interest >= 0
            assert summary.total_payoff_amount >= summary.remaining_principal

        guard.initialize(unit_id, Decimal("7.5"))
        guard.apply_payment(unit_id, "18493.15", date(2025, 4, 1))
        check(date(2025, 4, 1))

        with pytest.raises(InvalidDateError):
            guard.change_rate(unit_id, 0, effective_date=date(2025, 2, 1))
        with pytest.raises(InvalidDateError):
            guard.stop(unit_id, stop_date=date(2025, 1, 15))
        check(date(2025, 4, 1))

        guard.change_rate(unit_id, 9, effective_date=date(2025, 5, 1))
        guard.apply_payment(unit_id, "500000.00", date(2025, 6, 1))
        check(date(2025, 6, 1))

        with pytest.raises(InvalidDateError):
            guard.stop(unit_id, stop_date=date(2025, 5, 15))
        guard.stop(unit_id, stop_date=date(2025, 6, 1))
        check(date(2025, 7, 1))

        guard.resume(unit_id, 8, resume_date=date(2025, 7, 1))
        check(date(2025, 8, 1))

        payoff = guard.summarize(unit_id, as_of=date(2025, 8, 1)).total_payoff_amount
        result = guard.apply_payment(unit_id, payoff, date(2025, 8, 1))
        assert result.settled_by_this_payment is True
        check(date(2026, 1, 1))
