"""Errors raised by the interest accrual and debt settlement engine.

Every error is a precondition violation the caller can show to the user.
Only ``LockContentionError`` is worth retrying automatically.
"""


class InterestEngineError(Exception):
    """Base exception for all engine errors."""

    code = "INTEREST_ENGINE_ERROR"
    retryable = False


class UnitNotFoundError(InterestEngineError):
    code = "UNIT_NOT_FOUND"

    def __init__(self, unit_id):
        super().__init__(f"Financed unit not found with id: {unit_id}")
        self.unit_id = unit_id


class AlreadyInitializedError(InterestEngineError):
    code = "ALREADY_INITIALIZED"


class NoOpenPeriodError(InterestEngineError):
    code = "NO_OPEN_PERIOD"


class InvalidDateError(InterestEngineError):
    code = "INVALID_DATE"


class InvalidAmountError(InterestEngineError):
    code = "INVALID_AMOUNT"


class InvalidRateError(InterestEngineError):
    code = "INVALID_RATE"


class InvalidBasisError(InterestEngineError):
    code = "INVALID_PRINCIPAL_BASIS"


class NoDebtError(InterestEngineError):
    code = "NO_DEBT"


class AlreadySettledError(InterestEngineError):
    code = "ALREADY_SETTLED"


class AmountExceedsPayoffError(InterestEngineError):
    code = "AMOUNT_EXCEEDS_PAYOFF"

    def __init__(self, amount, payoff):
        super().__init__(f"Payment {amount} exceeds payoff amount {payoff}")
        self.amount = amount
        self.payoff = payoff


class AlreadyPaidOffError(InterestEngineError):
    code = "ALREADY_PAID_OFF"


class AccrualNotHaltedError(InterestEngineError):
    code = "ACCRUAL_NOT_HALTED"


class LedgerIntegrityError(InterestEngineError):
    """The store holds more than one open period for a unit."""

    code = "LEDGER_INTEGRITY"


class LockContentionError(InterestEngineError):
    code = "LOCK_CONTENTION"
    retryable = True

    def __init__(self, unit_id, timeout):
        super().__init__(f"Financed unit {unit_id} is busy (waited {timeout}s), retry")
        self.unit_id = unit_id
        self.timeout = timeout
