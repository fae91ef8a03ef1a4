# Automatically load all models so metadata knows them
from stock_interest.models.financed_unit_model import FinancedUnit
from stock_interest.models.interest_period_model import InterestPeriod
from stock_interest.models.debt_payment_model import DebtPayment
