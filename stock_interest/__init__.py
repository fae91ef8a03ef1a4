"""Interest accrual and debt settlement for financed dealership stock."""
