from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Text, ForeignKey
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from stock_interest.utils.database import Base


class DebtPayment(Base):
    __tablename__ = "debt_payments"

    payment_id = Column(Integer, primary_key=True, index=True)
    unit_id = Column(Integer, ForeignKey("financed_units.unit_id"), nullable=False, index=True)

    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

    method = Column(String(20), nullable=False, default="CASH")
    reference_number = Column(String(50), nullable=True)
    note = Column(Text, nullable=True)

    interest_portion = Column(Numeric(14, 2), nullable=False, default=0)
    principal_portion = Column(Numeric(14, 2), nullable=False, default=0)
    remaining_principal_after = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    unit = relationship("FinancedUnit", back_populates="payments")
