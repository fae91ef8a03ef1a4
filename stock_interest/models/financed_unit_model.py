# stock_interest/models/financed_unit_model.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Numeric,
    Boolean,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from stock_interest.utils.database import Base


class FinancedUnit(Base):
    __tablename__ = "financed_units"

    __table_args__ = (
        Index("ix_financed_units_financing", "has_financing", "accrual_halted"),
    )

    unit_id = Column(Integer, primary_key=True, index=True)
    stock_no = Column(String(50), unique=True, nullable=True)
    finance_provider = Column(String(100), nullable=True)

    # cost fields supplied by stock management
    base_cost = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    transport_cost = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    accessory_cost = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    other_costs = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")

    # BASE_COST_ONLY / TOTAL_COST
    principal_basis = Column(String(20), nullable=False, default="BASE_COST_ONLY", server_default="BASE_COST_ONLY")

    # earlier of order date / arrival date
    interest_start_date = Column(Date, nullable=False)
    has_financing = Column(Boolean, nullable=False, default=True, server_default="true")

    accrual_halted = Column(Boolean, nullable=False, default=False, server_default="false")
    halted_at = Column(DateTime, nullable=True)

    # debt state owned by the engine
    original_debt = Column(Numeric(14, 2), nullable=True)
    paid_principal = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    paid_interest = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    paid_off_at = Column(Date, nullable=True)

    created_on = Column(DateTime, server_default=func.now(), nullable=True)
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())

    periods = relationship(
        "InterestPeriod",
        back_populates="unit",
        cascade="all, delete-orphan",
        order_by="[InterestPeriod.start_date, InterestPeriod.period_id]",
        lazy="selectin",
        passive_deletes=True,
    )
    payments = relationship(
        "DebtPayment",
        back_populates="unit",
        order_by="[DebtPayment.payment_date, DebtPayment.payment_id]",
    )

    @property
    def total_cost(self):
        return (
            (self.base_cost or 0)
            + (self.transport_cost or 0)
            + (self.accessory_cost or 0)
            + (self.other_costs or 0)
        )
