from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Text, ForeignKey, Index, text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from stock_interest.utils.database import Base


class InterestPeriod(Base):
    __tablename__ = "interest_periods"
    __table_args__ = (
        # at most one open period per unit
        Index(
            "uq_interest_periods_open",
            "unit_id",
            unique=True,
            postgresql_where=text("end_date IS NULL"),
            sqlite_where=text("end_date IS NULL"),
        ),
    )

    period_id = Column(Integer, primary_key=True, index=True)
    unit_id = Column(Integer, ForeignKey("financed_units.unit_id", ondelete="CASCADE"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # NULL = open

    annual_rate_percent = Column(Numeric(7, 4), nullable=False)
    principal_basis = Column(String(20), nullable=False)
    principal_amount = Column(Numeric(14, 2), nullable=False)

    # set only when the period is closed
    days_count = Column(Integer, nullable=True)
    accrued_interest = Column(Numeric(14, 2), nullable=True)

    note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    unit = relationship("FinancedUnit", back_populates="periods")

    @property
    def is_open(self):
        return self.end_date is None
