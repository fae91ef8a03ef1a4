"""Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database; StaticPool keeps the
single connection alive across sessions.
"""

import os

os.environ["STOCK_INTEREST_DATABASE_URL"] = "sqlite://"

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stock_interest.core.config import Settings
from stock_interest.models import FinancedUnit
from stock_interest.services.unit_guard import UnitGuard
from stock_interest.utils.database import init_db


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_unit(db):
    """Create and commit a financed unit; keyword arguments override defaults."""
    counter = {"n": 0}

    def _make(**overrides) -> FinancedUnit:
        counter["n"] += 1
        fields = dict(
            stock_no=f"STK-{counter['n']:04d}",
            finance_provider="Test Finance",
            base_cost=Decimal("1000000.00"),
            transport_cost=Decimal("0.00"),
            accessory_cost=Decimal("0.00"),
            other_costs=Decimal("0.00"),
            principal_basis="BASE_COST_ONLY",
            interest_start_date=date(2025, 1, 1),
            has_financing=True,
        )
        fields.update(overrides)
        unit = FinancedUnit(**fields)
        db.add(unit)
        db.commit()
        return unit

    return _make


@pytest.fixture
def guard(session_factory) -> UnitGuard:
    return UnitGuard(
        session_factory=session_factory,
        settings=Settings(lock_timeout=0.2, settlement_epsilon=Decimal("0.01")),
    )
