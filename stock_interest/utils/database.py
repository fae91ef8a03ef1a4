from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from stock_interest.core.config import DATABASE_URL

# ---------------------
# SQLAlchemy engine / session / Base
# ---------------------
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, echo=False, future=True)
else:
    engine = create_engine(
        DATABASE_URL,
        echo=False,
        pool_pre_ping=True,  # drops dead connections automatically
        pool_size=5,
        max_overflow=10,
        future=True,
    )

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def init_db(bind=None):
    import stock_interest.models  # noqa: F401  ensure models are registered

    Base.metadata.create_all(bind=bind or engine)
