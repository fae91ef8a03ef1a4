import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

# ---------------------
# Read environment vars
# ---------------------
DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "dealership")
DB_USER = os.getenv("DB_USER", "dealership")
DB_PASS = os.getenv("DB_PASS", "")

# Fix the None / empty / "None" port issue
if not DB_PORT or str(DB_PORT).lower() == "none":
    DB_PORT = "5432"

DATABASE_URL = os.getenv(
    "STOCK_INTEREST_DATABASE_URL",
    f"postgresql+psycopg2://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

LOCK_TIMEOUT = float(os.getenv("STOCK_INTEREST_LOCK_TIMEOUT", "5"))
SETTLEMENT_EPSILON = Decimal(os.getenv("STOCK_INTEREST_SETTLEMENT_EPSILON", "0.01"))

LOG_LEVEL = os.getenv("STOCK_INTEREST_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("STOCK_INTEREST_LOG_FORMAT", "standard")


@dataclass(frozen=True)
class Settings:
    lock_timeout: float = LOCK_TIMEOUT
    settlement_epsilon: Decimal = SETTLEMENT_EPSILON


settings = Settings()
