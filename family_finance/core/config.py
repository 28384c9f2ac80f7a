import json
import os

from dotenv import load_dotenv

from family_finance.planning.projection import MONTH_END_POLICIES

load_dotenv()


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./family_finance.db")

CLIENT_APP_URL = os.getenv("CLIENT_APP_URL", "http://localhost:3000")
COOKIE_NAME = "family_finance_token"
COOKIE_SECURE = _bool("COOKIE_SECURE", False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Upcoming bills
UPCOMING_WINDOW_DAYS = int(os.getenv("UPCOMING_WINDOW_DAYS", "30"))
UPCOMING_LIMIT = int(os.getenv("UPCOMING_LIMIT", "10"))
MONTH_END_POLICY = os.getenv("MONTH_END_POLICY", "overflow").lower()
if MONTH_END_POLICY not in MONTH_END_POLICIES:
    raise ValueError(f"MONTH_END_POLICY must be one of {MONTH_END_POLICIES}, got {MONTH_END_POLICY!r}")

# Sources assumed when nothing was recorded this month
DEFAULT_INCOME_SOURCES = json.loads(
    os.getenv("DEFAULT_INCOME_SOURCES", '{"Social Security": 1900, "401k/IRA": 0}')
)

# False: any member may edit any recurring bill
RESTRICT_RECURRING_BILL_EDITS = _bool("RESTRICT_RECURRING_BILL_EDITS", False)

CATEGORY_ORDER = [
    "Mortgage",
    "Property Taxes",
    "Electricity",
    "Water",
    "Gas",
    "Groceries",
    "Insurance",
    "Therapy Expenses",
]
