from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from family_finance.core.clock import to_naive_utc
from family_finance.planning.projection import Frequency


class Role(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEW_ONLY = "VIEW_ONLY"


class ExpenseCategory(str, Enum):
    MORTGAGE = "Mortgage"
    PROPERTY_TAXES = "Property Taxes"
    ELECTRICITY = "Electricity"
    WATER = "Water"
    GAS = "Gas"
    GROCERIES = "Groceries"
    INSURANCE = "Insurance"
    THERAPY_EXPENSES = "Therapy Expenses"


class _NaiveUtcModel(BaseModel):
    """Incoming datetimes are stored as naive UTC; enums arrive as plain values."""

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return to_naive_utc(value)
        return value


# -------------------------
# Auth / members
# -------------------------
class RegisterIn(BaseModel):
    name: str = Field(min_length=2)
    email: EmailStr
    password: str = Field(min_length=6)
    relationship: str = Field(min_length=2)
    role: Optional[Role] = None  # first member defaults to ADMIN

class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)

class ProfileIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)

class RoleIn(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    role: Role

class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    relationship: str
    role: Role
    can_delete: bool = False

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: MemberOut


# -------------------------
# Expenses
# -------------------------
class ExpenseIn(_NaiveUtcModel):
    category: ExpenseCategory
    amount: float
    due_date: datetime
    notes: Optional[str] = None
    image_url: Optional[str] = None

class ExpensePatch(_NaiveUtcModel):
    category: Optional[ExpenseCategory] = None
    amount: Optional[float] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None

class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    amount: float
    due_date: datetime
    notes: Optional[str] = None
    image_url: Optional[str] = None
    created_by: Optional[MemberOut] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# -------------------------
# Incomes
# -------------------------
class IncomeIn(_NaiveUtcModel):
    source: str = Field(min_length=2)
    amount: float
    received_date: datetime

class IncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    amount: float
    received_date: datetime
    created_by_id: Optional[int] = None
    created_at: datetime


# -------------------------
# Recurring bills
# -------------------------
class RecurringBillIn(_NaiveUtcModel):
    name: str = Field(min_length=1)
    amount: float = Field(ge=0)
    first_due_date: datetime
    frequency: Frequency

class RecurringBillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount: float
    day_of_month: int
    frequency: Frequency
    next_due_date: datetime
    created_by: Optional[MemberOut] = None
    created_at: datetime
    updated_at: datetime


# -------------------------
# Notifications
# -------------------------
class NotificationIn(BaseModel):
    message: str = Field(min_length=4)
    recipient_ids: Optional[List[int]] = None

class NotificationPatch(BaseModel):
    message: str = Field(min_length=4)

class NotificationOut(BaseModel):
    id: int
    message: str
    created_at: datetime
    sender: MemberOut
    recipient_ids: List[int]


# -------------------------
# Audit / dashboard
# -------------------------
class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: int
    action: str
    changed_by: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: datetime

class UpcomingBillOut(BaseModel):
    id: str
    category: str
    amount: float
    due_date: datetime
    notes: Optional[str] = None
    created_by: Optional[MemberOut] = None

class OverviewOut(BaseModel):
    month: str
    monthly_income: float
    income_by_source: Dict[str, float]
    total_spending: float
    net_savings: float
    spending_by_category: Dict[str, float]
    upcoming_bills: List[UpcomingBillOut]
