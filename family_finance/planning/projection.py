"""
Upcoming bill projection.

Turns recurring bill rules plus already-dated one-off expenses into a short,
sorted list of what falls due in the next few weeks.  Pure computation: the
caller supplies "now" and the records, nothing is read or written here.

Date stepping follows "set the day of month, let overflow roll into the next
month": day 31 in April lands on May 1.  Pass ``month_end="clamp"`` to pin to
the last day of the month instead.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional, Sequence, Union

from dateutil.relativedelta import relativedelta

from family_finance.core.clock import iso_z

RECURRING_PREFIX = "recurring-"
MAX_ID = 2 ** 63 - 1

OVERFLOW = "overflow"
CLAMP = "clamp"
MONTH_END_POLICIES = (OVERFLOW, CLAMP)


class Frequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    ONE_TIME = "ONE_TIME"


MONTH_STEPS = {
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


@dataclass(frozen=True)
class RecurringBillDef:
    id: int
    name: str
    amount: float
    day_of_month: int
    frequency: Frequency
    next_due_date: datetime  # anchor
    created_by: Any = None


@dataclass(frozen=True)
class ExpenseRecord:
    id: int
    category: str
    amount: float
    due_date: datetime
    notes: Optional[str] = None
    created_by: Any = None
    image_url: Optional[str] = None


# -------------------------
# Origin of a projected item
# -------------------------
@dataclass(frozen=True)
class AdHoc:
    expense_id: int


@dataclass(frozen=True)
class Recurring:
    bill_id: int
    occurrence: Optional[datetime] = None  # None for one-time bills


Origin = Union[AdHoc, Recurring]


def encode_origin(origin: Origin) -> str:
    if isinstance(origin, AdHoc):
        return str(origin.expense_id)
    if origin.occurrence is None:
        return f"{RECURRING_PREFIX}{origin.bill_id}"
    return f"{RECURRING_PREFIX}{origin.bill_id}-{iso_z(origin.occurrence)}"


def _parse_id(raw: str, item_id: str) -> int:
    # ids are 64-bit database integers
    if not raw.isdigit() or int(raw) > MAX_ID:
        raise ValueError(f"Malformed item id: {item_id!r}")
    return int(raw)


def decode_origin(item_id: str) -> Origin:
    """
    Inverse of encode_origin.  The bill id never contains a hyphen, so the
    first hyphen after the prefix separates it from the ISO timestamp.
    """
    if not item_id.startswith(RECURRING_PREFIX):
        return AdHoc(_parse_id(item_id, item_id))

    bill_part, _, stamp = item_id[len(RECURRING_PREFIX):].partition("-")
    bill_id = _parse_id(bill_part, item_id)
    if not stamp:
        return Recurring(bill_id)

    if not stamp.endswith("Z"):
        raise ValueError(f"Malformed item id: {item_id!r}")
    try:
        occurrence = datetime.strptime(stamp[:-1], "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        raise ValueError(f"Malformed item id: {item_id!r}")
    return Recurring(bill_id, occurrence)


@dataclass(frozen=True)
class ProjectedDueItem:
    origin: Origin
    label: str
    amount: float
    due_date: datetime
    notes: Optional[str] = None
    created_by: Any = None

    @property
    def id(self) -> str:
        return encode_origin(self.origin)


# -------------------------
# Calendar stepping
# -------------------------
def set_day(value: datetime, day: int, month_end: str = OVERFLOW) -> datetime:
    if month_end == CLAMP:
        return value + relativedelta(day=day)
    return value + relativedelta(day=1) + timedelta(days=day - 1)


def add_months(value: datetime, months: int, month_end: str = OVERFLOW) -> datetime:
    """Move by whole months keeping the day; an out-of-range day rolls or clamps."""
    if month_end == CLAMP:
        return value + relativedelta(months=months)
    return value + relativedelta(months=months, day=1) + timedelta(days=value.day - 1)


def next_occurrence(
    bill: RecurringBillDef,
    now: datetime,
    window_end: datetime,
    month_end: str = OVERFLOW,
) -> Optional[datetime]:
    """First occurrence of ``bill`` at or after ``now``, or None if outside the window."""
    frequency = Frequency(bill.frequency)

    if frequency is Frequency.ONE_TIME:
        candidate = bill.next_due_date
        if candidate < now:
            return None

    elif frequency is Frequency.MONTHLY:
        candidate = set_day(now, bill.day_of_month, month_end)
        if candidate < now:
            candidate = set_day(add_months(candidate, 1, month_end), bill.day_of_month, month_end)

    else:
        step = MONTH_STEPS[frequency]
        candidate = bill.next_due_date
        while candidate < now:
            candidate = set_day(add_months(candidate, step, month_end), bill.day_of_month, month_end)

    if candidate > window_end:
        return None
    return candidate


def project(
    now: datetime,
    recurring_bills: Sequence[RecurringBillDef],
    active_expenses: Sequence[ExpenseRecord],
    window_days: int = 30,
    limit: int = 10,
    month_end: str = OVERFLOW,
) -> List[ProjectedDueItem]:
    """
    Merge ad-hoc expenses (already filtered to the window by the caller) with
    at most one occurrence per recurring bill, sorted by due date and cut to
    ``limit``.  Expenses come first on equal due dates.
    """
    if month_end not in MONTH_END_POLICIES:
        raise ValueError(f"Unknown month-end policy: {month_end!r}")

    window_end = now + timedelta(days=window_days)

    items = [
        ProjectedDueItem(
            origin=AdHoc(e.id),
            label=e.category,
            amount=e.amount,
            due_date=e.due_date,
            notes=e.notes,
            created_by=e.created_by,
        )
        for e in active_expenses
    ]

    for bill in recurring_bills:
        due = next_occurrence(bill, now, window_end, month_end)
        if due is None:
            continue
        occurrence = None if Frequency(bill.frequency) is Frequency.ONE_TIME else due
        items.append(
            ProjectedDueItem(
                origin=Recurring(bill.id, occurrence),
                label=bill.name,
                amount=bill.amount,
                due_date=due,
                created_by=bill.created_by,
            )
        )

    # sorted() is stable
    return sorted(items, key=lambda item: item.due_date)[:limit]
