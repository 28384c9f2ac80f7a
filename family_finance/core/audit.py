"""
Append-only change log shared by every mutable financial entity.

Entries are written in the same session as the change itself so they commit
or roll back together.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from family_finance.core.clock import iso_z
from family_finance.core.models import AuditEntry, Expense, RecurringBill

EXPENSE = "expense"
RECURRING_BILL = "recurring_bill"


def expense_snapshot(expense: Expense) -> Dict:
    return {
        "category": expense.category,
        "amount": expense.amount,
        "due_date": iso_z(expense.due_date),
        "notes": expense.notes,
        "image_url": expense.image_url,
    }


def bill_snapshot(bill: RecurringBill) -> Dict:
    return {
        "name": bill.name,
        "amount": bill.amount,
        "day_of_month": bill.day_of_month,
        "frequency": bill.frequency,
        "next_due_date": iso_z(bill.next_due_date),
    }


def record_change(
    db: Session,
    entity_type: str,
    entity_id: int,
    action: str,
    changed_by: Optional[int],
    at: datetime,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
) -> AuditEntry:
    entry = AuditEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        changed_by=changed_by,
        old_values=old_values,
        new_values=new_values,
        created_at=at,
    )
    db.add(entry)
    return entry


def history(db: Session, entity_type: str, entity_id: int) -> List[AuditEntry]:
    return (
        db.query(AuditEntry)
        .filter(AuditEntry.entity_type == entity_type, AuditEntry.entity_id == entity_id)
        .order_by(AuditEntry.created_at.asc(), AuditEntry.id.asc())
        .all()
    )
