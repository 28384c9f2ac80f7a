import logging
from datetime import datetime
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from family_finance.core.models import Expense, Income, RecurringBill
from family_finance.planning.overview import IncomeRecord
from family_finance.planning.projection import ExpenseRecord, Frequency, RecurringBillDef

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """The underlying database could not be read."""


def to_bill_def(bill: RecurringBill) -> RecurringBillDef:
    return RecurringBillDef(
        id=bill.id,
        name=bill.name,
        amount=bill.amount,
        day_of_month=bill.day_of_month,
        frequency=Frequency(bill.frequency),
        next_due_date=bill.next_due_date,
        created_by=bill.created_by,
    )


def to_expense_record(expense: Expense) -> ExpenseRecord:
    return ExpenseRecord(
        id=expense.id,
        category=expense.category,
        amount=expense.amount,
        due_date=expense.due_date,
        notes=expense.notes,
        created_by=expense.created_by,
        image_url=expense.image_url,
    )


class RecordStore:
    """Read side used by the dashboard.  Either returns everything or raises."""

    def __init__(self, db: Session):
        self._db = db

    def find_recurring_bills(self) -> List[RecurringBillDef]:
        try:
            rows = (
                self._db.query(RecurringBill)
                .options(joinedload(RecurringBill.created_by))
                .order_by(RecurringBill.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to load recurring bills")
            raise RecordStoreError("recurring bills unavailable") from exc
        return [to_bill_def(b) for b in rows]

    def find_expenses_due_between(self, start: datetime, end: datetime) -> List[ExpenseRecord]:
        """Active expenses with start <= due_date <= end, by due date."""
        try:
            rows = (
                self._db.query(Expense)
                .options(joinedload(Expense.created_by))
                .filter(
                    Expense.due_date >= start,
                    Expense.due_date <= end,
                    Expense.deleted_at.is_(None),
                )
                .order_by(Expense.due_date.asc(), Expense.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to load expenses due %s..%s", start, end)
            raise RecordStoreError("expenses unavailable") from exc
        return [to_expense_record(e) for e in rows]

    def find_incomes_received_between(self, start: datetime, end: datetime) -> List[IncomeRecord]:
        try:
            rows = (
                self._db.query(Income)
                .filter(Income.received_date >= start, Income.received_date <= end)
                .all()
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to load incomes %s..%s", start, end)
            raise RecordStoreError("incomes unavailable") from exc
        return [IncomeRecord(source=i.source, amount=i.amount, received_date=i.received_date) for i in rows]
