"""
Reset the database and load a small demo household.

    python -m family_finance.seed
"""

import logging
from datetime import datetime, timedelta
from typing import Dict

from sqlalchemy.orm import Session

from family_finance.core.clock import SystemClock
from family_finance.core.database import Base, SessionLocal, engine
from family_finance.core.models import (
    AuditEntry, Expense, Income, Notification, NotificationRecipient, RecurringBill, User,
)
from family_finance.core.security import hash_password

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"


def seed(db: Session, now: datetime) -> Dict[str, int]:
    for model in (NotificationRecipient, Notification, AuditEntry, Expense, Income, RecurringBill, User):
        db.query(model).delete()

    pw_hash = hash_password(DEMO_PASSWORD)
    alex = User(name="Alex Johnson", email="alex@household.net", relationship="Power of Attorney",
                role="ADMIN", can_delete=True, password_hash=pw_hash)
    jane = User(name="Jane Doe", email="jane@household.net", relationship="Daughter",
                role="MEMBER", password_hash=pw_hash)
    michael = User(name="Michael Smith", email="michael@household.net", relationship="Caregiver",
                   role="VIEW_ONLY", password_hash=pw_hash)
    db.add_all([alex, jane, michael])
    db.flush()

    mortgage = Expense(category="Mortgage", amount=1850, due_date=now,
                       notes="Autopay on the 1st", created_by_id=alex.id)
    electricity = Expense(category="Electricity", amount=120.45, due_date=now + timedelta(days=5),
                          notes="Includes fall rate change", created_by_id=jane.id)
    therapy = Expense(category="Therapy Expenses", amount=85.0, due_date=now + timedelta(days=7),
                      notes="Co-pay for weekly session", created_by_id=jane.id)
    db.add_all([mortgage, electricity, therapy])

    db.add_all([
        Income(source="Social Security", amount=2100, received_date=now.replace(day=3), created_by_id=alex.id),
        Income(source="Pension", amount=1450, received_date=now.replace(day=10), created_by_id=alex.id),
        Income(source="Family Support", amount=950, received_date=now.replace(day=15), created_by_id=jane.id),
    ])

    db.add_all([
        RecurringBill(name="Water", amount=64.0, day_of_month=20, frequency="MONTHLY",
                      next_due_date=now.replace(day=20), created_by_id=jane.id),
        RecurringBill(name="Property Taxes", amount=2400.0, day_of_month=1, frequency="YEARLY",
                      next_due_date=now.replace(month=1, day=1), created_by_id=alex.id),
    ])

    db.add(Notification(
        message="John Doe's social security benefits end Monday, Nov 11.",
        sender_id=alex.id,
        recipients=[NotificationRecipient(user_id=uid) for uid in (jane.id, michael.id, alex.id)],
    ))

    db.commit()
    return {
        "mortgage": mortgage.id,
        "electricity": electricity.id,
        "therapy": therapy.id,
    }


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        ids = seed(db, SystemClock().now())

    for email in ("alex@household.net", "jane@household.net", "michael@household.net"):
        logger.info("login: %s / %s", email, DEMO_PASSWORD)
    logger.info("example expense ids: %s", ids)


if __name__ == "__main__":
    main()
