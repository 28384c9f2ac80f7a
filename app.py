import logging
import time
from datetime import timedelta
from typing import List

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from family_finance.core import config
from family_finance.core.audit import (
    EXPENSE, RECURRING_BILL, bill_snapshot, expense_snapshot, history, record_change,
)
from family_finance.core.clock import Clock
from family_finance.core.database import Base, engine
from family_finance.core.deps import (
    forbid_view_only, get_clock, get_current_user, get_db, require_admin,
)
from family_finance.core.models import (
    Expense, Income, Notification, NotificationRecipient, RecurringBill, User,
)
from family_finance.core.schemas import (
    AuditEntryOut,
    ExpenseIn, ExpenseOut, ExpensePatch,
    IncomeIn, IncomeOut,
    LoginIn, MemberOut, ProfileIn, RegisterIn, Role, RoleIn, TokenOut,
    NotificationIn, NotificationOut, NotificationPatch,
    OverviewOut, RecurringBillIn, RecurringBillOut, UpcomingBillOut,
)
from family_finance.core.security import create_token, hash_password, token_max_age, verify_password
from family_finance.core.store import RecordStore, RecordStoreError
from family_finance.planning.overview import build_overview, month_bounds
from family_finance.planning.projection import AdHoc, ProjectedDueItem, decode_origin, project

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("family_finance")

app = FastAPI(title="Family Finance")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CLIENT_APP_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)


@app.middleware("http")
async def access_log(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - started) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed)
    return response


@app.exception_handler(RecordStoreError)
def store_unavailable(_request: Request, exc: RecordStoreError):
    return JSONResponse(status_code=503, content={"detail": "Data store unavailable"})


@app.exception_handler(Exception)
def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


def _notification_out(n: Notification) -> NotificationOut:
    return NotificationOut(
        id=n.id,
        message=n.message,
        created_at=n.created_at,
        sender=MemberOut.model_validate(n.sender),
        recipient_ids=[r.user_id for r in n.recipients],
    )


def _upcoming_out(item: ProjectedDueItem) -> UpcomingBillOut:
    return UpcomingBillOut(
        id=item.id,
        category=item.label,
        amount=item.amount,
        due_date=item.due_date,
        notes=item.notes,
        created_by=MemberOut.model_validate(item.created_by) if item.created_by else None,
    )


def _get_or_404(db: Session, model, obj_id: int, label: str):
    obj = db.query(model).filter(model.id == obj_id).first()
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


# -------------------------
# Auth
# -------------------------
@app.post("/api/auth/register", response_model=MemberOut, status_code=201)
def register(body: RegisterIn, db: Session = Depends(get_db)):
    email = body.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="Email already registered")

    role = body.role
    if role is None:
        role = Role.ADMIN if db.query(User).count() == 0 else Role.MEMBER
    role = Role(role).value

    user = User(
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        relationship=body.relationship.strip(),
        role=role,
        can_delete=role == Role.ADMIN.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered member %s as %s", user.id, user.role)
    return user

@app.post("/api/auth/login", response_model=TokenOut)
def login(body: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_token(user.id)
    response.set_cookie(
        config.COOKIE_NAME,
        token,
        max_age=token_max_age(),
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="none" if config.COOKIE_SECURE else "lax",
    )
    return TokenOut(access_token=token, user=MemberOut.model_validate(user))

@app.post("/api/auth/logout", response_model=dict)
def logout(response: Response):
    response.delete_cookie(
        config.COOKIE_NAME,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="none" if config.COOKIE_SECURE else "lax",
    )
    return {"ok": True}

@app.get("/api/auth/me", response_model=MemberOut)
def me(user: User = Depends(get_current_user)):
    return user

@app.put("/api/auth/profile", response_model=MemberOut)
def update_profile(
    body: ProfileIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user.name = body.name.strip()
    db.commit()
    db.refresh(user)
    return user

# -------------------------
# Members
# -------------------------
@app.get("/api/members", response_model=List[MemberOut])
def list_members(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return db.query(User).order_by(User.name.asc(), User.id.asc()).all()

@app.put("/api/members/{member_id}/role", response_model=MemberOut)
def update_member_role(
    member_id: int,
    body: RoleIn,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if member_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot change your own role")

    member = _get_or_404(db, User, member_id, "User")
    member.role = body.role
    db.commit()
    db.refresh(member)
    logger.info("Member %s role set to %s by %s", member.id, member.role, admin.id)
    return member

@app.delete("/api/members/{member_id}", response_model=dict)
def delete_member(
    member_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if member_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    member = _get_or_404(db, User, member_id, "User")

    # notifications the member sent, with their recipient rows
    sent_ids = [row.id for row in db.query(Notification.id).filter(Notification.sender_id == member_id)]
    if sent_ids:
        db.query(NotificationRecipient).filter(
            NotificationRecipient.notification_id.in_(sent_ids)
        ).delete(synchronize_session=False)
        db.query(Notification).filter(Notification.id.in_(sent_ids)).delete(synchronize_session=False)

    db.query(NotificationRecipient).filter(
        NotificationRecipient.user_id == member_id
    ).delete(synchronize_session=False)

    # financial records outlive their author
    for model in (Expense, Income, RecurringBill):
        db.query(model).filter(model.created_by_id == member_id).update(
            {model.created_by_id: None}, synchronize_session=False
        )

    db.delete(member)
    db.commit()
    logger.info("Member %s deleted by %s", member_id, admin.id)
    return {"ok": True, "deleted": member_id}

# -------------------------
# Expenses
# -------------------------
@app.get("/api/expenses", response_model=List[ExpenseOut])
def list_expenses(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(Expense)
        .filter(Expense.deleted_at.is_(None))
        .order_by(Expense.due_date.asc(), Expense.id.asc())
        .all()
    )

@app.get("/api/expenses/deleted", response_model=List[ExpenseOut])
def list_deleted_expenses(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return (
        db.query(Expense)
        .filter(Expense.deleted_at.isnot(None))
        .order_by(Expense.deleted_at.desc(), Expense.id.desc())
        .all()
    )

@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    body: ExpenseIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    forbid_view_only(user, "add expenses")

    expense = Expense(
        category=body.category,
        amount=body.amount,
        due_date=body.due_date,
        notes=body.notes or None,
        image_url=body.image_url,
        created_by_id=user.id,
    )
    db.add(expense)
    db.flush()
    record_change(db, EXPENSE, expense.id, "CREATE", user.id, clock.now(),
                  new_values=expense_snapshot(expense))
    db.commit()
    db.refresh(expense)
    return expense

@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    body: ExpensePatch,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    expense = _get_or_404(db, Expense, expense_id, "Expense")
    if expense.deleted_at is not None:
        raise HTTPException(status_code=410, detail="Expense has been deleted")
    if user.role != "ADMIN" and expense.created_by_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed to edit this expense")

    changes = body.model_dump(exclude_unset=True)
    for required in ("category", "amount", "due_date"):
        if changes.get(required, 0) is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be null")
    if "notes" in changes:
        changes["notes"] = changes["notes"] or None

    old_values = expense_snapshot(expense)
    for field, value in changes.items():
        setattr(expense, field, value)

    record_change(db, EXPENSE, expense.id, "UPDATE", user.id, clock.now(),
                  old_values=old_values, new_values=expense_snapshot(expense))
    db.commit()
    db.refresh(expense)
    return expense

@app.delete("/api/expenses/{expense_id}", response_model=dict)
def delete_expense(
    expense_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    expense = _get_or_404(db, Expense, expense_id, "Expense")
    if expense.deleted_at is not None:
        raise HTTPException(status_code=410, detail="Expense has already been deleted")
    if user.role != "ADMIN" and not user.can_delete:
        raise HTTPException(status_code=403, detail="You do not have permission to delete expenses")

    now = clock.now()
    expense.deleted_at = now
    record_change(db, EXPENSE, expense.id, "DELETE", user.id, now,
                  old_values=expense_snapshot(expense))
    db.commit()
    return {"ok": True, "deleted": expense_id}

@app.post("/api/expenses/{expense_id}/restore", response_model=ExpenseOut)
def restore_expense(
    expense_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    expense = _get_or_404(db, Expense, expense_id, "Expense")
    if expense.deleted_at is None:
        raise HTTPException(status_code=400, detail="Expense is not deleted")

    expense.deleted_at = None
    record_change(db, EXPENSE, expense.id, "RESTORE", admin.id, clock.now())
    db.commit()
    db.refresh(expense)
    return expense

@app.get("/api/expenses/{expense_id}/history", response_model=List[AuditEntryOut])
def expense_history(
    expense_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _get_or_404(db, Expense, expense_id, "Expense")
    return history(db, EXPENSE, expense_id)

# -------------------------
# Incomes
# -------------------------
@app.get("/api/incomes", response_model=List[IncomeOut])
def list_incomes(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return db.query(Income).order_by(Income.received_date.desc(), Income.id.desc()).all()

@app.post("/api/incomes", response_model=IncomeOut, status_code=201)
def create_income(
    body: IncomeIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    forbid_view_only(user, "add income")

    income = Income(
        source=body.source.strip(),
        amount=body.amount,
        received_date=body.received_date,
        created_by_id=user.id,
    )
    db.add(income)
    db.commit()
    db.refresh(income)
    return income

@app.delete("/api/incomes/{income_id}", response_model=dict)
def delete_income(
    income_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    income = _get_or_404(db, Income, income_id, "Income")
    if user.role != "ADMIN" and income.created_by_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed to delete this income")

    db.delete(income)
    db.commit()
    return {"ok": True, "deleted": income_id}

# -------------------------
# Recurring bills
# -------------------------
@app.get("/api/recurring-bills", response_model=List[RecurringBillOut])
def list_recurring_bills(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(RecurringBill)
        .order_by(RecurringBill.next_due_date.asc(), RecurringBill.id.asc())
        .all()
    )

@app.post("/api/recurring-bills", response_model=RecurringBillOut, status_code=201)
def create_recurring_bill(
    body: RecurringBillIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    forbid_view_only(user, "add recurring bills")

    bill = RecurringBill(
        name=body.name.strip(),
        amount=body.amount,
        day_of_month=body.first_due_date.day,
        frequency=body.frequency,
        next_due_date=body.first_due_date,
        created_by_id=user.id,
    )
    db.add(bill)
    db.flush()
    record_change(db, RECURRING_BILL, bill.id, "CREATE", user.id, clock.now(),
                  new_values=bill_snapshot(bill))
    db.commit()
    db.refresh(bill)
    return bill

@app.put("/api/recurring-bills/{bill_id}", response_model=RecurringBillOut)
def update_recurring_bill(
    bill_id: int,
    body: RecurringBillIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    bill = _get_or_404(db, RecurringBill, bill_id, "Recurring bill")
    if (
        config.RESTRICT_RECURRING_BILL_EDITS
        and user.role != "ADMIN"
        and bill.created_by_id != user.id
    ):
        raise HTTPException(status_code=403, detail="Not allowed to edit this bill")

    old_values = bill_snapshot(bill)
    bill.name = body.name.strip()
    bill.amount = body.amount
    bill.day_of_month = body.first_due_date.day
    bill.frequency = body.frequency
    bill.next_due_date = body.first_due_date

    record_change(db, RECURRING_BILL, bill.id, "UPDATE", user.id, clock.now(),
                  old_values=old_values, new_values=bill_snapshot(bill))
    db.commit()
    db.refresh(bill)
    return bill

@app.delete("/api/recurring-bills/{bill_id}", response_model=dict)
def delete_recurring_bill(
    bill_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    bill = _get_or_404(db, RecurringBill, bill_id, "Recurring bill")
    if user.role != "ADMIN" and bill.created_by_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed to delete this bill")

    record_change(db, RECURRING_BILL, bill.id, "DELETE", user.id, clock.now(),
                  old_values=bill_snapshot(bill))
    db.delete(bill)
    db.commit()
    return {"ok": True, "deleted": bill_id}

@app.get("/api/recurring-bills/{bill_id}/history", response_model=List[AuditEntryOut])
def recurring_bill_history(
    bill_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    # deleted bills keep their history
    entries = history(db, RECURRING_BILL, bill_id)
    if not entries:
        _get_or_404(db, RecurringBill, bill_id, "Recurring bill")
    return entries

# -------------------------
# Notifications
# -------------------------
@app.get("/api/notifications", response_model=List[NotificationOut])
def list_notifications(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = db.query(Notification).order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return [_notification_out(n) for n in rows]

@app.post("/api/notifications", response_model=NotificationOut, status_code=201)
def create_notification(
    body: NotificationIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    forbid_view_only(user, "send notifications")

    if body.recipient_ids:
        recipient_ids = list(dict.fromkeys(body.recipient_ids))
        known = {row.id for row in db.query(User.id).filter(User.id.in_(recipient_ids))}
        missing = [rid for rid in recipient_ids if rid not in known]
        if missing:
            raise HTTPException(status_code=400, detail=f"Unknown recipients: {missing}")
    else:
        recipient_ids = [row.id for row in db.query(User.id).filter(User.id != user.id).order_by(User.id)]

    notification = Notification(
        message=body.message,
        sender_id=user.id,
        recipients=[NotificationRecipient(user_id=rid) for rid in recipient_ids],
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return _notification_out(notification)

@app.put("/api/notifications/{notification_id}", response_model=NotificationOut)
def update_notification(
    notification_id: int,
    body: NotificationPatch,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = _get_or_404(db, Notification, notification_id, "Notification")
    notification.message = body.message
    db.commit()
    db.refresh(notification)
    return _notification_out(notification)

# -------------------------
# Dashboard
# -------------------------
@app.get("/api/dashboard", response_model=OverviewOut)
def dashboard(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    now = clock.now()
    store = RecordStore(db)

    # all reads first: a store failure aborts before anything is computed
    month_start, month_end = month_bounds(now)
    incomes = store.find_incomes_received_between(month_start, month_end)
    month_expenses = store.find_expenses_due_between(month_start, month_end)
    bills = store.find_recurring_bills()
    window_end = now + timedelta(days=config.UPCOMING_WINDOW_DAYS)
    upcoming_expenses = store.find_expenses_due_between(now, window_end)

    summary = build_overview(
        now,
        incomes,
        month_expenses,
        income_defaults=config.DEFAULT_INCOME_SOURCES,
        category_order=config.CATEGORY_ORDER,
    )
    upcoming = project(
        now,
        bills,
        upcoming_expenses,
        window_days=config.UPCOMING_WINDOW_DAYS,
        limit=config.UPCOMING_LIMIT,
        month_end=config.MONTH_END_POLICY,
    )
    return OverviewOut(**summary, upcoming_bills=[_upcoming_out(i) for i in upcoming])

@app.get("/api/dashboard/upcoming/{item_id}", response_model=dict)
def resolve_upcoming_item(
    item_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Map an upcoming-bill id back to the expense or recurring bill behind it."""
    try:
        origin = decode_origin(item_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if isinstance(origin, AdHoc):
        expense = _get_or_404(db, Expense, origin.expense_id, "Expense")
        if expense.deleted_at is not None:
            raise HTTPException(status_code=410, detail="Expense has been deleted")
        return {"kind": "expense", "expense": ExpenseOut.model_validate(expense).model_dump(mode="json")}

    bill = _get_or_404(db, RecurringBill, origin.bill_id, "Recurring bill")
    return {
        "kind": "recurring_bill",
        "bill": RecurringBillOut.model_validate(bill).model_dump(mode="json"),
        "occurrence": origin.occurrence.isoformat() if origin.occurrence else None,
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=4000)
