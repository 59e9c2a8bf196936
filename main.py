import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db
from errors import ConflictError, InvalidReferenceError, LedgerError
from models import Account, Budget, Category, Transaction, TransactionType, User
from money import format_amount, format_signed, parse_amount
from periods import resolve_month
from reports import (
    account_balances,
    balance,
    budget_status,
    monthly_summary,
    ranked_category_spend,
)
from schemas import (
    AccountIn,
    BudgetIn,
    BudgetPayload,
    CategoryIn,
    TransactionIn,
    TransactionPayload,
    UserIn,
)
from services import (
    AccountService,
    BudgetService,
    CategoryService,
    TransactionService,
    UserService,
)

logging.basicConfig(level=get_settings().log_level)

app = FastAPI(title="Personal Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_db()


def _http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, InvalidReferenceError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


def _amount_cents(raw: str) -> int:
    try:
        return parse_amount(raw, allow_negative=True)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _month(raw: Optional[str]):
    try:
        return resolve_month(raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _user_out(user: User) -> dict:
    return {"id": user.id, "full_name": user.full_name, "email": user.email}


def _account_out(account: Account) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type.value,
        "currency": account.currency,
    }


def _category_out(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "is_active": category.is_active,
    }


def _transaction_out(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "account_id": txn.account_id,
        "account_name": txn.account.name if txn.account else None,
        "category_id": txn.category_id,
        "category_name": txn.category.name if txn.category else None,
        "type": txn.type.value,
        "amount": format_amount(txn.amount_cents),
        "display_amount": format_signed(txn.amount_cents, txn.type),
        "date": txn.date.isoformat(),
        "merchant": txn.merchant,
        "note": txn.note,
    }


def _budget_out(budget: Budget) -> dict:
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "month": budget.month.isoformat(),
        "amount": format_amount(budget.amount_cents),
    }


def _transaction_in(payload: TransactionPayload) -> TransactionIn:
    return TransactionIn(
        account_id=payload.account_id,
        category_id=payload.category_id,
        type=payload.type,
        amount_cents=_amount_cents(payload.amount),
        date=payload.date,
        merchant=payload.merchant,
        note=payload.note,
    )


@app.post("/users", status_code=201)
def create_user(payload: UserIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).create(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    logging.info(f"user_created: user_id={user.id}")
    return _user_out(user)


@app.post("/users/{user_id}/accounts", status_code=201)
def create_account(user_id: int, payload: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db, user_id).create(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _account_out(account)


@app.post("/users/{user_id}/categories", status_code=201)
def create_category(user_id: int, payload: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db, user_id).create(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _category_out(category)


@app.post("/users/{user_id}/categories/{category_id}/deactivate")
def deactivate_category(user_id: int, category_id: int, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db, user_id).deactivate(category_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _category_out(category)


@app.post("/users/{user_id}/categories/{category_id}/activate")
def activate_category(user_id: int, category_id: int, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db, user_id).activate(category_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _category_out(category)


@app.get("/users/{user_id}/categories/lookup")
def lookup_category(
    user_id: int,
    name: str = Query(..., min_length=1, max_length=100),
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).find_by_name(name, type)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return _category_out(category)


@app.post("/users/{user_id}/transactions", status_code=201)
def add_transaction(
    user_id: int, payload: TransactionPayload, db: Session = Depends(get_db)
):
    data = _transaction_in(payload)
    try:
        txn = TransactionService(db, user_id).create(data)
    except LedgerError as exc:
        logging.info(f"transaction_rejected: user_id={user_id} reason={exc}")
        raise _http_error(exc) from exc
    logging.info(
        f"transaction_created: user_id={user_id} txn_id={txn.id} type={txn.type.value}"
    )
    return _transaction_out(txn)


@app.put("/users/{user_id}/transactions/{transaction_id}")
def update_transaction(
    user_id: int,
    transaction_id: int,
    payload: TransactionPayload,
    db: Session = Depends(get_db),
):
    data = _transaction_in(payload)
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except LedgerError as exc:
        logging.info(
            f"transaction_rejected: user_id={user_id} txn_id={transaction_id} "
            f"reason={exc}"
        )
        raise _http_error(exc) from exc
    return _transaction_out(txn)


@app.get("/users/{user_id}/transactions/recent")
def recent_transactions(
    user_id: int,
    limit: int = Query(10, ge=1, le=200),
    db: Session = Depends(get_db),
):
    txns = TransactionService(db, user_id).recent(limit=limit)
    return [_transaction_out(txn) for txn in txns]


@app.put("/users/{user_id}/budgets")
def set_budget(user_id: int, payload: BudgetPayload, db: Session = Depends(get_db)):
    data = BudgetIn(
        category_id=payload.category_id,
        month=_month(payload.month).start,
        amount_cents=_amount_cents(payload.amount),
    )
    try:
        budget = BudgetService(db, user_id).upsert(data)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    logging.info(
        f"budget_set: user_id={user_id} category_id={budget.category_id} "
        f"month={budget.month.isoformat()}"
    )
    return _budget_out(budget)


@app.get("/users/{user_id}/accounts/{account_id}/balance")
def account_balance(user_id: int, account_id: int, db: Session = Depends(get_db)):
    try:
        cents = balance(db, account_id, user_id=user_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return {"account_id": account_id, "balance": format_amount(cents)}


@app.get("/users/{user_id}/balances")
def balances(user_id: int, db: Session = Depends(get_db)):
    return [
        {
            "account_id": row.account_id,
            "account_name": row.account_name,
            "account_type": row.account_type.value,
            "currency": row.currency,
            "balance": format_amount(row.balance_cents),
        }
        for row in account_balances(db, user_id)
    ]


@app.get("/users/{user_id}/summary/monthly")
def summary_monthly(
    user_id: int,
    order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
):
    rows = monthly_summary(db, user_id, descending=order == "desc")
    return [
        {
            "month": row.month.isoformat(),
            "total_income": format_amount(row.total_income_cents),
            "total_expense": format_amount(row.total_expense_cents),
            "net_amount": format_amount(row.net_amount_cents),
        }
        for row in rows
    ]


@app.get("/users/{user_id}/summary/categories")
def summary_categories(
    user_id: int,
    month: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
):
    period = _month(month)
    rows = ranked_category_spend(db, user_id, period.start, limit=limit)
    return [
        {
            "rank": row.rank,
            "category_id": row.category_id,
            "category_name": row.category_name,
            "spend": format_amount(row.spend_cents),
        }
        for row in rows
    ]


@app.get("/users/{user_id}/budgets/status")
def summary_budget_status(
    user_id: int, month: Optional[str] = None, db: Session = Depends(get_db)
):
    period = _month(month)
    return [
        {
            "category_id": row.category_id,
            "category_name": row.category_name,
            "month": row.month.isoformat(),
            "budget": format_amount(row.budget_cents),
            "spent": format_amount(row.spent_cents),
            "variance": format_amount(row.variance_cents),
            "over_budget": row.over_budget,
        }
        for row in budget_status(db, user_id, period.start)
    ]
