from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from errors import ConflictError, InvalidReferenceError, ValidationError
from guard import check_category_type
from models import (
    Account,
    Budget,
    Category,
    Transaction,
    TransactionType,
    User,
)
from periods import month_start
from schemas import AccountIn, BudgetIn, CategoryIn, TransactionIn, UserIn

logger = logging.getLogger(__name__)

# decimal(12,2)
MAX_AMOUNT_CENTS = 999_999_999_999


_user_locks: dict[int, threading.RLock] = {}
_user_locks_guard = threading.Lock()


@contextmanager
def user_write_lock(user_id: int) -> Iterator[None]:
    """Serialize check-then-write sequences for one user's ledger.

    Writers for different users never contend.
    """
    with _user_locks_guard:
        lock = _user_locks.setdefault(user_id, threading.RLock())
    with lock:
        yield


def _commit(session: Session, conflict_message: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning(f"integrity_error: {conflict_message}: {exc.orig}")
        raise ConflictError(conflict_message) from exc
    except Exception:
        session.rollback()
        raise


def _require_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise InvalidReferenceError("User not found")
    return user


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, data: UserIn) -> User:
        email = (data.email or "").strip() or None
        if email is not None:
            existing = self.session.scalar(
                select(User).where(func.lower(User.email) == email.lower())
            )
            if existing:
                raise ConflictError("Email already registered")
        user = User(full_name=data.full_name.strip(), email=email)
        self.session.add(user)
        _commit(self.session, "Email already registered")
        self.session.refresh(user)
        return user

    def get(self, user_id: int) -> User:
        return _require_user(self.session, user_id)


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise InvalidReferenceError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        _require_user(self.session, self.user_id)
        currency = (data.currency or get_settings().default_currency).upper()
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            currency=currency,
        )
        self.session.add(account)
        _commit(self.session, "Account could not be saved")
        self.session.refresh(account)
        return account


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        include_inactive: bool = False,
        type: Optional[TransactionType] = None,
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if not include_inactive:
            stmt = stmt.where(Category.is_active.is_(True))
        if type:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise InvalidReferenceError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        _require_user(self.session, self.user_id)
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        with user_write_lock(self.user_id):
            existing = self.session.scalar(
                select(Category).where(
                    Category.user_id == self.user_id,
                    Category.type == data.type,
                    func.lower(Category.name) == name.lower(),
                )
            )
            if existing:
                raise ConflictError("Category with this name already exists")
            category = Category(user_id=self.user_id, name=name, type=data.type)
            self.session.add(category)
            _commit(self.session, "Category with this name already exists")
        self.session.refresh(category)
        return category

    def deactivate(self, category_id: int) -> Category:
        category = self.get(category_id)
        category.is_active = False
        _commit(self.session, "Category could not be updated")
        return category

    def activate(self, category_id: int) -> Category:
        category = self.get(category_id)
        category.is_active = True
        _commit(self.session, "Category could not be updated")
        return category

    def find_by_name(
        self, name: str, type: Optional[TransactionType] = None
    ) -> Optional[Category]:
        """Resolve a category by name: exact (case-insensitive) first, then
        the single active category within one edit of it."""
        needle = name.strip().lower()
        if not needle:
            return None
        stmt = select(Category).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == needle,
        )
        if type:
            stmt = stmt.where(Category.type == type)
        exact = self.session.scalars(stmt.order_by(Category.id)).first()
        if exact:
            return exact

        best_distance: Optional[int] = None
        best: list[Category] = []
        for category in self.list_all(type=type):
            dist = int(Levenshtein.distance(needle, category.name.strip().lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [category]
            elif dist == best_distance:
                best.append(category)

        if best_distance is None or best_distance > 1:
            return None
        if len(best) > 1:
            options = ", ".join(sorted({c.name for c in best}))
            raise ValidationError(f"Category '{name}' is ambiguous; matches: {options}")
        return best[0]


@dataclass
class TransactionFilters:
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    type: Optional[TransactionType] = None
    start: Optional[date] = None
    end: Optional[date] = None


class TransactionService:
    """Guarded write path for transactions.

    ``create`` and ``update`` are the only ways a transaction reaches the
    database; both run the category-type guard against the candidate values
    while holding the user's write lock.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _validate(self, data: TransactionIn) -> None:
        if data.amount_cents <= 0:
            raise ValidationError("amount must be > 0")
        if data.amount_cents > MAX_AMOUNT_CENTS:
            raise ValidationError("amount is too large")

        category = check_category_type(self.session, data.category_id, data.type)
        if category.user_id != self.user_id:
            raise InvalidReferenceError("Category belongs to another user")

        account = self.session.get(Account, data.account_id)
        if account is None:
            raise ValidationError("invalid account")
        if account.user_id != self.user_id:
            raise InvalidReferenceError("Account belongs to another user")

    def create(self, data: TransactionIn) -> Transaction:
        _require_user(self.session, self.user_id)
        with user_write_lock(self.user_id):
            self._validate(data)
            txn = Transaction(
                user_id=self.user_id,
                account_id=data.account_id,
                category_id=data.category_id,
                type=data.type,
                amount_cents=data.amount_cents,
                date=data.date,
                merchant=data.merchant,
                note=data.note,
            )
            self.session.add(txn)
            _commit(self.session, "Transaction could not be saved")
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        _require_user(self.session, self.user_id)
        with user_write_lock(self.user_id):
            txn = self.get(transaction_id)
            self._validate(data)
            txn.account_id = data.account_id
            txn.category_id = data.category_id
            txn.type = data.type
            txn.amount_cents = data.amount_cents
            txn.date = data.date
            txn.merchant = data.merchant
            txn.note = data.note
            _commit(self.session, "Transaction could not be saved")
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise InvalidReferenceError("Transaction not found")
        return txn

    def count(self) -> int:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == self.user_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.start:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.date <= filters.end)
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 10) -> list[Transaction]:
        return self.list(limit=limit)


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _validate(self, data: BudgetIn) -> Category:
        if data.amount_cents < 0:
            raise ValidationError("budget amount must be >= 0")
        if data.amount_cents > MAX_AMOUNT_CENTS:
            raise ValidationError("budget amount is too large")
        _require_user(self.session, self.user_id)
        category = self.session.get(Category, data.category_id)
        if not category or category.user_id != self.user_id:
            raise InvalidReferenceError("Category not found")
        return category

    def _existing(self, category_id: int, month: date) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id,
                Budget.category_id == category_id,
                Budget.month == month,
            )
        )

    def create(self, data: BudgetIn) -> Budget:
        self._validate(data)
        month = month_start(data.month)
        with user_write_lock(self.user_id):
            if self._existing(data.category_id, month):
                raise ConflictError("Budget already exists for this category and month")
            budget = Budget(
                user_id=self.user_id,
                category_id=data.category_id,
                month=month,
                amount_cents=data.amount_cents,
            )
            self.session.add(budget)
            _commit(self.session, "Budget already exists for this category and month")
        self.session.refresh(budget)
        return budget

    def upsert(self, data: BudgetIn) -> Budget:
        self._validate(data)
        month = month_start(data.month)
        with user_write_lock(self.user_id):
            budget = self._existing(data.category_id, month)
            if budget:
                budget.amount_cents = data.amount_cents
            else:
                budget = Budget(
                    user_id=self.user_id,
                    category_id=data.category_id,
                    month=month,
                    amount_cents=data.amount_cents,
                )
                self.session.add(budget)
            _commit(self.session, "Budget already exists for this category and month")
        self.session.refresh(budget)
        return budget

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise InvalidReferenceError("Budget not found")
        return budget

    def list_for_month(self, month: date) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id, Budget.month == month_start(month))
            .order_by(Budget.category_id)
        )
        return self.session.scalars(stmt).all()
