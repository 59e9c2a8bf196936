"""Read-side ledger reports.

Every function here recomputes from the transaction log on each call and
never writes. Balances and rollups are not stored anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from errors import InvalidReferenceError
from models import Account, AccountType, Budget, Category, Transaction, TransactionType
from money import cents_to_amount
from periods import month_of, month_start


def _signed_amount():
    return case(
        (Transaction.type == TransactionType.income, Transaction.amount_cents),
        else_=-Transaction.amount_cents,
    )


# Balances


@dataclass(frozen=True)
class AccountBalance:
    account_id: int
    account_name: str
    account_type: AccountType
    currency: str
    balance_cents: int

    @property
    def balance(self) -> Decimal:
        return cents_to_amount(self.balance_cents)


def balance(session: Session, account_id: int, user_id: Optional[int] = None) -> int:
    """Income minus expense over the account's whole history, in cents."""
    account = session.get(Account, account_id)
    if account is None or (user_id is not None and account.user_id != user_id):
        raise InvalidReferenceError("Account not found")
    total = session.execute(
        select(func.coalesce(func.sum(_signed_amount()), 0)).where(
            Transaction.account_id == account_id
        )
    ).scalar_one()
    return int(total or 0)


def account_balances(session: Session, user_id: int) -> list[AccountBalance]:
    stmt = (
        select(
            Account.id,
            Account.name,
            Account.type,
            Account.currency,
            func.coalesce(func.sum(_signed_amount()), 0).label("balance"),
        )
        .select_from(Account)
        .outerjoin(Transaction, Transaction.account_id == Account.id)
        .where(Account.user_id == user_id)
        .group_by(Account.id, Account.name, Account.type, Account.currency)
        .order_by(Account.name, Account.id)
    )
    return [
        AccountBalance(
            account_id=row.id,
            account_name=row.name,
            account_type=row.type,
            currency=row.currency,
            balance_cents=int(row.balance or 0),
        )
        for row in session.execute(stmt)
    ]


# Monthly aggregation


@dataclass(frozen=True)
class MonthlySummary:
    month: date
    total_income_cents: int
    total_expense_cents: int

    @property
    def net_amount_cents(self) -> int:
        return self.total_income_cents - self.total_expense_cents

    @property
    def total_income(self) -> Decimal:
        return cents_to_amount(self.total_income_cents)

    @property
    def total_expense(self) -> Decimal:
        return cents_to_amount(self.total_expense_cents)

    @property
    def net_amount(self) -> Decimal:
        return cents_to_amount(self.net_amount_cents)


@dataclass(frozen=True)
class CategorySpend:
    category_id: int
    category_name: str
    spend_cents: int

    @property
    def spend(self) -> Decimal:
        return cents_to_amount(self.spend_cents)


@dataclass(frozen=True)
class RankedCategorySpend:
    rank: int
    category_id: int
    category_name: str
    spend_cents: int

    @property
    def spend(self) -> Decimal:
        return cents_to_amount(self.spend_cents)


def monthly_summary(
    session: Session, user_id: int, *, descending: bool = True
) -> list[MonthlySummary]:
    """One row per calendar month holding at least one of the user's transactions.

    Dates are civil dates; a transaction lands in the month of its own date.
    """
    rows = session.execute(
        select(Transaction.date, Transaction.type, Transaction.amount_cents).where(
            Transaction.user_id == user_id
        )
    ).all()

    totals: dict[date, list[int]] = {}
    for txn_date, txn_type, amount_cents in rows:
        bucket = totals.setdefault(month_start(txn_date), [0, 0])
        if txn_type == TransactionType.income:
            bucket[0] += amount_cents
        else:
            bucket[1] += amount_cents

    return [
        MonthlySummary(
            month=month, total_income_cents=income, total_expense_cents=expense
        )
        for month, (income, expense) in sorted(totals.items(), reverse=descending)
    ]


def category_spend(session: Session, user_id: int, month: date) -> list[CategorySpend]:
    """Expense totals per category for the month containing ``month``.

    Categories without expense in that month are left out, not zero-filled.
    """
    period = month_of(month)
    spent = func.sum(Transaction.amount_cents).label("spent")
    stmt = (
        select(Category.id, Category.name, spent)
        .select_from(Transaction)
        .join(Category, Category.id == Transaction.category_id)
        .where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.expense,
            Transaction.date.between(period.start, period.end),
        )
        .group_by(Category.id, Category.name)
        .order_by(spent.desc(), Category.name)
    )
    return [
        CategorySpend(
            category_id=row.id, category_name=row.name, spend_cents=int(row.spent)
        )
        for row in session.execute(stmt)
        if row.spent
    ]


def rank_category_spend(rows: Iterable[CategorySpend]) -> list[RankedCategorySpend]:
    """Dense rank by spend, highest first: equal spends share a rank and the
    next distinct spend takes the following rank."""
    ranked: list[RankedCategorySpend] = []
    rank = 0
    previous: Optional[int] = None
    for row in sorted(rows, key=lambda r: r.spend_cents, reverse=True):
        if row.spend_cents != previous:
            rank += 1
            previous = row.spend_cents
        ranked.append(
            RankedCategorySpend(
                rank=rank,
                category_id=row.category_id,
                category_name=row.category_name,
                spend_cents=row.spend_cents,
            )
        )
    return ranked


def ranked_category_spend(
    session: Session, user_id: int, month: date, limit: Optional[int] = None
) -> list[RankedCategorySpend]:
    ranked = rank_category_spend(category_spend(session, user_id, month))
    if limit is not None:
        return ranked[:limit]
    return ranked


# Budget tracking


@dataclass(frozen=True)
class BudgetStatus:
    category_id: int
    category_name: str
    month: date
    budget_cents: int
    spent_cents: int

    @property
    def variance_cents(self) -> int:
        return self.spent_cents - self.budget_cents

    @property
    def over_budget(self) -> bool:
        return self.spent_cents > self.budget_cents

    @property
    def budget(self) -> Decimal:
        return cents_to_amount(self.budget_cents)

    @property
    def spent(self) -> Decimal:
        return cents_to_amount(self.spent_cents)

    @property
    def variance(self) -> Decimal:
        return cents_to_amount(self.variance_cents)


def budget_status(session: Session, user_id: int, month: date) -> list[BudgetStatus]:
    """Budgets declared for the month joined with that month's category spend.

    Keyed on budgets: a category spent against but never budgeted does not
    appear. Rows come back over-budget first, then by variance descending.
    """
    period = month_of(month)
    spend = (
        select(
            Transaction.category_id,
            func.sum(Transaction.amount_cents).label("spent"),
        )
        .where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.expense,
            Transaction.date.between(period.start, period.end),
        )
        .group_by(Transaction.category_id)
        .subquery()
    )
    stmt = (
        select(
            Budget.category_id,
            Category.name,
            Budget.month,
            Budget.amount_cents,
            func.coalesce(spend.c.spent, 0).label("spent"),
        )
        .select_from(Budget)
        .join(Category, Category.id == Budget.category_id)
        .outerjoin(spend, spend.c.category_id == Budget.category_id)
        .where(Budget.user_id == user_id, Budget.month == period.start)
    )
    rows = [
        BudgetStatus(
            category_id=row.category_id,
            category_name=row.name,
            month=row.month,
            budget_cents=int(row.amount_cents),
            spent_cents=int(row.spent or 0),
        )
        for row in session.execute(stmt)
    ]
    return sort_budget_status(rows)


def sort_budget_status(rows: Sequence[BudgetStatus]) -> list[BudgetStatus]:
    return sorted(
        rows,
        key=lambda r: (not r.over_budget, -r.variance_cents, r.category_id),
    )
