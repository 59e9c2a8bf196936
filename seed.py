"""Deterministic demo data for a fresh ledger.

The seeder is an ordinary client of the store services: every row it
writes goes through the same validation as any other caller.
"""

from __future__ import annotations

import argparse
import logging
import random
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from database import init_db, make_engine, session_scope
from models import Account, AccountType, Category, TransactionType
from periods import month_start
from schemas import AccountIn, BudgetIn, CategoryIn, TransactionIn, UserIn
from services import (
    AccountService,
    BudgetService,
    CategoryService,
    TransactionService,
    UserService,
)

logger = logging.getLogger(__name__)

DEMO_ACCOUNTS: tuple[tuple[str, AccountType], ...] = (
    ("cash in hand", AccountType.cash),
    ("hdfc savings", AccountType.bank),
    ("axis credit card", AccountType.card),
)

DEMO_CATEGORIES: tuple[tuple[str, TransactionType], ...] = (
    ("salary", TransactionType.income),
    ("interest", TransactionType.income),
    ("rent", TransactionType.expense),
    ("food", TransactionType.expense),
    ("transport", TransactionType.expense),
    ("shopping", TransactionType.expense),
)

DEMO_BUDGETS: tuple[tuple[str, int], ...] = (
    ("rent", 1_200_000),
    ("food", 600_000),
    ("transport", 250_000),
    ("shopping", 400_000),
)


@dataclass
class SeedResult:
    user_id: int
    accounts: int = 0
    categories: int = 0
    budgets: int = 0
    transactions: int = 0
    posted_by_category: dict[str, int] = field(default_factory=dict)


def _cents_from_range(rng: random.Random, low: int, high: int) -> int:
    sampled = Decimal(str(rng.uniform(low, high)))
    return int((sampled * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _iter_days_back(today: date, days: int) -> Iterable[date]:
    for offset in range(days):
        yield today - timedelta(days=offset)


class DemoSeeder:
    def __init__(
        self,
        session: Session,
        random_seed: Optional[int] = None,
        today: Optional[date] = None,
    ) -> None:
        self.session = session
        self.random_seed = get_settings().seed if random_seed is None else random_seed
        self.rng = random.Random(self.random_seed)
        self.today = today or date.today()

    def seed(
        self,
        full_name: str = "Dev",
        email: Optional[str] = "dev@example.com",
        days: int = 90,
    ) -> SeedResult:
        users = UserService(self.session)
        user = users.create(UserIn(full_name=full_name, email=email))
        result = SeedResult(user_id=user.id)

        accounts = AccountService(self.session, user.id)
        by_account: dict[str, Account] = {}
        for name, account_type in DEMO_ACCOUNTS:
            by_account[name] = accounts.create(AccountIn(name=name, type=account_type))
            result.accounts += 1

        categories = CategoryService(self.session, user.id)
        for name, category_type in DEMO_CATEGORIES:
            categories.create(CategoryIn(name=name, type=category_type))
            result.categories += 1

        budgets = BudgetService(self.session, user.id)
        for name, amount_cents in DEMO_BUDGETS:
            category = self._category(categories, name, TransactionType.expense)
            budgets.upsert(
                BudgetIn(
                    category_id=category.id,
                    month=month_start(self.today),
                    amount_cents=amount_cents,
                )
            )
            result.budgets += 1

        txns = TransactionService(self.session, user.id)
        cash = by_account["cash in hand"]
        bank = by_account["hdfc savings"]
        card = by_account["axis credit card"]

        def post(
            account: Account,
            category_name: str,
            txn_type: TransactionType,
            amount_cents: int,
            day: date,
            merchant: str,
            note: str,
        ) -> None:
            category = self._category(categories, category_name, txn_type)
            txns.create(
                TransactionIn(
                    account_id=account.id,
                    category_id=category.id,
                    type=txn_type,
                    amount_cents=amount_cents,
                    date=day,
                    merchant=merchant,
                    note=note,
                )
            )
            result.transactions += 1
            result.posted_by_category[category_name] = (
                result.posted_by_category.get(category_name, 0) + 1
            )

        income, expense = TransactionType.income, TransactionType.expense
        for day in _iter_days_back(self.today, days):
            if day.day == 1:
                post(
                    bank, "salary", income, 4_500_000, day, "company", "monthly salary"
                )
            if day.day == 15:
                post(bank, "interest", income, 50_000, day, "bank", "fd interest")

            meal = _cents_from_range(self.rng, 100, 300)
            post(cash, "food", expense, meal, day, "zomato", "meals")
            if day.weekday() in (0, 4):
                post(
                    cash,
                    "transport",
                    expense,
                    _cents_from_range(self.rng, 50, 200),
                    day,
                    "ola/uber",
                    "commute",
                )
            if day.weekday() == 6 and self.rng.random() < 0.5:
                post(
                    card,
                    "shopping",
                    expense,
                    _cents_from_range(self.rng, 500, 3500),
                    day,
                    "amazon",
                    "online purchase",
                )
            if day.day == 3:
                post(bank, "rent", expense, 1_200_000, day, "landlord", "monthly rent")

        logger.info(
            f"seed_complete: user_id={user.id} seed={self.random_seed} "
            f"transactions={result.transactions}"
        )
        return result

    @staticmethod
    def _category(
        categories: CategoryService, name: str, txn_type: TransactionType
    ) -> Category:
        category = categories.find_by_name(name, txn_type)
        if category is None:
            raise LookupError(f"Demo category missing: {name}")
        return category


def main(argv: Optional[list[str]] = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Seed the ledger with demo data.")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--seed", type=int, default=settings.seed)
    parser.add_argument("--days", type=int, default=90)
    parser.add_argument("--email", default="dev@example.com")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level)
    eng = make_engine(args.database_url)
    init_db(eng)
    factory = sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)
    with session_scope(factory) as session:
        result = DemoSeeder(session, random_seed=args.seed).seed(
            email=args.email, days=args.days
        )
    logger.info(f"seed_summary: {result}")


if __name__ == "__main__":
    main()
