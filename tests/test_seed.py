from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Base, make_engine
from errors import ConflictError
from models import Budget, Category, Transaction
from reports import budget_status, monthly_summary
from seed import DemoSeeder


def make_session() -> Session:
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def test_seed_builds_demo_ledger() -> None:
    with make_session() as session:
        result = DemoSeeder(session, random_seed=7, today=date(2025, 8, 31)).seed()

        assert result.accounts == 3
        assert result.categories == 6
        assert result.budgets == 4
        # 90 days back from 2025-08-31 covers Jun 3 .. Aug 31
        assert result.posted_by_category["salary"] == 2
        assert result.posted_by_category["rent"] == 3
        assert result.posted_by_category["interest"] == 3
        assert result.posted_by_category["food"] == 90

        months = [row.month for row in monthly_summary(session, result.user_id)]
        assert months == [date(2025, 8, 1), date(2025, 7, 1), date(2025, 6, 1)]

        status = budget_status(session, result.user_id, date(2025, 8, 1))
        assert {row.category_name for row in status} == {
            "rent",
            "food",
            "transport",
            "shopping",
        }
        assert len(session.scalars(select(Budget)).all()) == 4


def test_seeded_transactions_agree_with_their_categories() -> None:
    with make_session() as session:
        seeder = DemoSeeder(session, random_seed=1, today=date(2025, 3, 10))
        result = seeder.seed(days=30)

        rows = session.execute(
            select(Transaction.type, Category.type).join(
                Category, Category.id == Transaction.category_id
            )
        ).all()
        assert len(rows) == result.transactions
        assert all(txn_type == cat_type for txn_type, cat_type in rows)
        assert all(
            amount > 0 for amount in session.scalars(select(Transaction.amount_cents))
        )


def test_same_seed_gives_same_ledger() -> None:
    totals = []
    for _ in range(2):
        with make_session() as session:
            result = DemoSeeder(session, random_seed=99, today=date(2025, 5, 20)).seed()
            totals.append(
                [
                    (row.month, row.total_income_cents, row.total_expense_cents)
                    for row in monthly_summary(session, result.user_id)
                ]
            )
    assert totals[0] == totals[1]


def test_seeder_gets_the_same_errors_as_any_caller() -> None:
    with make_session() as session:
        DemoSeeder(session, random_seed=3, today=date(2025, 5, 20)).seed(days=5)
        with pytest.raises(ConflictError):
            DemoSeeder(session, random_seed=3, today=date(2025, 5, 20)).seed(days=5)
