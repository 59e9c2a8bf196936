from datetime import date

import pytest
from sqlalchemy.orm import Session

from database import Base, make_engine
from errors import ConflictError, InvalidReferenceError, ValidationError
from models import AccountType, TransactionType
from schemas import AccountIn, CategoryIn, TransactionIn, UserIn
from services import (
    AccountService,
    CategoryService,
    TransactionFilters,
    TransactionService,
    UserService,
)


def make_session() -> Session:
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def test_user_email_is_unique_when_present() -> None:
    with make_session() as session:
        users = UserService(session)
        users.create(UserIn(full_name="Dev", email="dev@example.com"))
        with pytest.raises(ConflictError):
            users.create(UserIn(full_name="Other", email="DEV@example.com"))

        # users without email never collide
        users.create(UserIn(full_name="No Mail"))
        users.create(UserIn(full_name="No Mail Either", email="  "))


def test_account_defaults_to_configured_currency() -> None:
    with make_session() as session:
        user = UserService(session).create(UserIn(full_name="Dev"))
        accounts = AccountService(session, user.id)
        cash = accounts.create(AccountIn(name="cash in hand", type=AccountType.cash))
        card = accounts.create(
            AccountIn(name="travel card", type=AccountType.card, currency="usd")
        )

        assert cash.currency == "INR"
        assert card.currency == "USD"
        assert [a.name for a in accounts.list_all()] == ["cash in hand", "travel card"]


def test_account_for_unknown_user_is_rejected() -> None:
    with make_session() as session:
        with pytest.raises(InvalidReferenceError):
            AccountService(session, 42).create(
                AccountIn(name="wallet", type=AccountType.wallet)
            )


def test_category_name_and_type_are_unique_per_user() -> None:
    with make_session() as session:
        users = UserService(session)
        a = users.create(UserIn(full_name="A"))
        b = users.create(UserIn(full_name="B"))
        categories = CategoryService(session, a.id)
        categories.create(CategoryIn(name="Interest", type=TransactionType.income))

        with pytest.raises(ConflictError):
            categories.create(CategoryIn(name="interest", type=TransactionType.income))

        # same name with the other type, or for another user, is fine
        categories.create(CategoryIn(name="Interest", type=TransactionType.expense))
        CategoryService(session, b.id).create(
            CategoryIn(name="Interest", type=TransactionType.income)
        )
        assert len(categories.list_all()) == 2


def test_deactivated_category_is_hidden_but_keeps_its_type() -> None:
    with make_session() as session:
        user = UserService(session).create(UserIn(full_name="Dev"))
        categories = CategoryService(session, user.id)
        food = categories.create(CategoryIn(name="food", type=TransactionType.expense))

        categories.deactivate(food.id)
        assert categories.list_all() == []
        assert [c.id for c in categories.list_all(include_inactive=True)] == [food.id]
        assert categories.get(food.id).type == TransactionType.expense

        categories.activate(food.id)
        assert categories.get(food.id).is_active is True


def test_category_of_other_user_is_not_found() -> None:
    with make_session() as session:
        users = UserService(session)
        a = users.create(UserIn(full_name="A"))
        b = users.create(UserIn(full_name="B"))
        food = CategoryService(session, a.id).create(
            CategoryIn(name="food", type=TransactionType.expense)
        )
        with pytest.raises(InvalidReferenceError):
            CategoryService(session, b.id).deactivate(food.id)


def test_find_by_name_exact_then_within_one_edit() -> None:
    with make_session() as session:
        user = UserService(session).create(UserIn(full_name="Dev"))
        categories = CategoryService(session, user.id)
        transport = categories.create(
            CategoryIn(name="Transport", type=TransactionType.expense)
        )
        categories.create(CategoryIn(name="salary", type=TransactionType.income))

        assert categories.find_by_name("transport").id == transport.id
        assert categories.find_by_name("Transprt").id == transport.id
        assert categories.find_by_name("groceries") is None
        assert categories.find_by_name("salary", TransactionType.expense) is None


def test_find_by_name_rejects_ambiguous_fuzzy_matches() -> None:
    with make_session() as session:
        user = UserService(session).create(UserIn(full_name="Dev"))
        categories = CategoryService(session, user.id)
        categories.create(CategoryIn(name="cab", type=TransactionType.expense))
        categories.create(CategoryIn(name="car", type=TransactionType.expense))

        with pytest.raises(ValidationError, match="ambiguous"):
            categories.find_by_name("cat")


def test_recent_and_filtered_listing() -> None:
    with make_session() as session:
        user = UserService(session).create(UserIn(full_name="Dev"))
        account = AccountService(session, user.id).create(
            AccountIn(name="bank", type=AccountType.bank)
        )
        food = CategoryService(session, user.id).create(
            CategoryIn(name="food", type=TransactionType.expense)
        )
        txns = TransactionService(session, user.id)
        created = [
            txns.create(
                TransactionIn(
                    account_id=account.id,
                    category_id=food.id,
                    type=TransactionType.expense,
                    amount_cents=100 * day,
                    date=date(2025, 8, day),
                    merchant="zomato",
                    note="meals",
                )
            )
            for day in (3, 1, 2, 2)
        ]

        recent = txns.recent(limit=3)
        assert [t.date.day for t in recent] == [3, 2, 2]
        # same-day rows come back newest id first
        assert recent[1].id == created[3].id

        august_first = txns.list(
            TransactionFilters(start=date(2025, 8, 1), end=date(2025, 8, 1))
        )
        assert [t.id for t in august_first] == [created[1].id]
        assert txns.list(TransactionFilters(type=TransactionType.income)) == []
