from datetime import date

import pytest
from sqlalchemy.orm import Session

from database import Base, make_engine
from errors import InvalidReferenceError, ValidationError
from guard import check_category_type
from models import AccountType, Transaction, TransactionType
from schemas import AccountIn, CategoryIn, TransactionIn, UserIn
import services
from services import AccountService, CategoryService, TransactionService, UserService


def make_session() -> Session:
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def setup_ledger(session: Session, email: str = "dev@example.com"):
    user = UserService(session).create(UserIn(full_name="Dev", email=email))
    account = AccountService(session, user.id).create(
        AccountIn(name="hdfc savings", type=AccountType.bank)
    )
    categories = CategoryService(session, user.id)
    salary = categories.create(CategoryIn(name="salary", type=TransactionType.income))
    rent = categories.create(CategoryIn(name="rent", type=TransactionType.expense))
    return user, account, salary, rent


def txn_in(account_id, category_id, txn_type, amount_cents=10_000, day=None):
    return TransactionIn(
        account_id=account_id,
        category_id=category_id,
        type=txn_type,
        amount_cents=amount_cents,
        date=day or date(2025, 8, 5),
    )


def test_guard_returns_category_when_types_match() -> None:
    with make_session() as session:
        _, _, salary, _ = setup_ledger(session)
        category = check_category_type(session, salary.id, TransactionType.income)
        assert category.id == salary.id


def test_guard_rejects_unknown_category() -> None:
    with make_session() as session:
        setup_ledger(session)
        with pytest.raises(ValidationError, match="invalid category"):
            check_category_type(session, 999, TransactionType.expense)


def test_income_against_expense_category_is_rejected_and_store_unchanged() -> None:
    with make_session() as session:
        user, account, _, rent = setup_ledger(session)
        txns = TransactionService(session, user.id)
        txns.create(txn_in(account.id, rent.id, TransactionType.expense))
        before = txns.count()

        with pytest.raises(ValidationError, match="type mismatch"):
            txns.create(txn_in(account.id, rent.id, TransactionType.income))

        assert txns.count() == before
        assert session.query(Transaction).count() == before


@pytest.mark.parametrize(
    "category_name, wrong_type",
    [("salary", TransactionType.expense), ("rent", TransactionType.income)],
)
def test_every_mismatched_pair_is_rejected(category_name, wrong_type) -> None:
    with make_session() as session:
        user, account, salary, rent = setup_ledger(session)
        category = {"salary": salary, "rent": rent}[category_name]
        txns = TransactionService(session, user.id)

        with pytest.raises(ValidationError):
            txns.create(txn_in(account.id, category.id, wrong_type))

        assert txns.count() == 0


def test_update_reruns_guard_against_new_values() -> None:
    with make_session() as session:
        user, account, salary, rent = setup_ledger(session)
        txns = TransactionService(session, user.id)
        txn = txns.create(txn_in(account.id, rent.id, TransactionType.expense, 50_000))

        # category switched without switching the type
        with pytest.raises(ValidationError, match="type mismatch"):
            txns.update(txn.id, txn_in(account.id, salary.id, TransactionType.expense))
        # type switched without switching the category
        with pytest.raises(ValidationError, match="type mismatch"):
            txns.update(txn.id, txn_in(account.id, rent.id, TransactionType.income))

        stored = txns.get(txn.id)
        assert stored.category_id == rent.id
        assert stored.type == TransactionType.expense
        assert stored.amount_cents == 50_000

        updated = txns.update(
            txn.id, txn_in(account.id, salary.id, TransactionType.income, 70_000)
        )
        assert updated.category_id == salary.id
        assert updated.type == TransactionType.income
        assert updated.amount_cents == 70_000


@pytest.mark.parametrize("amount_cents", [0, -1, -500])
def test_non_positive_amount_is_rejected(amount_cents) -> None:
    with make_session() as session:
        user, account, _, rent = setup_ledger(session)
        txns = TransactionService(session, user.id)
        with pytest.raises(ValidationError, match="amount must be > 0"):
            txns.create(
                txn_in(account.id, rent.id, TransactionType.expense, amount_cents)
            )
        assert txns.count() == 0


def test_missing_account_is_rejected() -> None:
    with make_session() as session:
        user, _, _, rent = setup_ledger(session)
        txns = TransactionService(session, user.id)
        with pytest.raises(ValidationError, match="invalid account"):
            txns.create(txn_in(999, rent.id, TransactionType.expense))
        assert txns.count() == 0


def test_cross_user_references_are_rejected() -> None:
    with make_session() as session:
        user_a, account_a, _, rent_a = setup_ledger(session, "a@example.com")
        user_b, account_b, _, rent_b = setup_ledger(session, "b@example.com")
        txns_a = TransactionService(session, user_a.id)

        with pytest.raises(InvalidReferenceError):
            txns_a.create(txn_in(account_b.id, rent_a.id, TransactionType.expense))
        with pytest.raises(InvalidReferenceError):
            txns_a.create(txn_in(account_a.id, rent_b.id, TransactionType.expense))

        assert txns_a.count() == 0
        assert TransactionService(session, user_b.id).count() == 0


def test_transactions_of_other_users_are_not_visible_for_update() -> None:
    with make_session() as session:
        user_a, account_a, _, rent_a = setup_ledger(session, "a@example.com")
        user_b, _, _, _ = setup_ledger(session, "b@example.com")
        txn = TransactionService(session, user_a.id).create(
            txn_in(account_a.id, rent_a.id, TransactionType.expense)
        )

        with pytest.raises(InvalidReferenceError):
            TransactionService(session, user_b.id).update(
                txn.id, txn_in(account_a.id, rent_a.id, TransactionType.expense, 1)
            )
        assert TransactionService(session, user_a.id).get(txn.id).amount_cents == 10_000


def test_unknown_user_is_rejected() -> None:
    with make_session() as session:
        _, account, _, rent = setup_ledger(session)
        with pytest.raises(InvalidReferenceError, match="User not found"):
            TransactionService(session, 999).create(
                txn_in(account.id, rent.id, TransactionType.expense)
            )


def test_unknown_user_leaves_no_write_lock_behind() -> None:
    with make_session() as session:
        _, account, _, rent = setup_ledger(session)
        with pytest.raises(InvalidReferenceError):
            TransactionService(session, 4242).create(
                txn_in(account.id, rent.id, TransactionType.expense)
            )
        assert 4242 not in services._user_locks


def test_amount_beyond_twelve_digits_is_rejected() -> None:
    with make_session() as session:
        user, account, _, rent = setup_ledger(session)
        txns = TransactionService(session, user.id)
        txns.create(txn_in(account.id, rent.id, TransactionType.expense))

        with pytest.raises(ValidationError, match="too large"):
            txns.create(txn_in(account.id, rent.id, TransactionType.expense, 10**20))
        assert txns.count() == 1

        largest = txns.create(
            txn_in(account.id, rent.id, TransactionType.expense, 999_999_999_999)
        )
        assert largest.amount_cents == 999_999_999_999
