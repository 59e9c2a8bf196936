from sqlalchemy.orm import Session

from errors import ValidationError
from models import Category, TransactionType


def check_category_type(
    session: Session, category_id: int, txn_type: TransactionType
) -> Category:
    """Reject a candidate transaction whose type disagrees with its category.

    Runs on every insert and update, against the new values, before the row
    is added to the session. Returns the category so callers can go on to
    check ownership without a second lookup.
    """
    category = session.get(Category, category_id)
    if category is None:
        raise ValidationError("invalid category")
    if category.type != TransactionType(txn_type):
        raise ValidationError("type mismatch")
    return category
