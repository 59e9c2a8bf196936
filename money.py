from decimal import Decimal, InvalidOperation
from typing import Union

from models import TransactionType

CENT = Decimal("0.01")


def parse_amount(
    value: Union[str, int, Decimal], *, allow_negative: bool = False
) -> int:
    """Convert a 2-decimal amount to integer cents.

    Accepts ``"12500.50"``, ``"12 500,50"`` or a ``Decimal``. Values that
    need more than two fractional digits are rejected.
    """
    if isinstance(value, float):
        raise ValueError("Amounts must not be floats")
    if isinstance(value, (int, Decimal)):
        amount = Decimal(value)
    else:
        clean = value.strip().replace("₹", "").replace("$", "").replace(" ", "")
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    try:
        whole_cents = amount == amount.quantize(CENT)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not whole_cents:
        raise ValueError("Amounts have at most two decimal places")
    cents = int(amount * 100)
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def cents_to_amount(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(cents: int) -> str:
    return f"{cents_to_amount(cents):.2f}"


def format_signed(cents: int, txn_type: TransactionType) -> str:
    sign = "+" if txn_type == TransactionType.income else "-"
    return f"{sign}{cents_to_amount(cents):,.2f}"
