from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import AccountType, TransactionType


class UserIn(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    email: Optional[str] = Field(default=None, max_length=120)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType


class TransactionIn(BaseModel):
    # amount_cents is range-checked by the store so callers get ValidationError
    account_id: int
    category_id: int
    type: TransactionType
    amount_cents: int
    date: date
    merchant: Optional[str] = Field(default=None, max_length=120)
    note: Optional[str] = Field(default=None, max_length=255)


class BudgetIn(BaseModel):
    category_id: int
    month: date
    amount_cents: int


class TransactionPayload(BaseModel):
    """Wire form of a transaction: the amount travels as a decimal string."""

    model_config = ConfigDict(extra="forbid")

    account_id: int
    category_id: int
    type: TransactionType
    amount: str = Field(..., min_length=1, max_length=20)
    date: date
    merchant: Optional[str] = Field(default=None, max_length=120)
    note: Optional[str] = Field(default=None, max_length=255)


class BudgetPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: int
    month: str = Field(..., min_length=7, max_length=10)
    amount: str = Field(..., min_length=1, max_length=20)
