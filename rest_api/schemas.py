"""
Pydantic schemas for the REST API.

Field names are snake_case on the wire. Output models are built from
store records (dicts), so they read by key.
"""

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from shared.utils.exceptions import ValidationError


# =============================================================================
# Transactions
# =============================================================================


TransactionType = Literal["income", "expense"]


class TransactionCreate(BaseModel):
    type: TransactionType
    amount: float = Field(gt=0)
    category: str = Field(min_length=1, max_length=50)
    description: str = Field(default="", max_length=200)
    date: dt.date = Field(default_factory=dt.date.today)


class TransactionUpdate(BaseModel):
    type: TransactionType | None = None
    amount: float | None = Field(default=None, gt=0)
    category: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = Field(default=None, max_length=200)
    date: dt.date | None = None


class TransactionOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount: float
    category: str
    description: str
    date: dt.date
    created_at: dt.datetime
    updated_at: dt.datetime


# =============================================================================
# Budgets
# =============================================================================


class BudgetCreate(BaseModel):
    category: str = Field(min_length=1, max_length=50)
    limit: float = Field(gt=0)


class BudgetUpdate(BaseModel):
    limit: float = Field(gt=0)


class BudgetOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category: str
    limit: float
    current_spending: float | None = None
    created_at: dt.datetime
    updated_at: dt.datetime


# =============================================================================
# Savings goals
# =============================================================================


class SavingsGoalCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    target_amount: float = Field(gt=0)
    current_amount: float = Field(default=0, ge=0)
    category: str = Field(min_length=1, max_length=50)
    due_date: dt.date


class SavingsGoalUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=100)
    target_amount: float | None = Field(default=None, gt=0)
    current_amount: float | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, min_length=1, max_length=50)
    due_date: dt.date | None = None


class SavingsGoalOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    target_amount: float
    current_amount: float
    category: str
    due_date: dt.date
    created_at: dt.datetime
    updated_at: dt.datetime


def update_changes(body: BaseModel) -> dict:
    """
    Fields a PATCH body actually sets.

    Raises ValidationError (400) for an empty body or an explicit null,
    since every stored field is required.
    """
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Update body must not be empty")
    nulls = sorted(name for name, value in changes.items() if value is None)
    if nulls:
        raise ValidationError(f"Fields cannot be null: {', '.join(nulls)}")
    return changes
