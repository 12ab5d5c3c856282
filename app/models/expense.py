from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Category(str, Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    ENTERTAINMENT = "Entertainment"
    HOUSING = "Housing"
    UTILITIES = "Utilities"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    SHOPPING = "Shopping"
    TRAVEL = "Travel"
    OTHER = "Other"


SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP", "AED", "INR")


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def as_naive_utc(value: datetime) -> datetime:
    """Drop tzinfo after shifting to UTC so aware and naive dates compare cleanly."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ExpenseFields(BaseModel):
    amount: float = Field(gt=0)
    category: Category
    description: Optional[str] = ""
    currency: str = "USD"
    date: datetime

    @field_validator("currency")
    @classmethod
    def _supported_currency(cls, value: str) -> str:
        normalized = normalize_currency(value)
        if normalized not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {normalized}")
        return normalized

    @field_validator("date")
    @classmethod
    def _naive_date(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @field_validator("description")
    @classmethod
    def _empty_description(cls, value: Optional[str]) -> str:
        return value or ""


class ExpenseCreate(ExpenseFields):
    pass


class ExpenseUpdate(ExpenseFields):
    """Full replacement of the mutable fields; id and owner are preserved."""


class ExpenseInDB(ExpenseFields):
    user_id: str
    expense_id: str


class ExpensePublic(ExpenseFields):
    expense_id: str
