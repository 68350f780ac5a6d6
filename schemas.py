import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AccountType, TransactionType


class SignupIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        clean = value.strip().lower()
        if "@" not in clean:
            raise ValueError("Invalid email address")
        return clean


class LoginIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance_cents: int = 0


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(default="#6b7280", pattern=r"^#[0-9a-fA-F]{6}$")


class TransactionIn(BaseModel):
    account_id: int
    category_id: int
    amount_cents: int = Field(..., ge=0)
    type: TransactionType
    description: str = Field(..., min_length=1, max_length=200)
    date: dt.date
    is_necessary: bool = False
    reason: Optional[str] = Field(default=None, max_length=500)


class BudgetIn(BaseModel):
    category_id: int
    monthly_limit_cents: int = Field(..., gt=0)
