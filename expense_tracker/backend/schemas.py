from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Amounts are stored as DECIMAL(10,2)
TWO_PLACES = Decimal("0.01")
MAX_AMOUNT = Decimal("100000000")


class ExpenseCreate(BaseModel):
    idempotency_key: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0, lt=MAX_AMOUNT, description="Positive, below 100,000,000")
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    date: date

    @field_validator("idempotency_key", mode="before")
    @classmethod
    def key_must_not_be_blank(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Idempotency key is required")
        return v

    @field_validator("category", "description", mode="before")
    @classmethod
    def text_must_not_be_blank(cls, v, info):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError(f"{info.field_name.capitalize()} cannot be blank or whitespace")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def amount_must_be_positive(cls, v):
        if isinstance(v, bool):
            raise ValueError("Amount must be a number")
        try:
            val = Decimal(str(v).strip())
        except (InvalidOperation, ValueError):
            raise ValueError("Amount must be a number")
        if not val.is_finite():
            raise ValueError("Amount must be a finite number")
        if val >= MAX_AMOUNT:
            raise ValueError("Amount must be less than 100,000,000")
        # Checked after rounding, since that is the value that gets stored
        val = val.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        if val <= 0:
            raise ValueError("Amount must be at least 0.01")
        if val >= MAX_AMOUNT:
            raise ValueError("Amount must be less than 100,000,000")
        return val


class ExpenseResponse(BaseModel):
    id: str
    idempotency_key: str
    amount: Decimal
    category: str
    description: str
    date: date
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExpenseWriteResponse(BaseModel):
    outcome: Literal["created", "existing"]
    record: ExpenseResponse


class ExpenseDeleteResponse(BaseModel):
    outcome: Literal["deleted", "not_found"]
    record: Optional[ExpenseResponse] = None


class ExpenseListResponse(BaseModel):
    expenses: list[ExpenseResponse]
    total: Decimal
    count: int


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("name", "email", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def email_must_look_valid(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("Email must be a valid address")
        return v.lower()


class UserLogin(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class AuthResponse(BaseModel):
    id: str
    name: str
    email: str
    token: str
