"""
PayFlow API Schemas
Request/response models. Field names are camelCase on the wire; snake_case
is accepted on input as well.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from payflow.core.security import password_policy_errors

# Money is in minor units (cents); floats and numeric strings are rejected.
# The bills.amount column is a 32-bit INTEGER.
MAX_AMOUNT = 2_147_483_647
Amount = Annotated[int, Field(ge=0, le=MAX_AMOUNT, strict=True)]


class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Users & Auth
# =============================================================================

class UserOut(APIModel):
    """Public view of a user. Never carries the password hash."""
    id: str
    name: str
    email: str
    created_at: datetime


class RegisterRequest(APIModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., max_length=128)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        problems = password_policy_errors(v)
        if problems:
            raise ValueError("Password must contain " + ", ".join(problems))
        return v


class LoginRequest(APIModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class AuthResponse(APIModel):
    user: UserOut
    token: str
    message: str


class IdentityOut(APIModel):
    id: str
    email: str
    name: str


class WhoAmIUser(APIModel):
    id: str
    email: str


class WhoAmIResponse(APIModel):
    user: WhoAmIUser


# =============================================================================
# Categories
# =============================================================================

class CategoryCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=32)
    icon: Optional[str] = Field(None, max_length=64)


class CategoryUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=32)
    icon: Optional[str] = Field(None, max_length=64)

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("name cannot be null")
        return v


class CategoryOut(APIModel):
    id: str
    user_id: str
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime


# =============================================================================
# Bills
# =============================================================================

class BillCreate(APIModel):
    """New bill. Ownership comes from the token, never from the body."""
    name: str = Field(..., min_length=1, max_length=200)
    amount: Amount
    due_date: datetime
    is_paid: bool = False
    description: Optional[str] = Field(None, max_length=2000)
    category_id: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v: datetime) -> datetime:
        return _utc(v)


class BillUpdate(APIModel):
    """Partial update; omitted fields keep their current value."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Amount] = None
    due_date: Optional[datetime] = None
    is_paid: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=2000)
    category_id: Optional[str] = None

    @field_validator("name", "amount", "due_date", "is_paid")
    @classmethod
    def required_not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v: datetime) -> datetime:
        return _utc(v)


class BillOut(APIModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    amount: int
    due_date: datetime
    is_paid: bool
    category_id: Optional[str] = None
    created_at: datetime


# =============================================================================
# Reports
# =============================================================================

class CategoryTotalOut(APIModel):
    category_id: Optional[str] = None
    name: str
    count: int
    amount: int


class BillSummaryOut(APIModel):
    total_count: int
    total_amount: int
    paid_count: int
    paid_amount: int
    unpaid_count: int
    unpaid_amount: int
    overdue_count: int
    overdue_amount: int
    upcoming_count: int
    upcoming_amount: int
    by_category: list[CategoryTotalOut]
    generated_at: datetime


# =============================================================================
# Admin
# =============================================================================

class ClearDataResponse(APIModel):
    success: bool
    message: str
    deleted: dict[str, int]
