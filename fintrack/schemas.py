import datetime as dt
from decimal import Decimal
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from .services.clock import is_valid_timezone
from .services.periods import Period
from .services.progress import to_money

T = TypeVar("T")

MAX_AMOUNT = Decimal("99999999.99")


def _money(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    value = to_money(value)
    if value < Decimal("0.01"):
        raise ValueError("must be at least 0.01")
    return value


def _timezone(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not is_valid_timezone(value):
        raise ValueError("must be a valid IANA timezone")
    return value


Money = Annotated[Decimal, Field(gt=0, le=MAX_AMOUNT), AfterValidator(_money)]
TimezoneName = Annotated[Optional[str], AfterValidator(_timezone)]


class DataEnvelope(BaseModel, Generic[T]):
    data: T


class MessageResponse(BaseModel):
    message: str


# ---- Users & auth ----

class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8)
    password_confirmation: Optional[str] = None
    timezone: TimezoneName = None


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserUpdateRequest(BaseModel):
    """Partial profile update; only the keys sent are applied."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    timezone: TimezoneName = None
    password: Optional[str] = Field(default=None, min_length=8)
    password_confirmation: Optional[str] = None

    @field_validator("name", "email", "password")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class User(BaseModel):
    id: int
    name: str
    email: str
    timezone: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    user: User
    token: str
    expires_at: Optional[dt.datetime] = None


# ---- Categories ----

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    icon: Optional[str] = Field(default=None, max_length=255)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    icon: Optional[str] = Field(default=None, max_length=255)

    @field_validator("name")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class Category(BaseModel):
    id: int
    user_id: int
    name: str
    icon: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryBrief(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CategoryReference(CategoryBrief):
    """Category as embedded in a transaction; may point at a deleted one."""

    is_deleted: bool


# ---- Transactions ----

class TransactionCreate(BaseModel):
    amount: Money
    description: Optional[str] = None
    date: Optional[dt.date] = None  # defaults to "today" in the user's timezone
    category_id: Optional[int] = None


class TransactionUpdate(BaseModel):
    amount: Optional[Money] = None
    description: Optional[str] = None
    date: Optional[dt.date] = None
    category_id: Optional[int] = None

    @field_validator("amount", "date")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class Transaction(BaseModel):
    id: int
    user_id: int
    category: Optional[CategoryReference] = None
    category_id: Optional[int] = None
    amount: Decimal
    description: Optional[str] = None
    date: dt.date
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> str:
        return str(to_money(amount))


class PageMeta(BaseModel):
    current_page: int
    per_page: int
    total: int
    last_page: int


class TransactionPage(BaseModel):
    data: List[Transaction]
    meta: PageMeta


# ---- Budgets ----

class BudgetCreate(BaseModel):
    category_id: Optional[int] = None  # None -> overall budget
    limit: Money
    period: Period
    start_date: dt.date
    end_date: Optional[dt.date] = None

    @model_validator(mode="before")
    @classmethod
    def amount_alias(cls, data):
        # "amount" is accepted as an alias for "limit"
        if isinstance(data, dict) and "amount" in data and "limit" not in data:
            data = {**data, "limit": data["amount"]}
        return data


class BudgetUpdate(BaseModel):
    category_id: Optional[int] = None  # rejected when sent
    limit: Optional[Money] = None
    period: Optional[Period] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    @model_validator(mode="before")
    @classmethod
    def amount_alias(cls, data):
        if isinstance(data, dict) and "amount" in data and "limit" not in data:
            data = {**data, "limit": data["amount"]}
        return data

    @field_validator("limit", "period", "start_date")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class BudgetRange(BaseModel):
    start: dt.date
    end: dt.date


class BudgetStats(BaseModel):
    spent: float
    remaining: float
    progress_percent: float
    over: bool


class Budget(BaseModel):
    id: int
    user_id: int
    category: Optional[CategoryBrief] = None
    limit: float
    period: str
    range: BudgetRange
    created_at: dt.datetime
    updated_at: dt.datetime
    stats: BudgetStats

    @classmethod
    def from_record(cls, budget, progress) -> "Budget":
        return cls(
            id=budget.id,
            user_id=budget.user_id,
            category=CategoryBrief.model_validate(budget.category) if budget.category else None,
            limit=float(budget.limit),
            period=budget.period,
            range=BudgetRange(start=budget.start_date, end=budget.end_date),
            created_at=budget.created_at,
            updated_at=budget.updated_at,
            stats=BudgetStats(**progress.as_stats()),
        )
