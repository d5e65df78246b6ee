"""Pydantic contracts shared across the transactions backend."""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    StringConstraints,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel


# Amounts stay Decimal internally but are emitted as JSON numbers.
JsonDecimal = Annotated[
    Decimal,
    PlainSerializer(lambda value: float(value), return_type=float, when_used="json"),
]
Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]
SortField = Literal["date", "amount", "category", "description", "type", "createdAt"]
SortOrder = Literal["asc", "desc"]

# `date` is also a field name below; this alias keeps annotations unambiguous.
_Date = date

_CAMEL_CONFIG = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)
_INPUT_CONFIG = ConfigDict(
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
)


def coerce_iso_date(value: Any) -> Any:
    """Accept full ISO-8601 datetimes where a calendar date is expected."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
        except ValueError:
            return value
    return value


class ToolErrorCode(str, Enum):
    """Stable error codes returned by the transaction service."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    BACKEND_ERROR = "BACKEND_ERROR"


class FieldError(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    message: str


class ToolError(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: ToolErrorCode
    message: str
    errors: list[FieldError] = Field(default_factory=list)
    details: dict[str, object] | None = None


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    CREDIT_CARD = "Credit Card"
    DEBIT_CARD = "Debit Card"
    BANK_TRANSFER = "Bank Transfer"
    DIGITAL_WALLET = "Digital Wallet"
    CHECK = "Check"
    OTHER = "Other"


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurringDetails(BaseModel):
    model_config = _INPUT_CONFIG

    frequency: RecurrenceFrequency | None = None
    next_due_date: _Date | None = None
    end_date: _Date | None = None

    @field_validator("next_due_date", "end_date", mode="before")
    @classmethod
    def truncate_datetime(cls, value: Any) -> Any:
        return coerce_iso_date(value)


class MonthYear(BaseModel):
    model_config = _CAMEL_CONFIG

    month: int
    year: int
    formatted: str


class TransactionFields(BaseModel):
    """Client-editable transaction fields, validated before persistence."""

    model_config = _INPUT_CONFIG

    date: _Date
    description: str = Field(min_length=1, max_length=200)
    amount: JsonDecimal = Field(ge=Decimal("0.01"), allow_inf_nan=False)
    category: str = Field(min_length=1, max_length=50)
    type: TransactionType
    tags: list[Tag] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=500)
    payment_method: PaymentMethod = PaymentMethod.CASH
    is_recurring: bool = False
    recurring_details: RecurringDetails | None = None

    @field_validator("date", mode="before")
    @classmethod
    def truncate_datetime(cls, value: Any) -> Any:
        return coerce_iso_date(value)


class Transaction(TransactionFields):
    """Stored transaction, always bound to exactly one owner."""

    id: UUID
    user_id: UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field(alias="formattedAmount")
    @property
    def formatted_amount(self) -> str:
        return f"{self.amount:.2f}"

    @computed_field(alias="monthYear")
    @property
    def month_year(self) -> MonthYear:
        return MonthYear(
            month=self.date.month,
            year=self.date.year,
            formatted=f"{self.date.year}-{self.date.month:02d}",
        )

    def is_current_month(self, today: _Date | None = None) -> bool:
        reference = today or _Date.today()
        return self.date.year == reference.year and self.date.month == reference.month


class TransactionFilters(BaseModel):
    """Owner-scoped predicate shared by listing and rollups."""

    model_config = _CAMEL_CONFIG

    user_id: UUID
    start_date: _Date | None = None
    end_date: _Date | None = None
    category: str | None = None
    type: TransactionType | None = None
    description: str | None = None


class _DateRangeQuery(BaseModel):
    model_config = _INPUT_CONFIG

    start_date: _Date | None = None
    end_date: _Date | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def truncate_datetime(cls, value: Any) -> Any:
        return coerce_iso_date(value)


class TransactionListQuery(_DateRangeQuery):
    category: str | None = Field(default=None, max_length=50)
    type: TransactionType | None = None
    description: str | None = Field(default=None, max_length=200)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: SortField = "date"
    sort_order: SortOrder = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class TransactionStatsQuery(_DateRangeQuery):
    pass


class CategoryStatsQuery(_DateRangeQuery):
    type: TransactionType | None = None


class MonthlyStatsQuery(BaseModel):
    model_config = _INPUT_CONFIG

    year: int | None = Field(default=None, ge=1, le=9999)


class Pagination(BaseModel):
    model_config = _CAMEL_CONFIG

    current_page: int
    total_pages: int
    total_transactions: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> Pagination:
        total_pages = math.ceil(total / limit)
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_transactions=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class TransactionPage(BaseModel):
    model_config = _CAMEL_CONFIG

    transactions: list[Transaction]
    pagination: Pagination


class TypeStats(BaseModel):
    model_config = _CAMEL_CONFIG

    total_income: JsonDecimal = Decimal("0")
    total_expense: JsonDecimal = Decimal("0")
    net_amount: JsonDecimal = Decimal("0")
    income_count: int = 0
    expense_count: int = 0
    total_transactions: int = 0
    average_income: JsonDecimal = Decimal("0")
    average_expense: JsonDecimal = Decimal("0")


class CategoryStat(BaseModel):
    model_config = _CAMEL_CONFIG

    category: str
    type: TransactionType
    total: JsonDecimal
    count: int
    average: JsonDecimal


class MonthlyStat(BaseModel):
    model_config = _CAMEL_CONFIG

    year: int
    month: int
    income: JsonDecimal = Decimal("0")
    expense: JsonDecimal = Decimal("0")
    income_count: int = 0
    expense_count: int = 0
    net: JsonDecimal = Decimal("0")
    total_transactions: int = 0
