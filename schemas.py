import datetime as dt
import re
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from models import ExpenseCategory
from periods import local_now, to_local_naive

ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def _coerce_date_only(value: Any) -> Any:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time.min)
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            return dt.datetime.combine(
                dt.date.fromisoformat(value.strip()), dt.time.min
            )
        except ValueError:
            return value
    return value


def _check_user_id(value: str) -> str:
    if not ID_PATTERN.match(value):
        raise PydanticCustomError("id_format", "Invalid user ID format")
    return value


def _check_not_future(value: dt.datetime) -> dt.datetime:
    value = to_local_naive(value)
    if value > local_now():
        raise PydanticCustomError(
            "date_in_future", "Expense date cannot be in the future"
        )
    return value


Name = Annotated[str, Field(min_length=2, max_length=100)]
Title = Annotated[str, Field(min_length=2, max_length=200)]
Money = Annotated[float, Field(gt=0, allow_inf_nan=False)]
UserId = Annotated[str, AfterValidator(_check_user_id)]
ExpenseDate = Annotated[
    dt.datetime, BeforeValidator(_coerce_date_only), AfterValidator(_check_not_future)
]
FilterDate = Annotated[
    dt.datetime, BeforeValidator(_coerce_date_only), AfterValidator(to_local_naive)
]


class InputModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class PartialInputModel(InputModel):
    """Every field optional, but a field that is sent may not be null."""

    @field_validator("*", mode="before")
    @classmethod
    def _reject_explicit_null(cls, value: Any) -> Any:
        if value is None:
            raise PydanticCustomError("null_value", "Value cannot be null")
        return value


class UserCreate(InputModel):
    name: Name
    email: EmailStr
    monthly_budget: Money


class UserUpdate(PartialInputModel):
    name: Optional[Name] = None
    email: Optional[EmailStr] = None
    monthly_budget: Optional[Money] = None


class ExpenseCreate(InputModel):
    user_id: UserId
    title: Title
    amount: Money
    category: ExpenseCategory
    date: ExpenseDate


class ExpenseUpdate(PartialInputModel):
    user_id: Optional[UserId] = None
    title: Optional[Title] = None
    amount: Optional[Money] = None
    category: Optional[ExpenseCategory] = None
    date: Optional[ExpenseDate] = None


class PaginationParams(InputModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class ExpenseFilters(InputModel):
    category: Optional[ExpenseCategory] = None
    start_date: Optional[FilterDate] = None
    end_date: Optional[FilterDate] = None

    @model_validator(mode="after")
    def _check_range(self) -> "ExpenseFilters":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise PydanticCustomError(
                "date_range", "Start date must be before end date"
            )
        return self


class OutputModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )


class UserOut(OutputModel):
    id: str
    name: str
    email: str
    monthly_budget: float
    created_at: dt.datetime
    updated_at: dt.datetime


class OwnerSnapshot(OutputModel):
    id: str
    name: str
    email: str
    monthly_budget: float


class ExpenseOut(OutputModel):
    id: str
    user_id: str
    user: Optional[OwnerSnapshot]
    title: str
    amount: float
    category: ExpenseCategory
    date: dt.datetime
    created_at: dt.datetime
    updated_at: dt.datetime


class ExpenseSummary(OutputModel):
    total_expenses: float
    remaining_budget: float
    expense_count: int
    monthly_budget: float
    expenses_by_category: dict[str, float] = Field(default_factory=dict)
