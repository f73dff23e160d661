"""Input validation entry points.

Every helper funnels a raw payload through its pydantic schema and turns a
failure into a single ``ValidationError`` whose message lists every field
problem, joined with ``", "``. Referenced users are not looked up here; that
happens in the service layer when the record is written.
"""

from datetime import datetime
from typing import Any, Mapping, Optional, TypeVar

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from errors import ValidationError
from models import EXPENSE_CATEGORIES, to_cents
from schemas import (
    ID_PATTERN,
    ExpenseCreate,
    ExpenseFilters,
    ExpenseUpdate,
    PaginationParams,
    UserCreate,
    UserUpdate,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

FIELD_LABELS = {
    "name": "Name",
    "email": "Email",
    "monthly_budget": "Monthly budget",
    "user_id": "User ID",
    "title": "Title",
    "amount": "Amount",
    "category": "Category",
    "date": "Date",
    "page": "Page",
    "limit": "Limit",
    "start_date": "Start date",
    "end_date": "End date",
}

_NUMBER_ERRORS = {
    "float_parsing",
    "float_type",
    "finite_number",
    "int_parsing",
    "int_type",
}
_DATETIME_ERRORS = {
    "datetime_parsing",
    "datetime_type",
    "datetime_from_date_parsing",
    "datetime_object_invalid",
}


def _bound(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:g}"
    return str(value)


def _describe(error: Mapping[str, Any]) -> str:
    loc = error.get("loc") or ()
    key = str(loc[0]) if loc else ""
    field = to_snake(key) if key else ""
    label = FIELD_LABELS.get(field, key or "Input")
    kind = error.get("type", "")
    ctx = error.get("ctx") or {}

    if kind == "extra_forbidden":
        return f'"{key}" is not allowed'
    if kind == "missing" or (kind == "string_too_short" and error.get("input") == ""):
        return f"{label} is required"
    if kind == "string_too_short":
        return f"{label} must be at least {ctx.get('min_length')} characters long"
    if kind == "string_too_long":
        return f"{label} cannot exceed {ctx.get('max_length')} characters"
    if kind == "string_type":
        return f"{label} must be a string"
    if kind == "greater_than":
        return f"{label} must be greater than {_bound(ctx.get('gt'))}"
    if kind == "greater_than_equal":
        return f"{label} must be at least {_bound(ctx.get('ge'))}"
    if kind == "less_than_equal":
        return f"{label} cannot exceed {_bound(ctx.get('le'))}"
    if kind in _NUMBER_ERRORS:
        return f"{label} must be a number"
    if kind == "int_from_float":
        return f"{label} must be an integer"
    if kind == "enum":
        return f"Invalid {label.lower()}"
    if kind in _DATETIME_ERRORS:
        return f"Invalid {label.lower()} format"
    if field == "email" and kind == "value_error":
        return "Invalid email format"
    if kind == "null_value":
        return f"{label} cannot be null"
    # custom errors (id, future date, date range) carry their own text
    return str(error.get("msg", "Invalid value"))


def format_errors(exc: PydanticValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        message = _describe(error)
        if message not in messages:
            messages.append(message)
    return ", ".join(messages)


def validate_payload(schema: type[ModelT], data: Any) -> ModelT:
    if data is None:
        data = {}
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(format_errors(exc)) from exc


def _without_nulls(data: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    return {key: value for key, value in (data or {}).items() if value is not None}


def validate_user_create(data: Any) -> UserCreate:
    return validate_payload(UserCreate, data)


def validate_user_update(data: Any) -> UserUpdate:
    return validate_payload(UserUpdate, data)


def validate_expense_create(data: Any) -> ExpenseCreate:
    return validate_payload(ExpenseCreate, data)


def validate_expense_update(data: Any) -> ExpenseUpdate:
    return validate_payload(ExpenseUpdate, data)


def validate_pagination(data: Optional[Mapping[str, Any]]) -> PaginationParams:
    return validate_payload(PaginationParams, _without_nulls(data))


def validate_expense_filters(data: Optional[Mapping[str, Any]]) -> ExpenseFilters:
    return validate_payload(ExpenseFilters, _without_nulls(data))


def validate_object_id(value: str, resource: str = "Resource") -> str:
    if not isinstance(value, str) or not ID_PATTERN.match(value):
        raise ValidationError(f"Invalid {resource.lower()} ID format")
    return value


def user_record_errors(name: str, email: str, monthly_budget: float) -> list[str]:
    """Rules re-checked on the record about to be written, after normalization."""
    errors = []
    if not name or len(name) < 2:
        errors.append("Name must be at least 2 characters long")
    elif len(name) > 100:
        errors.append("Name cannot exceed 100 characters")
    if not _is_valid_email(email):
        errors.append("Please provide a valid email address")
    if not _is_positive_amount(monthly_budget):
        errors.append("Monthly budget must be greater than 0")
    return errors


def expense_record_errors(
    title: str, amount: float, category: str, date: datetime, now: datetime
) -> list[str]:
    errors = []
    if not title or len(title) < 2:
        errors.append("Title must be at least 2 characters long")
    elif len(title) > 200:
        errors.append("Title cannot exceed 200 characters")
    if not _is_positive_amount(amount):
        errors.append("Expense amount must be greater than 0")
    if category not in EXPENSE_CATEGORIES:
        errors.append(f"Category must be one of: {', '.join(EXPENSE_CATEGORIES)}")
    if not isinstance(date, datetime):
        errors.append("Invalid date format")
    elif date > now:
        errors.append("Expense date cannot be in the future")
    return errors


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value == value and value > 0 and value != float("inf")


def _is_positive_amount(value: Any) -> bool:
    # amounts are stored in cents, so anything rounding to 0 cents is rejected
    return _is_positive_number(value) and to_cents(value) > 0


def _is_valid_email(email: str) -> bool:
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
