from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from audit import AuditSink, default_audit_sink
from errors import ConflictError, NotFoundError, ValidationError
from models import Expense, ExpenseCategory, User, cents_to_amount, to_cents
from periods import local_now, month_window, to_local_naive
from schemas import (
    ExpenseCreate,
    ExpenseOut,
    ExpenseSummary,
    ExpenseUpdate,
    OwnerSnapshot,
    UserCreate,
    UserUpdate,
)
from validators import expense_record_errors, user_record_errors

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _raise_if_invalid(errors: list[str]) -> None:
    if errors:
        raise ValidationError(", ".join(errors))


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _normalize_text(value: Optional[str]) -> str:
    return (value or "").strip()


def _normalize_category(value: Any) -> Any:
    if isinstance(value, ExpenseCategory):
        return value
    if isinstance(value, str):
        return value.strip()
    return value


def _is_email_conflict(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "uq_users_email" in text or ("unique" in text and "email" in text)


class UserService:
    def __init__(self, session: Session, audit: Optional[AuditSink] = None) -> None:
        self.session = session
        self.audit = audit or default_audit_sink

    def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(User.id).where(User.email == email)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return self.session.scalar(stmt.limit(1)) is not None

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if _is_email_conflict(exc):
                raise ConflictError("Email already in use") from exc
            raise

    def create(self, data: UserCreate) -> User:
        name = _normalize_text(data.name)
        email = normalize_email(data.email)
        _raise_if_invalid(user_record_errors(name, email, data.monthly_budget))
        if self._email_taken(email):
            raise ConflictError("Email already in use")

        user = User(
            name=name,
            email=email,
            monthly_budget_cents=to_cents(data.monthly_budget),
        )
        self.session.add(user)
        self._commit()
        self.session.refresh(user)
        self.audit.record("user_created", id=user.id, email=user.email)
        return user

    def get(self, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(User.email == normalize_email(email))
        )

    def update(self, user_id: str, data: UserUpdate) -> User:
        user = self.get(user_id)
        changes = data.model_dump(exclude_unset=True)

        name = _normalize_text(changes["name"]) if "name" in changes else user.name
        email = (
            normalize_email(changes["email"]) if "email" in changes else user.email
        )
        monthly_budget = changes.get("monthly_budget", user.monthly_budget)
        _raise_if_invalid(user_record_errors(name, email, monthly_budget))
        if email != user.email and self._email_taken(email, exclude_id=user.id):
            raise ConflictError("Email already in use")

        user.name = name
        user.email = email
        user.monthly_budget_cents = to_cents(monthly_budget)
        self._commit()
        self.session.refresh(user)
        self.audit.record("user_updated", id=user.id, fields=",".join(sorted(changes)))
        return user

    def delete(self, user_id: str, *, commit: bool = True) -> None:
        """Remove the user row only; expenses are left to the caller."""
        user = self.get(user_id)
        self.session.delete(user)
        if commit:
            self.session.commit()
            self.audit.record("user_deleted", id=user_id)
        else:
            self.session.flush()

    def list(self, limit: int = 10, skip: int = 0) -> tuple[list[User], int]:
        users = self.session.scalars(
            select(User).order_by(User.created_at.desc()).limit(limit).offset(skip)
        ).all()
        total = self.session.execute(select(func.count(User.id))).scalar_one()
        return list(users), int(total or 0)


class ExpenseService:
    def __init__(
        self,
        session: Session,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.session = session
        self.audit = audit or default_audit_sink
        self.clock = clock or local_now

    @staticmethod
    def _enrich(expense: Expense, owner: Optional[User]) -> ExpenseOut:
        return ExpenseOut(
            id=expense.id,
            user_id=expense.user_id,
            user=OwnerSnapshot.model_validate(owner) if owner is not None else None,
            title=expense.title,
            amount=expense.amount,
            category=expense.category,
            date=expense.date,
            created_at=expense.created_at,
            updated_at=expense.updated_at,
        )

    def _require_user(self, user_id: str) -> User:
        owner = self.session.get(User, user_id)
        if not owner:
            raise NotFoundError("User")
        return owner

    def _get_model(self, expense_id: str) -> Expense:
        expense = self.session.scalar(
            select(Expense)
            .options(joinedload(Expense.user))
            .where(Expense.id == expense_id)
        )
        if not expense:
            raise NotFoundError("Expense")
        return expense

    def create(self, data: ExpenseCreate) -> ExpenseOut:
        title = _normalize_text(data.title)
        category = _normalize_category(data.category)
        date = data.date
        if isinstance(date, datetime):
            date = to_local_naive(date)

        owner = self._require_user(data.user_id)
        _raise_if_invalid(
            expense_record_errors(title, data.amount, category, date, self.clock())
        )

        expense = Expense(
            user_id=owner.id,
            title=title,
            amount_cents=to_cents(data.amount),
            category=ExpenseCategory(category),
            date=date,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        self.audit.record(
            "expense_created",
            id=expense.id,
            amount=expense.amount,
            category=expense.category.value,
        )
        return self._enrich(expense, owner)

    def get(self, expense_id: str) -> ExpenseOut:
        expense = self._get_model(expense_id)
        return self._enrich(expense, expense.user)

    def list(
        self,
        user_id: str,
        *,
        limit: int = 10,
        skip: int = 0,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> tuple[list[ExpenseOut], int]:
        owner = self._require_user(user_id)

        conditions = [Expense.user_id == owner.id]
        if category:
            conditions.append(Expense.category == ExpenseCategory(category))
        if start_date is not None:
            conditions.append(Expense.date >= start_date)
        if end_date is not None:
            conditions.append(Expense.date <= end_date)

        rows = self.session.scalars(
            select(Expense)
            .where(*conditions)
            .order_by(Expense.date.desc())
            .limit(limit)
            .offset(skip)
        ).all()
        total = self.session.execute(
            select(func.count(Expense.id)).where(*conditions)
        ).scalar_one()
        return [self._enrich(row, owner) for row in rows], int(total or 0)

    def update(self, expense_id: str, data: ExpenseUpdate) -> ExpenseOut:
        expense = self._get_model(expense_id)
        changes = data.model_dump(exclude_unset=True)

        owner = expense.user
        if "user_id" in changes and changes["user_id"] != expense.user_id:
            owner = self._require_user(changes["user_id"])

        title = (
            _normalize_text(changes["title"]) if "title" in changes else expense.title
        )
        amount = changes.get("amount", expense.amount)
        category = _normalize_category(changes.get("category", expense.category))
        date = changes.get("date", expense.date)
        if isinstance(date, datetime):
            date = to_local_naive(date)
        _raise_if_invalid(
            expense_record_errors(title, amount, category, date, self.clock())
        )

        expense.user = owner
        expense.title = title
        expense.amount_cents = to_cents(amount)
        expense.category = ExpenseCategory(category)
        expense.date = date
        self.session.commit()
        self.session.refresh(expense)
        self.audit.record(
            "expense_updated", id=expense.id, fields=",".join(sorted(changes))
        )
        return self._enrich(expense, owner)

    def delete(self, expense_id: str) -> None:
        expense = self._get_model(expense_id)
        self.session.delete(expense)
        self.session.commit()
        self.audit.record("expense_deleted", id=expense_id)

    def delete_all_for_user(self, user_id: str, *, commit: bool = True) -> int:
        result = self.session.execute(delete(Expense).where(Expense.user_id == user_id))
        if commit:
            self.session.commit()
        return int(result.rowcount or 0)


def delete_user_and_expenses(
    session: Session, user_id: str, audit: Optional[AuditSink] = None
) -> int:
    """Delete a user together with every expense it owns.

    Expenses go first and both deletes share one transaction, so readers never
    see expenses pointing at a missing user. A missing user aborts the whole
    operation with ``NotFoundError`` and nothing is removed. Returns the number
    of expenses deleted.
    """
    audit = audit or default_audit_sink
    try:
        removed = ExpenseService(session, audit).delete_all_for_user(
            user_id, commit=False
        )
        UserService(session, audit).delete(user_id, commit=False)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("deleted user %s and %d expense(s)", user_id, removed)
    audit.record("user_deleted", id=user_id, expenses_removed=removed)
    return removed


class SummaryService:
    def __init__(self, session: Session, clock: Optional[Clock] = None) -> None:
        self.session = session
        self.clock = clock or local_now

    def category_totals(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[tuple[ExpenseCategory, int, int]]:
        """Per-category (total cents, count) for expenses dated in [start, end]."""
        stmt = (
            select(
                Expense.category,
                func.coalesce(func.sum(Expense.amount_cents), 0),
                func.count(Expense.id),
            )
            .where(Expense.user_id == user_id, Expense.date.between(start, end))
            .group_by(Expense.category)
        )
        return [
            (category, int(cents), int(count))
            for category, cents, count in self.session.execute(stmt).all()
        ]

    def monthly_summary(
        self, user_id: str, *, now: Optional[datetime] = None
    ) -> ExpenseSummary:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User")

        period = month_window(now or self.clock())
        groups = self.category_totals(user.id, period.start, period.end)

        total_cents = sum(cents for _, cents, _ in groups)
        expense_count = sum(count for _, _, count in groups)
        remaining_cents = max(0, user.monthly_budget_cents - total_cents)
        by_category = {
            ExpenseCategory(category).value: cents_to_amount(cents)
            for category, cents, _ in groups
        }
        return ExpenseSummary(
            total_expenses=cents_to_amount(total_cents),
            remaining_budget=cents_to_amount(remaining_cents),
            expense_count=expense_count,
            monthly_budget=user.monthly_budget,
            expenses_by_category=by_category,
        )
