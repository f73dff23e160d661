from datetime import datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from audit import RecordingAuditSink
from database import Base
from errors import NotFoundError
from models import Expense, User, new_id
from schemas import ExpenseCreate, UserCreate
from services import ExpenseService, UserService, delete_user_and_expenses


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_user_with_expenses(session: Session, email: str, count: int) -> User:
    audit = RecordingAuditSink()
    user = UserService(session, audit).create(
        UserCreate(name="Someone", email=email, monthly_budget=300)
    )
    expenses = ExpenseService(session, audit)
    for day in range(1, count + 1):
        expenses.create(
            ExpenseCreate(
                user_id=user.id,
                title=f"Expense {day}",
                amount=10 * day,
                category="Shopping",
                date=datetime(2025, 1, day),
            )
        )
    return user


def test_removes_user_and_every_owned_expense() -> None:
    session = make_session()
    doomed = add_user_with_expenses(session, "gone@x.com", 3)
    kept = add_user_with_expenses(session, "kept@x.com", 2)
    audit = RecordingAuditSink()

    removed = delete_user_and_expenses(session, doomed.id, audit)

    assert removed == 3
    assert session.get(User, doomed.id) is None
    assert session.scalars(
        select(Expense).where(Expense.user_id == doomed.id)
    ).all() == []
    assert session.get(User, kept.id) is not None
    assert len(session.scalars(select(Expense)).all()) == 2
    assert audit.events == [
        ("user_deleted", {"id": doomed.id, "expenses_removed": 3})
    ]


def test_user_without_expenses_is_deleted() -> None:
    session = make_session()
    user = add_user_with_expenses(session, "empty@x.com", 0)

    assert delete_user_and_expenses(session, user.id, RecordingAuditSink()) == 0
    assert session.get(User, user.id) is None


def test_missing_user_changes_nothing() -> None:
    session = make_session()
    kept = add_user_with_expenses(session, "kept@x.com", 2)
    audit = RecordingAuditSink()

    with pytest.raises(NotFoundError) as excinfo:
        delete_user_and_expenses(session, new_id(), audit)

    assert excinfo.value.message == "User not found"
    assert audit.events == []
    assert session.get(User, kept.id) is not None
    assert len(session.scalars(select(Expense)).all()) == 2


def test_second_delete_reports_not_found() -> None:
    session = make_session()
    user = add_user_with_expenses(session, "twice@x.com", 1)
    delete_user_and_expenses(session, user.id, RecordingAuditSink())

    with pytest.raises(NotFoundError):
        delete_user_and_expenses(session, user.id, RecordingAuditSink())
