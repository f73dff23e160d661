from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from audit import RecordingAuditSink
from database import Base
from errors import NotFoundError, ValidationError
from models import Expense, ExpenseCategory, new_id
from schemas import ExpenseCreate, ExpenseUpdate, UserCreate
from services import ExpenseService, UserService

NOW = datetime(2025, 3, 15, 12, 0, 0)


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_user(session: Session, email: str = "ann@x.com", budget: float = 100.0):
    return UserService(session, RecordingAuditSink()).create(
        UserCreate(name="Ann", email=email, monthly_budget=budget)
    )


def expense_data(user_id: str, **overrides) -> ExpenseCreate:
    values = {
        "user_id": user_id,
        "title": "Coffee",
        "amount": 5.0,
        "category": ExpenseCategory.food,
        "date": datetime(2025, 3, 10, 8, 30),
    }
    values.update(overrides)
    return ExpenseCreate(**values)


def test_create_embeds_owner_snapshot() -> None:
    session = make_session()
    user = make_user(session)
    audit = RecordingAuditSink()

    expense = ExpenseService(session, audit, clock=lambda: NOW).create(
        expense_data(user.id, title="  Lunch ")
    )

    assert len(expense.id) == 32
    assert expense.user_id == user.id
    assert expense.title == "Lunch"
    assert expense.user is not None
    assert expense.user.email == "ann@x.com"
    assert expense.user.monthly_budget == 100.0
    assert audit.events == [
        ("expense_created", {"id": expense.id, "amount": 5.0, "category": "Food"})
    ]


def test_create_for_missing_user_reports_not_found_first() -> None:
    session = make_session()
    service = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW)

    with pytest.raises(NotFoundError) as excinfo:
        service.create(expense_data(new_id()))
    assert excinfo.value.message == "User not found"

    # the missing owner wins over a bad amount
    bad = ExpenseCreate.model_construct(
        user_id=new_id(),
        title="Coffee",
        amount=0,
        category="Food",
        date=datetime(2025, 3, 10),
    )
    with pytest.raises(NotFoundError):
        service.create(bad)
    assert session.query(Expense).count() == 0


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"amount": 0}, "Expense amount must be greater than 0"),
        ({"amount": -2.5}, "Expense amount must be greater than 0"),
        (
            {"date": datetime(2025, 3, 15, 12, 0, 1)},
            "Expense date cannot be in the future",
        ),
        ({"title": "x"}, "Title must be at least 2 characters long"),
    ],
)
def test_create_rechecks_rules_for_direct_callers(overrides, message) -> None:
    session = make_session()
    user = make_user(session)
    values = {
        "user_id": user.id,
        "title": "Coffee",
        "amount": 5.0,
        "category": "Food",
        "date": datetime(2025, 3, 10),
    }
    values.update(overrides)

    with pytest.raises(ValidationError) as excinfo:
        ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW).create(
            ExpenseCreate.model_construct(**values)
        )
    assert excinfo.value.message == message
    assert session.query(Expense).count() == 0


def test_create_rejects_unknown_category_from_direct_callers() -> None:
    session = make_session()
    user = make_user(session)
    data = ExpenseCreate.model_construct(
        user_id=user.id,
        title="Coffee",
        amount=5.0,
        category="Groceries",
        date=datetime(2025, 3, 10),
    )

    with pytest.raises(ValidationError) as excinfo:
        ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW).create(data)
    assert excinfo.value.message.startswith("Category must be one of: Food, Travel")


def test_date_equal_to_now_is_accepted() -> None:
    session = make_session()
    user = make_user(session)

    expense = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW).create(
        expense_data(user.id, date=NOW)
    )
    assert expense.date == NOW


def test_get_returns_owner_and_missing_raises() -> None:
    session = make_session()
    user = make_user(session)
    service = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW)
    created = service.create(expense_data(user.id))

    fetched = service.get(created.id)
    assert fetched.id == created.id
    assert fetched.user.name == "Ann"
    assert fetched.category == ExpenseCategory.food

    with pytest.raises(NotFoundError) as excinfo:
        service.get(new_id())
    assert excinfo.value.message == "Expense not found"


def test_list_filters_orders_and_counts() -> None:
    session = make_session()
    user = make_user(session)
    other = make_user(session, email="bob@x.com")
    service = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW)

    for title, category, date in [
        ("Train", "Travel", datetime(2025, 1, 5)),
        ("Dinner", "Food", datetime(2025, 2, 20)),
        ("Flight", "Travel", datetime(2025, 3, 1)),
    ]:
        service.create(
            expense_data(user.id, title=title, category=category, date=date)
        )
    service.create(expense_data(other.id, title="Hotel", category="Travel"))

    items, total = service.list(user.id)
    assert total == 3
    assert [item.title for item in items] == ["Flight", "Dinner", "Train"]
    assert all(item.user.id == user.id for item in items)

    items, total = service.list(user.id, category="Travel")
    assert total == 2
    assert [item.title for item in items] == ["Flight", "Train"]

    items, total = service.list(
        user.id, start_date=datetime(2025, 2, 1), end_date=datetime(2025, 3, 1)
    )
    assert [item.title for item in items] == ["Flight", "Dinner"]

    items, total = service.list(user.id, limit=1, skip=1)
    assert total == 3
    assert [item.title for item in items] == ["Dinner"]


def test_list_for_missing_user_raises_not_found() -> None:
    session = make_session()
    with pytest.raises(NotFoundError):
        ExpenseService(session, RecordingAuditSink()).list(new_id())


def test_update_changes_fields_and_revalidates() -> None:
    session = make_session()
    user = make_user(session)
    audit = RecordingAuditSink()
    service = ExpenseService(session, audit, clock=lambda: NOW)
    created = service.create(expense_data(user.id))

    updated = service.update(created.id, ExpenseUpdate(amount=7.25, category="Other"))
    assert updated.amount == 7.25
    assert updated.category == ExpenseCategory.other
    assert updated.title == "Coffee"
    assert audit.names()[-1] == "expense_updated"

    with pytest.raises(ValidationError):
        service.update(
            created.id,
            ExpenseUpdate.model_construct(date=datetime(2026, 1, 1)),
        )


def test_update_can_move_expense_to_another_user() -> None:
    session = make_session()
    ann = make_user(session)
    bob = make_user(session, email="bob@x.com")
    service = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW)
    created = service.create(expense_data(ann.id))

    moved = service.update(created.id, ExpenseUpdate(user_id=bob.id))
    assert moved.user_id == bob.id
    assert moved.user.email == "bob@x.com"

    with pytest.raises(NotFoundError) as excinfo:
        service.update(created.id, ExpenseUpdate(user_id=new_id()))
    assert excinfo.value.message == "User not found"
    assert service.get(created.id).user_id == bob.id


def test_delete_and_delete_all_for_user() -> None:
    session = make_session()
    user = make_user(session)
    service = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW)
    first = service.create(expense_data(user.id))
    service.create(expense_data(user.id, title="Tea"))

    service.delete(first.id)
    with pytest.raises(NotFoundError):
        service.delete(first.id)

    assert service.delete_all_for_user(user.id) == 1
    assert service.delete_all_for_user(user.id) == 0
    assert service.list(user.id)[1] == 0


def test_amounts_are_stored_as_whole_cents() -> None:
    session = make_session()
    user = make_user(session, budget=99.999)
    service = ExpenseService(session, RecordingAuditSink(), clock=lambda: NOW)

    created = service.create(expense_data(user.id, amount=19.999))
    stored = session.get(Expense, created.id)

    assert stored.amount_cents == 2000
    assert created.amount == 20.0
    assert user.monthly_budget_cents == 10000

    with pytest.raises(ValidationError) as excinfo:
        service.create(expense_data(user.id, amount=0.004))
    assert excinfo.value.message == "Expense amount must be greater than 0"
