"""Populate the database with sample users and expenses.

Run with ``python seed.py``. Existing users and expenses are removed first.
Expense dates are placed in the current and the previous month so the
summary endpoint has something to report.
"""

import logging
from datetime import datetime, time, timedelta

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app_logging import configure_logging
from audit import AuditSink, RecordingAuditSink
from database import init_db, session_scope
from models import Expense, ExpenseCategory, User
from periods import local_now
from schemas import ExpenseCreate, UserCreate
from services import ExpenseService, UserService

logger = logging.getLogger("budget.seed")

SAMPLE_USERS = [
    ("John Doe", "john.doe@example.com", 3000),
    ("Jane Smith", "jane.smith@example.com", 2500),
    ("Bob Johnson", "bob.johnson@example.com", 4000),
    ("Alice Williams", "alice.williams@example.com", 3500),
    ("Charlie Brown", "charlie.brown@example.com", 2800),
    ("Diana Prince", "diana.prince@example.com", 5000),
]

# (user index, title, amount, category, month offset, day of month)
SAMPLE_EXPENSES = [
    (0, "Lunch at restaurant", 25.50, ExpenseCategory.food, 0, 1),
    (0, "Bus ticket", 5.00, ExpenseCategory.travel, 0, 2),
    (0, "New shoes", 120.00, ExpenseCategory.shopping, -1, 20),
    (0, "Coffee and pastry", 8.75, ExpenseCategory.food, 0, 3),
    (1, "Movie tickets", 30.00, ExpenseCategory.entertainment, 0, 1),
    (1, "Electricity bill", 85.00, ExpenseCategory.utilities, -1, 12),
    (1, "Doctor visit", 150.00, ExpenseCategory.healthcare, 0, 2),
    (1, "Clothing shopping", 95.50, ExpenseCategory.shopping, -1, 23),
    (2, "Online course", 199.99, ExpenseCategory.education, 0, 1),
    (2, "Groceries", 75.50, ExpenseCategory.food, 0, 4),
    (2, "Flight tickets", 450.00, ExpenseCategory.travel, -1, 22),
    (2, "Concert tickets", 120.00, ExpenseCategory.entertainment, 0, 5),
    (3, "Gym membership", 45.00, ExpenseCategory.healthcare, 0, 1),
    (3, "Pizza dinner", 18.99, ExpenseCategory.food, 0, 3),
    (3, "Book purchase", 24.99, ExpenseCategory.education, -1, 19),
    (4, "Internet bill", 60.00, ExpenseCategory.utilities, 0, 2),
    (4, "Taxi ride", 22.40, ExpenseCategory.travel, 0, 6),
    (5, "Team dinner", 210.00, ExpenseCategory.food, 0, 1),
    (5, "Laptop stand", 49.90, ExpenseCategory.shopping, -1, 8),
    (5, "Museum visit", 15.00, ExpenseCategory.other, 0, 7),
]


def sample_date(now: datetime, month_offset: int, day: int) -> datetime:
    """Noon on ``day`` of the current (0) or previous (-1) month, never after now."""
    first = now.date().replace(day=1)
    if month_offset < 0:
        first = (first - timedelta(days=1)).replace(day=1)
        return datetime.combine(first.replace(day=min(day, 28)), time(12, 0))
    target = first.replace(day=min(day, now.day))
    return min(datetime.combine(target, time(12, 0)), now)


def seed(session: Session, audit: AuditSink, now: datetime) -> tuple[int, int]:
    logger.info("clearing existing data")
    session.execute(delete(Expense))
    session.execute(delete(User))
    session.commit()

    logger.info("creating sample users")
    users = UserService(session, audit)
    created = [
        users.create(UserCreate(name=name, email=email, monthly_budget=budget))
        for name, email, budget in SAMPLE_USERS
    ]

    logger.info("creating sample expenses")
    expenses = ExpenseService(session, audit, clock=lambda: now)
    for index, title, amount, category, month_offset, day in SAMPLE_EXPENSES:
        expenses.create(
            ExpenseCreate(
                user_id=created[index].id,
                title=title,
                amount=amount,
                category=category,
                date=sample_date(now, month_offset, day),
            )
        )
    return len(created), len(SAMPLE_EXPENSES)


def main() -> None:
    configure_logging("INFO")
    init_db()
    audit = RecordingAuditSink()
    with session_scope() as session:
        user_count, expense_count = seed(session, audit, local_now())
    logger.info(
        "seed complete: users=%d expenses=%d audit_events=%d",
        user_count,
        expense_count,
        len(audit.events),
    )


if __name__ == "__main__":
    main()
