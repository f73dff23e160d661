from datetime import datetime

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from audit import RecordingAuditSink
from database import Base
from models import Expense, User
from periods import local_now
from seed import SAMPLE_EXPENSES, SAMPLE_USERS, sample_date, seed


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_sample_dates_never_run_ahead_of_now() -> None:
    now = datetime(2025, 3, 2, 9, 0)
    assert sample_date(now, 0, 1) == datetime(2025, 3, 1, 12, 0)
    assert sample_date(now, 0, 5) == now
    assert sample_date(now, -1, 30) == datetime(2025, 2, 28, 12, 0)


def test_seed_is_repeatable() -> None:
    session = make_session()
    audit = RecordingAuditSink()
    now = local_now()

    assert seed(session, audit, now) == (len(SAMPLE_USERS), len(SAMPLE_EXPENSES))
    assert seed(session, audit, now) == (len(SAMPLE_USERS), len(SAMPLE_EXPENSES))

    assert session.scalar(select(func.count(User.id))) == len(SAMPLE_USERS)
    assert session.scalar(select(func.count(Expense.id))) == len(SAMPLE_EXPENSES)
    assert session.scalar(select(func.max(Expense.date))) <= now
