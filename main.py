import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

import envelope
from app_logging import configure_logging, request_logging_middleware
from config import get_settings
from database import SessionLocal, engine, init_db
from errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    server_error_handler,
)
from pagination import metadata, normalize
from schemas import UserOut
from services import (
    ExpenseService,
    SummaryService,
    UserService,
    delete_user_and_expenses,
)
from validators import (
    validate_expense_create,
    validate_expense_filters,
    validate_expense_update,
    validate_object_id,
    validate_pagination,
    validate_user_create,
    validate_user_update,
)

logger = logging.getLogger("budget")
settings = get_settings()

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(settings.log_level)
    init_db()
    logger.info(
        "Expense budget API started env=%s prefix=%s",
        settings.environment,
        settings.api_prefix,
    )
    yield
    engine.dispose()
    logger.info("Database connection closed and server shut down")


app = FastAPI(
    title="Expense Budget API", debug=settings.is_development, lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.middleware("http")(request_logging_middleware)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):  # type: ignore
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, server_error_handler)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


router = APIRouter(prefix=settings.api_prefix)


@router.get("/health")
def health():
    return {
        "success": True,
        "message": "Server is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


# Users -------------------------------------------------------------


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(payload: Any = Body(default=None), db: Session = Depends(get_db)):
    data = validate_user_create(payload)
    user = UserService(db).create(data)
    return envelope.created(
        UserOut.model_validate(user), "User created successfully"
    )


@router.get("/users")
def list_users(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
):
    params = validate_pagination({"page": page, "limit": limit})
    window = normalize(params.page, params.limit)
    users, total = UserService(db).list(window.limit, window.skip)
    return envelope.paginated(
        [UserOut.model_validate(user) for user in users],
        metadata(window.page, window.limit, total),
        "Users retrieved successfully",
    )


@router.get("/users/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db)):
    validate_object_id(user_id, "User")
    user = UserService(db).get(user_id)
    return envelope.success(
        UserOut.model_validate(user), "User retrieved successfully"
    )


@router.put("/users/{user_id}")
def update_user(
    user_id: str, payload: Any = Body(default=None), db: Session = Depends(get_db)
):
    validate_object_id(user_id, "User")
    data = validate_user_update(payload)
    user = UserService(db).update(user_id, data)
    return envelope.success(
        UserOut.model_validate(user), "User updated successfully"
    )


@router.delete("/users/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db)):
    validate_object_id(user_id, "User")
    delete_user_and_expenses(db, user_id)
    return envelope.success(None, "User deleted successfully")


@router.get("/users/{user_id}/expenses")
def list_user_expenses(
    user_id: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
):
    validate_object_id(user_id, "User")
    params = validate_pagination({"page": page, "limit": limit})
    filters = validate_expense_filters(
        {"category": category, "startDate": start_date, "endDate": end_date}
    )
    window = normalize(params.page, params.limit)
    expenses, total = ExpenseService(db).list(
        user_id,
        limit=window.limit,
        skip=window.skip,
        category=filters.category,
        start_date=filters.start_date,
        end_date=filters.end_date,
    )
    return envelope.paginated(
        expenses,
        metadata(window.page, window.limit, total),
        "User expenses retrieved successfully",
    )


@router.get("/users/{user_id}/summary")
def get_expense_summary(user_id: str, db: Session = Depends(get_db)):
    validate_object_id(user_id, "User")
    summary = SummaryService(db).monthly_summary(user_id)
    return envelope.success(summary, "Expense summary retrieved successfully")


# Expenses ----------------------------------------------------------


@router.post("/expenses", status_code=status.HTTP_201_CREATED)
def create_expense(payload: Any = Body(default=None), db: Session = Depends(get_db)):
    data = validate_expense_create(payload)
    expense = ExpenseService(db).create(data)
    return envelope.created(expense, "Expense created successfully")


@router.get("/expenses/{expense_id}")
def get_expense(expense_id: str, db: Session = Depends(get_db)):
    validate_object_id(expense_id, "Expense")
    expense = ExpenseService(db).get(expense_id)
    return envelope.success(expense, "Expense retrieved successfully")


@router.put("/expenses/{expense_id}")
def update_expense(
    expense_id: str, payload: Any = Body(default=None), db: Session = Depends(get_db)
):
    validate_object_id(expense_id, "Expense")
    data = validate_expense_update(payload)
    expense = ExpenseService(db).update(expense_id, data)
    return envelope.success(expense, "Expense updated successfully")


@router.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str, db: Session = Depends(get_db)):
    validate_object_id(expense_id, "Expense")
    ExpenseService(db).delete(expense_id)
    return envelope.success(None, "Expense deleted successfully")


app.include_router(router)


def main():
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
