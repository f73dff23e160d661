import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from envelope import error_response

logger = logging.getLogger("budget.errors")


class AppError(Exception):
    """Base class for failures the API reports to clients as-is."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


def _log_failure(request: Request, exc: Exception) -> None:
    logger.warning(
        "request failed: %s %s -> %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
    )


def app_error_handler(request: Request, exc: AppError):  # type: ignore
    _log_failure(request, exc)
    return error_response(exc.status_code, exc.message)


def request_validation_handler(request: Request, exc: RequestValidationError):  # type: ignore
    # Only reached for bodies FastAPI cannot parse at all (e.g. malformed JSON);
    # field rules are enforced by the validators module.
    _log_failure(request, exc)
    messages = ", ".join(str(err.get("msg", "Invalid request")) for err in exc.errors())
    return error_response(
        status.HTTP_400_BAD_REQUEST, messages or "Invalid request", "Validation failed"
    )


def http_error_handler(request: Request, exc: StarletteHTTPException):  # type: ignore
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        detail = f"No route for {request.method} {request.url.path}"
    else:
        detail = str(exc.detail)
    return error_response(exc.status_code, detail, headers=getattr(exc, "headers", None))


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception on %s %s", request.method, request.url.path)
    if get_settings().is_development and str(exc):
        detail = str(exc)
    else:
        detail = "Internal Server Error"
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, detail, "An error occurred"
    )
