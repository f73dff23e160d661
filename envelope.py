from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette import status


def success(
    data: Any,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
) -> dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "data": jsonable_encoder(data, by_alias=True),
        "statusCode": status_code,
    }


def created(data: Any, message: str = "Created successfully") -> dict[str, Any]:
    return success(data, message, status.HTTP_201_CREATED)


def paginated(
    items: list[Any], pagination: dict[str, int], message: str = "Success"
) -> dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "data": jsonable_encoder(items, by_alias=True),
        "pagination": pagination,
    }


def error_response(
    status_code: int,
    error: str,
    message: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message or error,
            "error": error,
            "statusCode": status_code,
        },
        headers=headers,
    )
