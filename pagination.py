import math
from dataclasses import dataclass

MAX_LIMIT = 100
DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int
    skip: int


def normalize(page: int = 1, limit: int = DEFAULT_LIMIT) -> PageRequest:
    page = max(1, page)
    limit = min(max(1, limit), MAX_LIMIT)
    return PageRequest(page=page, limit=limit, skip=(page - 1) * limit)


def metadata(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit),
    }
