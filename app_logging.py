import logging
import sys
import time

from fastapi import Request

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

request_logger = logging.getLogger("budget.request")


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


async def request_logging_middleware(request: Request, call_next):  # type: ignore
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Response-Time"] = f"{duration_ms:.0f}"
    if not request.url.path.endswith("/health"):
        request_logger.info(
            "%s %s %s %.1f ms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
    return response
