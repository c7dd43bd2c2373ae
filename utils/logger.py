import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s %(levelname)s [%(name)s] rid=%(request_id)s %(message)s",
)

# Request id of the request being handled, visible to every log record
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging() -> None:
    """Configure root logging and common third-party loggers (uvicorn).

    - Level controlled by LOG_LEVEL env var (default INFO)
    - Every record carries the current request id
    - Align uvicorn loggers with our level
    """
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    root = logging.getLogger()
    # If logging is already configured (e.g., by uvicorn), don't add duplicate handlers
    if not any(isinstance(f, RequestIdFilter) for h in root.handlers for f in h.filters):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestIdFilter())
        root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """Middleware that:
    - Uses the incoming X-Request-ID or generates one
    - Logs request start and completion with latency and status code
    - Attaches request_id to response headers
    """

    def __init__(self, app):
        super().__init__(app)
        self.logger = logging.getLogger("ontheform.http")

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        method, path = request.method, request.url.path

        self.logger.info("request start %s %s", method, path)
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            self.logger.info(
                "request end %s %s status=%s time_ms=%d",
                method,
                path,
                response.status_code,
                (time.perf_counter() - start) * 1000,
            )
            return response
        except Exception:
            self.logger.exception(
                "request error %s %s time_ms=%d", method, path, (time.perf_counter() - start) * 1000
            )
            raise
        finally:
            request_id_var.reset(token)
