"""Request logging middleware."""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from structlog.contextvars import bind_contextvars, clear_contextvars

from fpl_sync.monitoring import get_logger

log = get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with structured metadata.

    - Binds request_id, method and path to structlog contextvars so store,
      cache and error-handler events of the request carry them
    - Echoes the request id in the X-Request-ID response header
    - Skips the completion event for health checks to reduce noise
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        clear_contextvars()

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start_time = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        if request.url.path != "/api/health":
            log.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=int((time.perf_counter() - start_time) * 1000),
            )
        return response
