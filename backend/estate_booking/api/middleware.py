"""
Request middleware for logging, timing, and request ID tracking.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from estate_booking.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds request_id/method/path into structlog contextvars so booking
    events logged by services can be correlated with the HTTP call, then
    logs the outcome with its duration. An upstream request id (gateway,
    payment callback) is reused when present.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
