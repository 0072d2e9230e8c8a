"""Middleware for request tracking and access logging."""

import time
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to every request and log its outcome.

    - Uses the X-Correlation-Id header if present, otherwise a new UUID4
    - Stores it in request.state.correlation_id
    - Binds it (plus method and path) to the structlog context
    - Echoes it in the X-Correlation-Id response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid4()))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        start_time = time.perf_counter()
        response = await call_next(request)

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        response.headers["X-Correlation-Id"] = correlation_id

        return response
