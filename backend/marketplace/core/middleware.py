"""Request logging middleware with request ID and timing."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# GET requests outside these prefixes are logged at DEBUG
_MONEY_PREFIXES = ("/api/offers", "/api/contracts", "/api/withdrawals", "/api/admin")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its request_id, status and duration."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        response.headers["X-Request-ID"] = request_id

        path = request.url.path
        level = logging.INFO
        if request.method == "GET" and not path.startswith(_MONEY_PREFIXES):
            level = logging.DEBUG
        if response.status_code >= 500:
            level = logging.ERROR
        logger.log(
            level,
            "request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
