"""
Correlation ID Middleware

Tags each request with a correlation ID so request logs and any sweep it
triggers can be tied together.
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import get_logger, set_correlation_id
from ...utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds correlation ID to all requests.

    - Reuses an incoming X-Correlation-Id header or generates one
    - Sets it in the logging context
    - Echoes it in the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-Id") or generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - started) * 1000, 2)

        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms}ms",
            extra={"status": response.status_code}
        )
        response.headers["X-Correlation-Id"] = correlation_id
        return response
