"""
Custom middleware for the Callback API

Request logging with a correlation id that follows the request through
verification, registry access and outbound delivery.
"""

import time
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..shared.logging_config import CorrelationContext

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logging middleware for request/response tracking."""

    async def dispatch(self, request: Request, call_next):
        """Log request and response information under a correlation id."""
        start_time = time.time()

        with CorrelationContext(request.headers.get(CORRELATION_HEADER)) as context:
            logger.info(
                f"Request: {request.method} {request.url.path} "
                f"from {request.client.host if request.client else 'unknown'}"
            )

            response = await call_next(request)

            process_time = time.time() - start_time
            logger.info(f"Response: {response.status_code} in {process_time:.3f}s")

        response.headers["X-Process-Time"] = str(process_time)
        response.headers[CORRELATION_HEADER] = context.correlation_id_value

        return response
