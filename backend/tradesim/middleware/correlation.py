# backend/tradesim/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

This middleware:
1. Extracts or generates a correlation ID for each request
2. Stores it in context for use throughout the request lifecycle
3. Adds it to response headers for client-side tracing
4. Logs one summary line per request (method, path, status, duration)

Correlation ID Sources (in order of precedence):
1. X-Correlation-ID header (from client or upstream service)
2. X-Request-ID header (alternative header name)
3. Generated UUID if neither header is present

Usage:
    from fastapi import FastAPI
    from tradesim.middleware import CorrelationIdMiddleware

    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)
"""

import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tradesim.utils.context import (
    set_correlation_id,
    clear_correlation_id,
    clear_user_id,
)

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Upper bound on accepted client-supplied IDs (longer values are replaced)
MAX_CORRELATION_ID_LENGTH = 128


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that manages correlation IDs for request tracing.

    For each request:
    1. Extracts correlation ID from headers (X-Correlation-ID or X-Request-ID)
    2. Generates a new UUID if no usable header is present
    3. Stores the ID in context (accessible via get_correlation_id())
    4. Adds the ID to response headers
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        correlation_id = self._get_correlation_id(request)
        set_correlation_id(correlation_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({elapsed_ms:.1f} ms)"
            )
            return response

        finally:
            clear_user_id()
            clear_correlation_id()

    def _get_correlation_id(self, request: Request) -> str:
        """
        Extract correlation ID from request headers or generate a new one.

        Header values that are blank or longer than
        MAX_CORRELATION_ID_LENGTH are ignored.
        """
        for header in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
            value = (request.headers.get(header) or "").strip()
            if value and len(value) <= MAX_CORRELATION_ID_LENGTH:
                return value

        return str(uuid.uuid4())
