"""FastAPI middleware for request correlation.

Gateways retry webhook deliveries, so every callback is tagged with a
correlation ID that ends up on each log line it produces, and its
outcome is logged once with the elapsed time.
"""

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from uzpay.core.logging import clear_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

# Caller supplied ids are echoed into headers and logs
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to each request and log its completion."""

    CORRELATION_ID_HEADER = "X-Correlation-ID"

    def _correlation_id(self, request: Request) -> str:
        incoming = request.headers.get(self.CORRELATION_ID_HEADER, "")
        if _VALID_CORRELATION_ID.match(incoming):
            return incoming
        return uuid.uuid4().hex

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = self._correlation_id(request)
        set_correlation_id(correlation_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            logger.info(
                "%s %s -> %d",
                request.method,
                request.url.path,
                response.status_code,
                extra={"duration_ms": round((time.perf_counter() - started) * 1000, 2)},
            )
            return response
        finally:
            clear_correlation_id()
