"""Request logging with a per-request correlation id."""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("waiver_app.requests")

CORRELATION_HEADER = "X-Correlation-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        start = time.time()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.time() - start) * 1000
            logger.exception(
                f"[{correlation_id}] {request.method} {request.url.path} failed after {duration_ms:.1f}ms"
            )
            raise
        duration_ms = (time.time() - start) * 1000
        logger.info(
            f"[{correlation_id}] {request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)"
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
