"""
Request correlation middleware.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from dancelink.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probed every few seconds by load balancers and Prometheus
QUIET_PATHS = frozenset({"/health", "/metrics"})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id into the structlog context so the log lines of one
    checkout, webhook or cancellation can be followed end to end. Stripe and
    Wise retries carry their own delivery headers; an inbound X-Request-ID
    from a proxy is reused instead of minting a new one.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("request_failed", error=str(e), duration_ms=_elapsed_ms(started))
            raise

        duration_ms = _elapsed_ms(started)
        if request.url.path not in QUIET_PATHS:
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
