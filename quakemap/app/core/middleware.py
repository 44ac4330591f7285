"""
Request middleware — correlation IDs, timing, one log line per request.

Response headers added:
    X-Request-ID     echoed from the request, or a fresh 16-hex id
    X-Process-Time   wall time spent in the app, e.g. "12.3ms"

The map page is re-fetched by the browser after every focus / resize, so
its successful loads are logged at DEBUG. Docs and liveness probes are
not logged at all.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from quakemap.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path.endswith("/map"):
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        set_request_context(
            request_id=request_id,
            client_ip=client_ip,
            endpoint=path,
            method=request.method,
        )

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            if not path.startswith(QUIET_PREFIXES):
                logger.log(
                    _level_for(path, status_code),
                    "%s %s → %d (%.1fms) [%s]",
                    request.method, path, status_code, duration_ms, client_ip,
                    extra={
                        "duration_ms": duration_ms,
                        "status_code": status_code,
                        "endpoint": path,
                    },
                )
            set_request_context()

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"
        return response
