"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Seismic feed failure taxonomy (transport vs. server)
    • Consistent JSON error response format
    • Automatic logging of unhandled errors

Usage:
    from quakemap.app.core.errors import (
        QuakeMapError,
        NotFoundError,
        ValidationError,
        SeismicServerError,
        register_error_handlers,
    )

    raise SeismicServerError(503)
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from quakemap.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class QuakeMapError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(QuakeMapError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(QuakeMapError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class MonthOutOfRangeError(ValidationError):
    """Selected month is before the floor year or in the future."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, field="month", **details)
        self.error_code = "MONTH_OUT_OF_RANGE"


class ExternalServiceError(QuakeMapError):
    """External API call failed (502)."""

    def __init__(self, service: str, message: str = "", **details: Any):
        super().__init__(
            message=f"External service '{service}' failed: {message}",
            status_code=502,
            error_code="EXTERNAL_SERVICE_ERROR",
            details={"service": service, **details},
        )


class SeismicFeedError(ExternalServiceError):
    """
    Seismic feed failure.

    `message` is overwritten with the bare description so the UI can show
    (and pattern-match on) exactly what the transport or server reported.
    """

    def __init__(self, message: str, **details: Any):
        super().__init__("seismic-feed", message, **details)
        self.message = message
        self.args = (message,)


class SeismicTransportError(SeismicFeedError):
    """Network unreachable, DNS failure, timeout."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, kind="transport", **details)
        self.error_code = "SEISMIC_TRANSPORT_ERROR"


class SeismicServerError(SeismicFeedError):
    """Non-2xx response, or an error descriptor in the payload."""

    def __init__(self, upstream_status: int, message: Optional[str] = None, **details: Any):
        super().__init__(
            message or f"HTTP error! status: {upstream_status}",
            kind="server",
            upstream_status=upstream_status,
            **details,
        )
        self.error_code = "SEISMIC_SERVER_ERROR"
        self.upstream_status = upstream_status

    @property
    def retryable(self) -> bool:
        """Only 5xx is transient; 4xx and in-band errors repeat on retry."""
        return self.upstream_status >= 500


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def error_body(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> Dict[str, Any]:
    """The `{"error": {...}}` envelope every failed request is answered with."""
    error: Dict[str, Any] = {"code": error_code, "message": message, "status": status_code}
    if details:
        error["details"] = details
    # Where it happened, outside production only
    if request is not None and not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method
    return {"error": error}


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(QuakeMapError)
    async def handle_quakemap_error(request: Request, exc: QuakeMapError):
        level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            level, "%s %s failed [%s]: %s",
            request.method, request.url.path, exc.error_code, exc.message,
            extra={"status_code": exc.status_code, "endpoint": request.url.path},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.error_code, exc.message, exc.details, request),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg", "")}
            for e in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Invalid request"
        return JSONResponse(
            status_code=422,
            content=error_body(422, "VALIDATION_ERROR", message, {"errors": errors}, request),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled exception: %s\n%s", exc, traceback.format_exc())
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().splitlines()}
            if settings.DEBUG else None
        )
        return JSONResponse(
            status_code=500,
            content=error_body(500, "INTERNAL_ERROR", message, details, request),
        )
