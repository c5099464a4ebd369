"""
Unified Error Governance

Centrally handles exception classification, structured logging
and error metrics for every API surface.
"""

from typing import Any, Dict, Optional
from uuid import uuid4
import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from app.shared.core.config import get_settings
from app.shared.core.exceptions import CloudForgeException
from app.shared.core.ops_metrics import API_ERRORS_TOTAL

logger = structlog.get_logger()

# Codes whose messages are safe to show verbatim in production.
SAFE_CODES = {
    "not_found",
    "conflict",
    "validation_error",
    "invalid_state_transition",
    "auth_error",
    "http_error",
}


def handle_exception(
    request: Request, exc: Exception, error_id: Optional[str] = None
) -> JSONResponse:
    """
    Classifies and records exceptions, returning a standardized JSON response.
    """
    error_id = error_id or str(uuid4())
    settings = get_settings()
    is_prod = settings.ENVIRONMENT.lower() in ("production", "staging")

    if isinstance(exc, CloudForgeException):
        app_exc = exc
        if is_prod and app_exc.code not in SAFE_CODES:
            app_exc = CloudForgeException(
                message="An error occurred while processing your request",
                code=exc.code,
                status_code=exc.status_code,
            )
    elif isinstance(exc, ValueError):
        # Business logic validation errors should be 400
        app_exc = CloudForgeException(
            message="Invalid request parameters" if is_prod else str(exc),
            code="value_error",
            status_code=400,
        )
        logger.warning(
            "business_validation_error",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )
    else:
        # Always sanitize unhandled exceptions to avoid leaking secrets via message bodies.
        app_exc = CloudForgeException(
            message="An unexpected internal error occurred",
            code="internal_error",
            status_code=500,
        )
        logger.exception(
            "unhandled_raw_exception",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )

    API_ERRORS_TOTAL.labels(
        path=request.url.path,
        method=request.method,
        status_code=app_exc.status_code,
    ).inc()

    log = logger.error if app_exc.status_code >= 500 else logger.warning
    log(
        "api_error",
        error_id=error_id,
        code=app_exc.code,
        message=app_exc.message,
        status_code=app_exc.status_code,
        path=request.url.path,
        details=app_exc.details,
    )

    response_details: Optional[Dict[str, Any]] = app_exc.details or None
    if is_prod and app_exc.code not in SAFE_CODES:
        response_details = None

    return JSONResponse(
        status_code=app_exc.status_code,
        content={
            "error": {
                "message": app_exc.message,
                "code": app_exc.code,
                "id": error_id,
                "details": response_details,
            }
        },
    )
