import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Sequence

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from app.shared.connections.federation import get_credential_cache
from app.shared.core.app_routes import register_api_routers, register_lifecycle_routes
from app.shared.core.config import get_settings, reload_settings_from_environment
from app.shared.core.error_governance import handle_exception
from app.shared.core.exceptions import CloudForgeException, ValidationError
from app.shared.core.logging import setup_logging
from app.shared.core.middleware import RequestIDMiddleware
from app.shared.db.session import get_engine, init_local_schema

setup_logging()
settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global settings
    settings = reload_settings_from_environment()
    get_credential_cache.cache_clear()

    logger.info(
        "app_starting",
        app_name=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
        federation_cache_enabled=settings.FEDERATION_CACHE_ENABLED,
    )

    # SQLite (local/tests) has no migrations; PostgreSQL schema comes from Alembic.
    await init_local_schema()

    yield

    logger.info("app_shutting_down")
    cache = get_credential_cache()
    if cache is not None:
        cache.clear()

    await get_engine().dispose()
    logger.info("db_engine_disposed")


# Application instance
cloudforge_app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)
# Uvicorn looks for `app` by default.
app: FastAPI = cloudforge_app  # noqa: A001

__all__ = ["app", "cloudforge_app", "lifespan"]


@cloudforge_app.exception_handler(CloudForgeException)
async def cloudforge_exception_handler(
    request: Request, exc: CloudForgeException
) -> JSONResponse:
    """Handle custom application exceptions."""
    return handle_exception(request, exc)


@cloudforge_app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Route FastAPI HTTP exceptions (auth, routing) through central governance."""
    detail_text = str(exc.detail) if isinstance(exc.detail, str) else "Request failed"
    code = "auth_error" if exc.status_code in (401, 403) else "http_error"
    return handle_exception(
        request,
        CloudForgeException(detail_text, code=code, status_code=exc.status_code),
    )


@cloudforge_app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors."""

    def _json_safe(value: Any) -> Any:
        if isinstance(value, Exception):
            return str(value)
        try:
            json.dumps(value)
            return value
        except (TypeError, ValueError):
            return str(value)

    def _sanitize_errors(errors: Sequence[Any]) -> List[Dict[str, Any]]:
        sanitized = []
        for err in errors:
            clean = dict(err)
            if "ctx" in clean and isinstance(clean["ctx"], dict):
                clean["ctx"] = {k: _json_safe(v) for k, v in clean["ctx"].items()}
            # Rejected input may carry the confirmation secret.
            clean.pop("input", None)
            sanitized.append(clean)
        return sanitized

    return handle_exception(
        request,
        ValidationError(
            "The request body or parameters are invalid.",
            details={"errors": _sanitize_errors(exc.errors())},
        ),
    )


@cloudforge_app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle business logic ValueErrors via central governance."""
    return handle_exception(request, exc)


@cloudforge_app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with sanitized responses."""
    return handle_exception(request, exc)


register_lifecycle_routes(
    cloudforge_app,
    app_name=settings.APP_NAME,
    version=settings.VERSION,
)
register_api_routers(cloudforge_app)

# Initialize Prometheus Metrics
Instrumentator().instrument(cloudforge_app).expose(cloudforge_app)

# Middleware is processed in REVERSE order of addition.
cloudforge_app.add_middleware(GZipMiddleware, minimum_size=1000)
cloudforge_app.add_middleware(RequestIDMiddleware)

# CORS - added LAST so it processes FIRST
if settings.CORS_ORIGINS and "*" in settings.CORS_ORIGINS:
    logger.error(
        "insecure_cors_config_detected",
        msg="allow_credentials=True with '*' origin is forbidden",
    )
    cors_allowed_origins = [o for o in settings.CORS_ORIGINS if o != "*"]
else:
    cors_allowed_origins = settings.CORS_ORIGINS

cloudforge_app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "X-Request-ID", "X-CloudForge-User", "X-CloudForge-Role"],
)
