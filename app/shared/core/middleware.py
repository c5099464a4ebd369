import uuid
from typing import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.shared.core.auth import USER_HEADER


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Injects a unique X-Request-ID into the logs and response, and binds the
    forwarded caller so audit and unit-failure logs can be correlated.
    NOTE: The X-Request-ID header is trusted for correlation only.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        caller = request.headers.get(USER_HEADER)
        if caller:
            structlog.contextvars.bind_contextvars(caller=caller)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
