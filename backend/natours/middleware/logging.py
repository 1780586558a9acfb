"""
Natours Backend: Request Logging Middleware
============================================

What:  One access log line per request: method, path, status, duration,
       request id, client IP and (when authenticated) the user id.
Why:   Replaces the dev-mode morgan logger of the classic Express stack,
       and works the same in production.

Levels follow the status: 5xx → ERROR, 4xx → WARNING, else INFO.
Request bodies are never logged (passwords, tokens).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from natours.middleware.rate_limit import client_ip
from natours.middleware.request_id import request_id_var

logger = logging.getLogger("natours.access")

QUIET_PATHS = {"/health"}


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        # Set by get_current_user on protected routes
        user_id = getattr(request.state, "user_id", "-")
        logger.log(
            _level_for(response.status_code),
            "%s %s %d %.1fms [%s] from %s user=%s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            request_id_var.get(""),
            client_ip(request),
            user_id,
        )
        return response
