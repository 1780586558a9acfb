"""
Natours Backend: Request ID Middleware
=======================================

What:  Tags every request with a short correlation id.
How:   A well-formed client X-Request-ID is reused, otherwise a fresh id is
       minted. The id lands in a ContextVar (loggers, exception handlers),
       on request.state and in the response header.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Not reset after the response, so the outermost 500 handler can still read it.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"

# Client ids end up in log lines; anything else is replaced
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id(supplied: str | None = None) -> str:
    if supplied and _VALID_ID.match(supplied):
        return supplied
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = new_request_id(request.headers.get(REQUEST_ID_HEADER))
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
