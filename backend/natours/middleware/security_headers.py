"""
Natours Backend: Security Headers Middleware
=============================================

What:  Hardening headers on every response, plus a size cap on JSON and
       urlencoded request bodies.
Why:   Covers what helmet and express.json({ limit: '10kb' }) do in the
       classic Express stack. Multipart uploads are exempt; image size is
       enforced by the image service instead.
"""

import logging
from typing import Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from natours.config import settings
from natours.responses import error_response

logger = logging.getLogger(__name__)

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-XSS-Protection": "0",
    "Content-Security-Policy": (
        "default-src 'self'; base-uri 'self'; font-src 'self' https: data:; "
        "frame-ancestors 'self'; img-src 'self' data:; object-src 'none'; "
        "script-src 'self'; style-src 'self' https: 'unsafe-inline'"
    ),
}

# Swagger UI and ReDoc load their assets from a CDN
DOCS_PATHS = {"/docs", "/redoc"}

LIMITED_CONTENT_TYPES = ("application/json", "application/x-www-form-urlencoded")


def _declared_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length", "0"))
    except ValueError:
        return 0


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        content_type = request.headers.get("content-type", "")
        if (
            content_type.startswith(LIMITED_CONTENT_TYPES)
            and _declared_length(request) > settings.body_limit
        ):
            logger.warning(
                "Rejected %s %s: body of %d bytes exceeds %d",
                request.method,
                request.url.path,
                _declared_length(request),
                settings.body_limit,
            )
            response: Response = error_response(413, "Request body is too large.")
        else:
            response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            if name == "Content-Security-Policy" and request.url.path in DOCS_PATHS:
                continue
            response.headers.setdefault(name, value)
        return response
