"""
Natours Backend: Rate Limiting Middleware
==========================================

What:  Per-IP sliding window limiter for the /api routes.
How:   Each IP keeps the timestamps of its requests inside the window.
       Old timestamps are dropped on every request; a full window gets a
       429 with Retry-After set to when the oldest request ages out.

Defaults: 1000 requests per 30 minutes (RATE_LIMIT_REQUESTS / RATE_LIMIT_WINDOW).

State lives in process memory, so each worker process counts separately.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from natours.config import settings
from natours.exceptions import RateLimitExceededError
from natours.responses import error_response

logger = logging.getLogger(__name__)

LIMITED_PREFIX = "/api"
CLEANUP_EVERY = 1000


def client_ip(request: Request) -> str:
    """Peer address, or the first X-Forwarded-For hop when behind a trusted proxy."""
    if settings.trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(LIMITED_PREFIX):
            return await call_next(request)

        ip = client_ip(request)
        now = time.time()
        window_start = now - settings.rate_limit_window

        hits = [ts for ts in self._requests[ip] if ts > window_start]
        self._requests[ip] = hits

        if len(hits) >= settings.rate_limit_requests:
            retry_after = int(hits[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                ip,
                len(hits),
                settings.rate_limit_window,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return error_response(
                exc.status_code,
                exc.message,
                details=exc.context,
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)

        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive = [ip for ip, hits in self._requests.items() if not hits or hits[-1] < window_start]
        for ip in inactive:
            del self._requests[ip]
        if inactive:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive))
