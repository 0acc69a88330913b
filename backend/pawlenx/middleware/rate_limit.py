"""
PawLenx Backend — Rate Limiting Middleware
============================================

What:  Per-IP sliding-window limiter for the endpoints worth abusing.
How:   Keeps recent request timestamps per client IP in memory; a request
       that would exceed RATE_LIMIT_REQUESTS within RATE_LIMIT_WINDOW
       seconds is answered with 429 and a Retry-After header.

Scope:
    /api/auth/*                  credential guessing
    /api/applications/submit     upload flooding
    Everything else passes through untouched.

Single-process only: each worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pawlenx.config import Settings
from pawlenx.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

LIMITED_PREFIXES: Tuple[str, ...] = ("/api/auth/", "/api/applications/submit")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Args:
        settings: Supplies rate_limit_requests and rate_limit_window.
    """

    def __init__(self, app, settings: Settings, **kwargs):
        super().__init__(app, **kwargs)
        self.max_requests = settings.rate_limit_requests
        self.window = settings.rate_limit_window
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "OPTIONS" or not request.url.path.startswith(LIMITED_PREFIXES):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - self.window

        recent = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = recent

        if len(recent) >= self.max_requests:
            retry_after = int(recent[0] + self.window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s on %s: %d requests in %ds window",
                client_ip,
                request.url.path,
                len(recent),
                self.window,
            )
            # Middleware responses bypass the app's exception handlers
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={"error": exc.message},
                headers={"Retry-After": str(retry_after)},
            )

        recent.append(now)

        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]
        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
