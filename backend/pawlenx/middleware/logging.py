"""
PawLenx Backend — Request Logging Middleware
==============================================

What:  One access-log line per request on the "pawlenx.access" logger.
How:   Measures wall time around the downstream call and logs method, path,
       status, duration, request id and client address. Upload endpoints
       also log the declared body size.

Level by status class:
    5xx → ERROR, 4xx → WARNING, everything else → INFO

Never logged: request bodies (passwords, uploaded files) and the
Authorization header.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from pawlenx.middleware.request_id import request_id_var

logger = logging.getLogger("pawlenx.access")

# Probes hit this every few seconds
QUIET_PATHS = {"/api/health"}

UPLOAD_PREFIXES = ("/api/applications/submit", "/api/user/pets")


def level_for(status: int) -> int:
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

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "duration_ms": round(elapsed_ms, 2),
            "client_ip": request.client.host if request.client else "unknown",
        }
        if request.method in ("POST", "PUT") and path.startswith(UPLOAD_PREFIXES):
            fields["content_length"] = request.headers.get("content-length")

        logger.log(
            level_for(response.status_code),
            "%s %s %d %.1fms [%s] from %s",
            fields["method"],
            path,
            fields["status"],
            elapsed_ms,
            fields["request_id"],
            fields["client_ip"],
            extra=fields,
        )
        return response
