"""
PersonalPage Backend — Request Logging Middleware
===================================================

What:  One access-log line per request: method, path, status, duration,
       whether a session cookie came with it, request id and client IP.
When:  Inside RequestIDMiddleware, so the request id is already set.

Levels:
    5xx                        → ERROR
    4xx                        → WARNING
    2xx/3xx under /uploads/    → DEBUG (every feed row fetches an avatar)
    other 2xx/3xx              → INFO
    /health                    → not logged

What we log vs what we DON'T log (privacy):
    Log:        method, path, status, duration, IP, request ID,
                "session" or "anon"
    Don't log:  request bodies (passwords, comments), cookie values,
                CSRF headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from personalpage.middleware.request_id import request_id_var

logger = logging.getLogger("personalpage.access")

QUIET_PATHS = frozenset({"/health"})
ASSET_PREFIX = "/uploads/"


def level_for(path: str, status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path.startswith(ASSET_PREFIX):
        return logging.DEBUG
    return logging.INFO


def _has_session(request: Request) -> bool:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        return False
    return bool(request.cookies.get(ctx.settings.session_cookie_name))


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        status = response.status_code
        level = level_for(path, status)
        if not logger.isEnabledFor(level):
            return response

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": path,
            "status": status,
            "duration_ms": duration_ms,
            "client_ip": request.client.host if request.client else "unknown",
            "caller": "session" if _has_session(request) else "anon",
        }
        logger.log(
            level,
            "%(method)s %(path)s %(status)d %(duration_ms).1fms [%(request_id)s] "
            "%(caller)s from %(client_ip)s",
            fields,
            extra=fields,
        )
        return response
