"""
PersonalPage Backend — Rate Limiting Middleware
=================================================

What:  Per-IP sliding window rate limiter for the credential and oracle routes.
Why:   /login and /register are password-guessing targets; /gpt-alt spends
       provider quota on every call.
How:   Tracks request timestamps per (IP, path) in memory.
When:  Right after RequestIDMiddleware, so a 429 still carries its request id.

Algorithm: Sliding Window Log
    1. Each (IP, path) key gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If remaining count >= limit, reject with 429
    4. Otherwise, record the current timestamp and allow through

Production Upgrade Path:
    State is per-process. For several workers, move the counters to Redis
    (INCR with TTL, or a sorted set per key).
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from personalpage.exceptions import RateLimitExceededError
from personalpage.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

DEFAULT_LIMITED_PATHS = ("/login", "/register", "/gpt-alt")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        max_requests: Requests allowed per key within one window
        window_seconds: Window length
        limited_paths: Exact paths to limit; every other path passes through
        clock: Time source, replaceable in tests

    Response on rate limit:
        HTTP 429 with a Retry-After header and the standard error envelope.
    """

    def __init__(
        self,
        app,
        max_requests: int = 30,
        window_seconds: int = 60,
        limited_paths: Iterable[str] = DEFAULT_LIMITED_PATHS,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.limited_paths = frozenset(limited_paths)
        self._clock = clock
        self._requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path not in self.limited_paths or request.method == "OPTIONS":
            return await call_next(request)

        # Behind a proxy this is the proxy's address; run uvicorn with
        # --proxy-headers so request.client reflects X-Forwarded-For
        client_ip = request.client.host if request.client else "unknown"
        key = (client_ip, path)

        now = self._clock()
        window_start = now - self.window_seconds
        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            exc = RateLimitExceededError(retry_after=retry_after)
            logger.warning(
                "Rate limit exceeded for IP %s on %s: %d requests in %ds window",
                client_ip,
                path,
                len(timestamps),
                self.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)

        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive(window_start)

        return await call_next(request)

    def _cleanup_inactive(self, window_start: float) -> None:
        """Drop keys whose newest request fell out of the window."""
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for key in inactive:
            del self._requests[key]

        if inactive:
            logger.debug("Cleaned up %d inactive rate-limit entries", len(inactive))
