"""
E-Permitted Backend — Rate Limiting Middleware
===============================================

What:  Per-IP sliding window rate limiter (default 100 requests / 15 minutes).
How:   Tracks request timestamps per IP in memory; once the window holds
       `max_requests` entries, further requests get 429 with Retry-After.
When:  First in the middleware chain (rejects abuse before any processing).

Algorithm: Sliding Window Counter
    1. Each IP gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If remaining count >= limit, reject with 429
    4. Otherwise record the current timestamp and allow through

Single-process only; several workers each keep their own window.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from epermitted.config import settings
from epermitted.exceptions import RateLimitExceededError
from epermitted.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Excluded paths: /health and the API docs are always reachable.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        # Behind a proxy this is the proxy's address
        client_ip = (
            getattr(request.client, "host", "unknown")
            if request.client
            else "unknown"
        )

        now = time.time()
        window_start = now - self.window_seconds

        self._requests[client_ip] = [
            ts for ts in self._requests[client_ip] if ts > window_start
        ]

        if len(self._requests[client_ip]) >= self.max_requests:
            oldest = self._requests[client_ip][0]
            retry_after = int(oldest + self.window_seconds - now) + 1

            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(self._requests[client_ip]),
                self.window_seconds,
            )

            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": exc.message,
                    "code": exc.code,
                    "request_id": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(retry_after)},
            )

        self._requests[client_ip].append(now)

        # Every 1000th recorded request, forget IPs idle for a whole window
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
