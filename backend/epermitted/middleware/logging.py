"""
E-Permitted Backend — Request Logging Middleware
=================================================

What:  One access-log line per HTTP request, tagged with who made it.
When:  Runs inside RequestIDMiddleware, so the request ID is already set.

Log Line:
    POST /api/permits/submit → 201 (38.2ms) rid=9f0c… user=anonymous ip=10.0.0.7
    PATCH /api/permits/…/status → 200 (12.9ms) rid=71be… user=3c2e…(staff) ip=10.0.0.9

    The user comes from `request.state`, filled in by the bearer-token
    dependency once a token resolves to an active account. Requests that
    never authenticate (intake, catalogue reads) log as anonymous.

Request bodies are never logged: they carry passwords and applicant data.
"""

import logging
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from epermitted.middleware.request_id import request_id_var

logger = logging.getLogger("epermitted.access")

# Probed by load balancers every few seconds
QUIET_PATHS = frozenset({"/health"})


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def _actor(request: Request) -> str:
    user_id: Optional[str] = getattr(request.state, "user_id", None)
    if user_id is None:
        return "anonymous"
    role = getattr(request.state, "user_role", None)
    return f"{user_id}({role})" if role else user_id


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """5xx at ERROR, 4xx at WARNING, the rest at INFO; health probes skipped."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        actor = _actor(request)

        logger.log(
            _level_for(response.status_code),
            "%s %s → %d (%.1fms) rid=%s user=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            rid,
            actor,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "client_ip": client_ip,
                "user_id": getattr(request.state, "user_id", None),
                "user_role": getattr(request.state, "user_role", None),
            },
        )
        return response
