"""
E-Permitted Backend — Request ID Middleware
============================================

What:  Assigns each request a correlation ID, echoed in `X-Request-ID`.
How:   Uses the client's X-Request-ID header when present, otherwise a short
       UUID. The ID lives in a ContextVar so loggers and exception handlers
       can read it without access to the request, and is copied into every
       error envelope as `request_id`.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to the context, `request.state` and the response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # 8 chars is enough to correlate log lines
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
