"""
E-Permitted Backend — Health Check Route
=========================================

What:  Health endpoint for monitoring and load balancer probes.
How:   Probes the database, asks the LLM service (unless its circuit is
       open) and reports the analysis queue counters.

    Status levels:
    - healthy:   database up, AI reachable
    - degraded:  database up, AI unreachable / circuit open / disabled
                 (intake still works; analyses are recorded as failed)
    - unhealthy: database down (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from epermitted import __version__
from epermitted.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(request: Request):
    db_status = "connected"
    llm_status = "available"
    overall = "healthy"

    # ── Database ──────────────────────────────────────────────────────────
    if not await request.app.state.db.ping():
        db_status = "disconnected"
        overall = "unhealthy"

    # ── LLM ───────────────────────────────────────────────────────────────
    llm_service = getattr(request.app.state, "llm_service", None)
    queue = request.app.state.analysis_queue
    breaker = getattr(llm_service, "circuit_breaker", None)

    if llm_service is None or not queue.enabled:
        llm_status = "disabled"
    elif breaker is not None and breaker.state == breaker.OPEN:
        llm_status = "circuit_open"
    elif not await llm_service.health_check():
        llm_status = "unavailable"

    if llm_status != "available" and overall == "healthy":
        overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        llm=llm_status,
        analysis_queue=queue.stats(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        logger.warning("Health check: database unreachable")
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
