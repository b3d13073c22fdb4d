"""
E-Permitted Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   `create_app()` builds the Database handle, the LLM service and the
       analysis queue, stores them on `app.state`, then wires middleware,
       exception handlers and routers.
Who:   uvicorn (`uvicorn epermitted.main:app`) and the test suite, which
       passes its own database and a fake LLM service.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware Chain:                                      │
    │  ┌────────────┐ ┌─────────┐ ┌─────────┐ ┌───────────┐   │
    │  │ Rate Limit │→│ Req ID  │→│ Logging │→│ GZip/CORS │   │
    │  └────────────┘ └─────────┘ └─────────┘ └───────────┘   │
    │                                                         │
    │  Routes: /api/auth  /api/users  /api/councils           │
    │          /api/permits  /health                          │
    │                                                         │
    │  app.state: db, llm_service, analysis_queue, config     │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, never fatal)
    3. Create tables when DB_CREATE_TABLES is set

    Shutdown:
    1. Drain in-flight AI analyses
    2. Dispose database engine (close all connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, List, Optional, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from epermitted import __version__
from epermitted.config import Settings, settings as default_settings
from epermitted.database import Database
from epermitted.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    EPermittedError,
    LLMServiceError,
    NotFoundError,
    RateLimitExceededError,
    ReferenceAllocationError,
    ValidationError,
)
from epermitted.middleware.logging import RequestLoggingMiddleware
from epermitted.middleware.rate_limit import RateLimitMiddleware
from epermitted.middleware.request_id import RequestIDMiddleware, request_id_var
from epermitted.routes import auth, councils, health, permits, users
from epermitted.services.analysis_queue import AnalysisQueue
from epermitted.services.application_service import ApplicationService
from epermitted.services.llm_base import LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure logging for the entire application.

    Format: 2024-01-15T12:00:00 [INFO] epermitted.services.application_service: ...
    """
    config = config or default_settings
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # These log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.config
    database: Database = app.state.db
    queue: AnalysisQueue = app.state.analysis_queue

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config)
    logger.info("=" * 60)
    logger.info("E-Permitted Backend %s starting up...", __version__)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # The service still accepts submissions; analyses are recorded as failed
        logger.error("Configuration error: %s", str(e))

    if config.db_create_tables:
        await database.create_all()

    logger.info("Database dialect: %s", database.dialect_name)
    logger.info("AI analysis: %s", "enabled" if queue.enabled else "disabled")
    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("E-Permitted Backend shutting down...")
    await queue.drain(timeout=30)
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# Most specific class wins (looked up along the exception's MRO)
STATUS_CODES: Dict[Type[EPermittedError], int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    RateLimitExceededError: 429,
    LLMServiceError: 503,
    CircuitBreakerOpenError: 503,
    DatabaseError: 500,
    ReferenceAllocationError: 500,
}


def status_code_for(exc: EPermittedError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request_id_var.get("") or None


def error_body(
    request: Request,
    message: str,
    code: str,
    details: Optional[List[Dict[str, Optional[str]]]] = None,
) -> Dict:
    body = {
        "success": False,
        "error": message,
        "code": code,
        "request_id": _request_id(request),
    }
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to the `{success: false, error, code, ...}` envelope.

    Handler hierarchy:
        EPermittedError subclasses → STATUS_CODES
        RequestValidationError     → 400 with per-field details
        HTTPException              → its own status (unknown route, bad method)
        Exception (fallback)       → 500, generic message

    5xx responses never carry internal details; those are logged.
    """

    @app.exception_handler(EPermittedError)
    async def handle_app_error(request: Request, exc: EPermittedError):
        status = status_code_for(exc)
        rid = _request_id(request)
        headers = {}

        if status == 503 or status == 429:
            retry_after = getattr(exc, "retry_after", None) or getattr(exc, "recovery_time", None)
            if retry_after:
                headers["Retry-After"] = str(retry_after)

        if status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
            message = exc.message
            if isinstance(exc, DatabaseError):
                message = "An internal error occurred. Please try again later."
            return JSONResponse(
                status_code=status,
                content=error_body(request, message, exc.code),
                headers=headers or None,
            )

        details = exc.errors if isinstance(exc, ValidationError) else None
        logger.warning("[%s] %s (%d): %s", rid, type(exc).__name__, status, exc.message)
        return JSONResponse(
            status_code=status,
            content=error_body(request, exc.message, exc.code, details),
            headers=headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = []
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            details.append({
                "field": ".".join(location) or None,
                "message": error.get("msg", "Invalid value"),
            })
        logger.warning("[%s] Request validation failed: %s", _request_id(request), details)
        return JSONResponse(
            status_code=400,
            content=error_body(request, "Validation error", ValidationError.code, details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, str(exc.detail), "http_error"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            _request_id(request),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=error_body(
                request,
                "An unexpected error occurred. Please try again or contact support.",
                "internal_server_error",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    database: Optional[Database] = None,
    llm_service: Optional[LLMService] = None,
    analysis_queue: Optional[AnalysisQueue] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator can be injected; anything omitted is built from
    `config` (default: the environment). Engine creation does not connect,
    so building the app has no I/O side effects.
    """
    config = config or default_settings
    database = database or Database(config=config)

    if llm_service is None and config.analysis_enabled:
        from epermitted.services.gemini_service import GeminiService

        llm_service = GeminiService()

    analysis_queue = analysis_queue or AnalysisQueue(
        database,
        llm_service,
        enabled=config.analysis_enabled,
    )

    app = FastAPI(
        title="E-Permitted API",
        description=(
            "Permit application intake and tracking for local councils. Applications "
            "receive a unique reference on submission and an asynchronous AI review."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Set here rather than in lifespan: test transports do not run lifespan
    app.state.config = config
    app.state.db = database
    app.state.llm_service = llm_service
    app.state.analysis_queue = analysis_queue
    app.state.application_service = ApplicationService(
        max_attempts=config.reference_max_attempts,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executed in reverse order of addition: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.rate_limit_requests,
        window_seconds=config.rate_limit_window,
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(councils.router)
    app.include_router(permits.router)
    app.include_router(health.router)

    return app


# uvicorn expects `epermitted.main:app` to be importable
app = create_app()
