"""
PersonalPage Backend — FastAPI Application Factory
====================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn personalpage.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────┐ ┌──────────┐  │
    │  │    Req ID    │→│Rate Limit│→│ Logging │→│ GZip/CORS│  │
    │  └──────────────┘ └──────────┘ └─────────┘ └──────────┘  │
    │                                                          │
    │  Routes:                                                 │
    │  /register /login /logout /me     (auth)                 │
    │  /upload-avatar /uploads/{path}   (avatars)              │
    │  /comment /comments /comment/{id} (comments)             │
    │  /gpt-alt                         (oracle)               │
    │  /health                                                 │
    │                                                          │
    │  State:                                                  │
    │  app.state.context → AppContext (engine, sessions, ...)  │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Build the AppContext unless one was injected (tests)
    3. Optionally create tables (DB_CREATE_SCHEMA=true)

    Shutdown:
    1. Close provider clients and dispose the engine (owned context only)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from personalpage import __version__
from personalpage.config import Settings, settings as default_settings
from personalpage.context import AppContext, build_context
from personalpage.database import create_schema
from personalpage.exceptions import (
    ConflictError,
    DatabaseError,
    FileStorageError,
    ForbiddenError,
    NotFoundError,
    PersonalPageError,
    UnauthorizedError,
    UnsupportedMediaError,
    UpstreamUnavailableError,
    ValidationError,
)
from personalpage.middleware.logging import RequestLoggingMiddleware
from personalpage.middleware.rate_limit import RateLimitMiddleware
from personalpage.middleware.request_id import RequestIDMiddleware, request_id_var
from personalpage.routes import auth, avatars, comments, health, oracle

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: 2024-01-15T12:00:00 [INFO] personalpage.access: POST /login 200 ...

    Production upgrade:
        Swap the StreamHandler for python-json-logger or a Sentry handler.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Build (or adopt) the AppContext on startup and release it on shutdown.

    A context injected through create_app(context=...) belongs to the caller
    and is not closed here.
    """
    ctx: Optional[AppContext] = getattr(app.state, "context", None)
    owns_context = ctx is None
    active_settings = ctx.settings if ctx else default_settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(active_settings.log_level)
    logger.info("=" * 60)
    logger.info("PersonalPage Backend %s starting up...", __version__)

    try:
        active_settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: the oracle falls back and health checks still answer
        logger.error("Configuration error: %s", str(e))

    if owns_context:
        ctx = build_context(active_settings)
        app.state.context = ctx

    if active_settings.db_create_schema:
        await create_schema(ctx.engine)
        logger.info("Database schema created (DB_CREATE_SCHEMA=true)")

    logger.info(
        "Server ready at http://%s:%d", active_settings.backend_host, active_settings.backend_port
    )
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PersonalPage Backend shutting down...")
    if owns_context:
        await ctx.aclose()
        app.state.context = None
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    # The catch-all handler runs outside RequestIDMiddleware, where the
    # ContextVar is already reset; request.state survives
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def _error(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "success": False,
        "error": error,
        "message": message,
        "request_id": _request_id(request),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the error envelope.

    Handler hierarchy:
        RequestValidationError   → 400 (malformed body or path parameter)
        ValidationError          → 400
        UnsupportedMediaError    → 415
        UnauthorizedError        → 401
        ForbiddenError           → 403
        NotFoundError            → 404
        ConflictError            → 409
        UpstreamUnavailableError → 502
        FileStorageError         → 500
        DatabaseError            → 500
        PersonalPageError (base) → 500
        Exception (fallback)     → 500

    Security: handlers never put stack traces, file paths or SQL in the
    response. Details are logged server-side.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning("[%s] Malformed request: %s", _request_id(request), exc.errors())
        return _error(
            request,
            400,
            "invalid_input",
            "The request body or parameters are malformed.",
            details={"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(UnsupportedMediaError)
    async def handle_unsupported_media(request: Request, exc: UnsupportedMediaError):
        logger.warning("[%s] Unsupported media: %s", _request_id(request), exc.message)
        return _error(request, 415, "unsupported_media", exc.message, details=exc.context)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        """Client sent invalid input; tell them what's wrong."""
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return _error(request, 400, "invalid_input", exc.message, details=exc.context)

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        return _error(request, 401, "unauthorized", exc.message)

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        logger.warning("[%s] Forbidden: %s", _request_id(request), exc.message)
        return _error(request, 403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(request, 404, "not_found", exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error(request, 409, "conflict", exc.message, details=exc.context)

    @app.exception_handler(UpstreamUnavailableError)
    async def handle_upstream(request: Request, exc: UpstreamUnavailableError):
        """Image host or model provider failed; the client may retry later."""
        logger.error(
            "[%s] Upstream unavailable: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return _error(request, 502, "upstream_unavailable", exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return _error(request, 500, "server_error", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        """Generic message to the user; context stays in the log."""
        logger.error(
            "[%s] Database error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return _error(
            request,
            500,
            "server_error",
            "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(PersonalPageError)
    async def handle_application_error(request: Request, exc: PersonalPageError):
        logger.error("[%s] Unhandled application error: %s", _request_id(request), exc.message)
        return _error(request, 500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: a generic 500 with a request id for support."""
        logger.error(
            "[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True
        )
        return _error(
            request,
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: Prebuilt AppContext. When given, the app uses it as-is and
            the lifespan neither builds nor closes one. Tests rely on this
            because httpx's ASGITransport does not run the lifespan.
    """
    app_settings: Settings = context.settings if context else default_settings

    app = FastAPI(
        title="PersonalPage API",
        description=(
            "Backend for a personal website: accounts with avatars, "
            "a public comment feed, and an oracle chat box."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → RateLimit → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=app_settings.rate_limit_requests,
        window_seconds=app_settings.rate_limit_window,
    )
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(avatars.router)
    app.include_router(comments.router)
    app.include_router(oracle.router)
    app.include_router(health.router)

    return app


# uvicorn expects `personalpage.main:app` to be importable
app = create_app()
