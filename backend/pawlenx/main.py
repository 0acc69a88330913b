"""
PawLenx Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app(settings, services) builds one Settings object (unless
       given), wires the service graph from it, registers middleware,
       exception handlers and routers, and returns the app.
Who:   uvicorn (pawlenx.main:app) and the test suite (create_app(...)).

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                         FastAPI App                          │
    │                                                              │
    │  Middleware:  Rate Limit → Request ID → Logging → GZip → CORS│
    │                                                              │
    │  Routes:                                                     │
    │    /api/health   /api/auth/*   /api/user/*   /api/applications│
    │                                                              │
    │  app.state.services: ServiceContainer                        │
    │    store · tokens · auth · pets · files · ingestion          │
    │                                                              │
    │  Exception Handlers → {"error": message}                     │
    │    Validation/Duplicate→400  Unauthorized→401  Forbidden→403 │
    │    NotFound→404  Conflict→409  TooLarge→413  RateLimit→429   │
    │    RemoteStore/FileStorage/unexpected→500                    │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Report configuration problems (logged, not fatal)
    3. Re-upload submissions whose replication failed earlier
    Shutdown:
    1. Close the remote store's HTTP client
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pawlenx import __version__
from pawlenx.config import Settings
from pawlenx.dependencies import ServiceContainer, build_services
from pawlenx.exceptions import (
    ConflictError,
    DuplicateAccountError,
    FileStorageError,
    ForbiddenError,
    NotFoundError,
    PawLenxError,
    PayloadTooLargeError,
    RateLimitExceededError,
    RemoteStoreError,
    UnauthorizedError,
    ValidationError,
)
from pawlenx.middleware.logging import RequestLoggingMiddleware
from pawlenx.middleware.rate_limit import RateLimitMiddleware
from pawlenx.middleware.request_id import RequestIDMiddleware, request_id_var
from pawlenx.routes import applications, auth, health, user

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure the root logger once for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    services: ServiceContainer = app.state.services
    settings = services.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info("=" * 60)
    logger.info("PawLenx Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    logger.info("Storage directory: %s", services.files.storage_root)

    try:
        replicated = await services.ingestion.reconcile_pending()
        if replicated:
            logger.info("Startup reconciliation replicated %d file(s)", replicated)
    except RemoteStoreError as e:
        logger.warning("Startup reconciliation stopped: %s", e.message)
    except (OSError, ValueError) as e:
        logger.error("Startup reconciliation failed: %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PawLenx Backend shutting down...")
    await services.store.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to status codes.

    Starlette picks the handler registered for the nearest class in the
    exception's MRO, so DuplicateAccountError (400) wins over its parent
    ConflictError (409). Context dicts are logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error(400, exc.message)

    @app.exception_handler(DuplicateAccountError)
    async def handle_duplicate_account(request: Request, exc: DuplicateAccountError):
        return _error(400, exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("[%s] Conflict: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error(409, exc.message)

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        return _error(401, exc.message)

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        return _error(403, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(404, exc.message)

    @app.exception_handler(PayloadTooLargeError)
    async def handle_too_large(request: Request, exc: PayloadTooLargeError):
        logger.warning("[%s] Upload rejected: %s", request_id_var.get(""), exc.context)
        return _error(413, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error(429, exc.message, headers={"Retry-After": str(exc.retry_after)})

    @app.exception_handler(RemoteStoreError)
    async def handle_remote_store_error(request: Request, exc: RemoteStoreError):
        logger.error(
            "[%s] Remote store error (%s): %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error(500, exc.message, headers=headers)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error(500, exc.message)

    @app.exception_handler(PawLenxError)
    async def handle_app_error(request: Request, exc: PawLenxError):
        logger.error("[%s] Unhandled application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error(500, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", message)
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), message)
        return _error(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error(500, "An unexpected error occurred. Please try again later.")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Assemble the application.

    Args:
        settings: Defaults to Settings() read from the environment / .env.
        services: Pre-built container (tests inject one backed by a fake
                  remote host); built from `settings` when omitted.
    """
    if services is None:
        settings = settings or Settings()
        services = build_services(settings)
    settings = services.settings

    app = FastAPI(
        title="PawLenx API",
        description=(
            "Accounts and pet records stored in a version-controlled document host, "
            "plus job-application and pet-photo ingestion."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, settings=settings)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(user.router)
    app.include_router(applications.router)

    return app


# uvicorn pawlenx.main:app
app = create_app()
