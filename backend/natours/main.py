"""
Natours Backend: FastAPI Application Factory
=============================================

What:  Builds the FastAPI application: logging, middleware, exception
       handlers, routers and the /uploads static mount.
How:   create_app() assembles everything; the module-level `app` is what
       uvicorn serves (uvicorn natours.main:app).

Error bodies:
    Every failure answers with the same JSend-style shape:
        {"status": "fail" | "error", "message": "...", "request_id": "..."}
    "fail" for 4xx, "error" for 5xx. In development the exception context
    is included as "details"; in production it is only logged.

Lifecycle:
    Startup:  logging, configuration check, storage directories
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from natours import __version__
from natours.config import settings
from natours.database import dispose_engine
from natours.exceptions import DuplicateFieldError, NatoursError
from natours.middleware.logging import RequestLoggingMiddleware
from natours.middleware.rate_limit import RateLimitMiddleware
from natours.middleware.request_id import RequestIDMiddleware, request_id_var
from natours.middleware.security_headers import SecurityHeadersMiddleware
from natours.responses import error_response
from natours.routes import health, reviews, tours, users
from natours.schemas.common import format_validation_errors

logger = logging.getLogger(__name__)

STORAGE_SUBDIRS = ("tours", "users")


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Root logger to stdout (Docker captures it) at LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party chatter; natours.access already logs every request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def ensure_storage() -> Path:
    storage = Path(settings.storage_root)
    for subdir in STORAGE_SUBDIRS:
        (storage / subdir).mkdir(parents=True, exist_ok=True)
    return storage


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("Natours API %s (%s) starting", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving; the problems are visible at the top of the log
        logger.error("%s", e)

    logger.info(
        "Uploads under %s, rate limit %d req/%ds per IP, listening on %s:%d",
        ensure_storage().resolve(),
        settings.rate_limit_requests,
        settings.rate_limit_window,
        settings.backend_host,
        settings.backend_port,
    )

    yield

    await dispose_engine()
    logger.info("Natours API stopped")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    # A malformed id or number in the URL reads like a failed cast
    for error in errors:
        loc = error.get("loc", ())
        if len(loc) == 2 and loc[0] == "path":
            return f"Invalid {loc[1]}: {error.get('input')}."
    return format_validation_errors(errors)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler map:
        NatoursError (all)      → exc.status_code
        RequestValidationError  → 400
        IntegrityError          → 400 duplicate value
        HTTPException           → its status; 404 names the path
        Exception               → 500, stack trace logged only
    """

    @app.exception_handler(NatoursError)
    async def handle_natours_error(request: Request, exc: NatoursError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return error_response(exc.status_code, exc.message, details=exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning("[%s] Request validation error: %s", request_id_var.get(""), message)
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
            for e in exc.errors()
        ]
        return error_response(400, message, details={"errors": errors})

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("[%s] Integrity error: %s", request_id_var.get(""), str(exc.orig))
        dup = DuplicateFieldError()
        return error_response(dup.status_code, dup.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(404, f"Can't find {request.url.path} on this server!")
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return error_response(500, "Something went very wrong!")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Natours API",
        description="Tours, users and reviews for the Natours tour-booking site.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first:
    # RequestID → RateLimit → SecurityHeaders → Logging → GZip → CORS
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
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(tours.router)
    app.include_router(users.router)
    app.include_router(reviews.router)
    app.include_router(health.router)

    # StaticFiles checks the directory when mounted
    app.mount("/uploads", StaticFiles(directory=ensure_storage()), name="uploads")

    return app


app = create_app()
