"""Main FastAPI application for the Ghostwriter credits API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from ghostwriter import __version__
from ghostwriter.api.rate_limit import limiter
from ghostwriter.api.v1.billing import router as billing_router
from ghostwriter.api.v1.credits import router as credits_router
from ghostwriter.api.v1.invites import router as invites_router
from ghostwriter.api.v1.profiles import router as profiles_router
from ghostwriter.api.v1.referral import router as referral_router
from ghostwriter.api.v1.songs import router as songs_router
from ghostwriter.ledger.credits import InsufficientCreditsError
from ghostwriter.logging_config import get_logger, request_context, setup_logging
from ghostwriter.settings import settings
from ghostwriter.songs.service import SongNotFoundError
from ghostwriter.storage.db import db

setup_logging()
logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses.

    The API only serves JSON, so everything else is locked down.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cache-Control"] = "no-store"

        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with its request id.

    An incoming X-Request-ID is reused so logs join up with the caller's.
    """

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get("X-Request-ID", "").strip()[:64] or None
        with request_context(incoming, method=request.method, path=request.url.path) as request_id:
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("app_starting", env=settings.env)

    db.create_tables()
    logger.info("database_tables_created")

    yield

    logger.info("app_shutting_down")
    db.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app
    """
    is_production = settings.env == "production"

    app = FastAPI(
        title="Ghostwriter API",
        description="Credits, billing and referral ledger for the songwriting studio",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Service-Key", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return _error(429, "Too many requests. Please try again later.")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
        message = first.get("msg", "Invalid request")
        return _error(400, f"{field}: {message}" if field else message)

    @app.exception_handler(InsufficientCreditsError)
    async def insufficient_credits_handler(request: Request, exc: InsufficientCreditsError):
        return JSONResponse(
            status_code=402,
            content={"error": str(exc), "required": exc.required, "available": exc.available},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, str(exc))

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError):
        return _error(403, str(exc) or "Forbidden")

    @app.exception_handler(SongNotFoundError)
    async def not_found_handler(request: Request, exc: SongNotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, error=str(exc))
        return _error(500, "Internal server error")

    app.include_router(profiles_router, prefix="/api/v1")
    app.include_router(credits_router, prefix="/api/v1")
    app.include_router(billing_router, prefix="/api/v1")
    app.include_router(referral_router, prefix="/api/v1")
    app.include_router(songs_router, prefix="/api/v1")
    app.include_router(invites_router, prefix="/api/v1")

    @app.get("/health")
    def health_check():
        """Health check endpoint. Responds 503 when the database is down."""
        database_ok = db.ping()
        body = {
            "status": "healthy" if database_ok else "degraded",
            "database": "ok" if database_ok else "unavailable",
            "version": __version__,
            "env": settings.env,
        }
        return JSONResponse(status_code=200 if database_ok else 503, content=body)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Ghostwriter API",
            "version": __version__,
            "docs": "/api/docs",
        }

    return app


# Create app instance
app = create_app()
