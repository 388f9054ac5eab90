"""Main FastAPI application for the MediaForge API."""

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from mediaforge import __version__
from mediaforge.api.rate_limit import limiter, rate_limit_exceeded_handler
from mediaforge.api.v1.admin import router as admin_router
from mediaforge.api.v1.checkout import router as checkout_router
from mediaforge.api.v1.credits import router as credits_router
from mediaforge.api.v1.notifications import router as notifications_router
from mediaforge.api.v1.referrals import router as referrals_router
from mediaforge.api.v1.webhooks import router as webhooks_router
from mediaforge.credits.service import CreditService
from mediaforge.errors import setup_exception_handlers
from mediaforge.logging_config import get_logger, setup_logging
from mediaforge.settings import settings
from mediaforge.storage.db import db

logger = get_logger(__name__)

REF_COOKIE = "ref"
REF_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days
REQUEST_ID_HEADER = "X-Request-ID"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), "
            "camera=(), "
            "geolocation=(), "
            "microphone=(), "
            "usb=()"
        )

        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log entry written while serving a request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class ReferralCookieMiddleware(BaseHTTPMiddleware):
    """Remember a ``?ref=CODE`` visit so sign-up can attach it later.

    The cookie is readable by the frontend, which forwards it on attach.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        code = request.query_params.get(REF_COOKIE)
        if code:
            response.set_cookie(
                REF_COOKIE,
                code,
                max_age=REF_COOKIE_MAX_AGE,
                path="/",
                httponly=False,
                samesite="lax",
            )

        return response


def seed_defaults(credit_service: CreditService) -> dict[str, int]:
    """Insert missing default prices and packages."""
    return {
        "pricing": credit_service.initialize_default_pricing(),
        "packages": credit_service.initialize_default_packages(),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging()
    logger.info("app_starting", env=settings.env)

    db.create_tables()
    logger.info("database_tables_created")

    seeded = seed_defaults(CreditService(db))
    logger.info("defaults_seeded", **seeded)

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
        title="MediaForge API",
        description="Credits, referrals and notifications for MediaForge AI",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ReferralCookieMiddleware)
    app.add_middleware(RequestContextMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    # Wildcard with credentials is never allowed in production
    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    app.state.limiter = limiter

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    setup_exception_handlers(app)

    app.include_router(credits_router, prefix="/api")
    app.include_router(checkout_router, prefix="/api")
    app.include_router(webhooks_router, prefix="/api")
    app.include_router(notifications_router, prefix="/api")
    app.include_router(referrals_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    return app


app = create_app()
