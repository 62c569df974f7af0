"""
subspace/main.py - FastAPI application entry point
Includes: lifespan management (token service, rate limit store and sweeper),
CORS, security headers, JSON error contract, health endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException

from subspace.clients.resend_client import Mailer, ResendMailer
from subspace.config import ConfigurationError, Settings, get_settings
from subspace.core.logging import log_error, setup_logging
from subspace.core.passwords import SuperintendentDirectory
from subspace.core.rate_limiter import (
    RateLimiter,
    RateLimitRejected,
    RateLimitSweeper,
    rate_limit_response,
)
from subspace.core.security_log import LoguruSecurityLogger, SecurityEventLogger
from subspace.core.tokens import SessionTokenService
from subspace.repositories import (
    FormRepository,
    InMemoryFormRepository,
    InMemorySuperintendentDirectory,
)
from subspace.routers import auth, forms, invitations

VERSION = "1.0.0"


def _validate_env(settings: Settings) -> None:
    """Warn loudly about optional secrets that leave features disabled."""
    missing = []
    if not settings.admin_password_hash:
        missing.append("ADMIN_PASSWORD_HASH")
    if not settings.resend_api_key:
        missing.append("RESEND_API_KEY")
    if missing:
        logger.critical(f"Missing env vars: {', '.join(missing)}")
        logger.warning("App will start but affected features will be unavailable until credentials are set.")


def create_app(
    settings: Optional[Settings] = None,
    *,
    form_repository: Optional[FormRepository] = None,
    superintendents: Optional[SuperintendentDirectory] = None,
    mailer: Optional[Mailer] = None,
    security_logger: Optional[SecurityEventLogger] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the application. Collaborators not passed in are created here
    (storage, mailer) or in the lifespan (token service, limiter).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.log_level)
        logger.info("SubSpace forms API starting up...")

        try:
            app.state.token_service = SessionTokenService.from_settings(settings)
        except ConfigurationError as exc:
            logger.critical(f"FATAL: {exc}")
            raise

        _validate_env(settings)

        app.state.rate_limiter = rate_limiter or RateLimiter()
        sweeper = RateLimitSweeper(app.state.rate_limiter, settings.rate_limit_sweep_seconds)
        sweeper.start()

        logger.info("Startup complete.")
        yield
        sweeper.stop()
        close_mailer = getattr(app.state.mailer, "close", None)
        if close_mailer is not None:
            close_mailer()
        logger.info("Shutting down SubSpace forms API.")

    app = FastAPI(
        title="SubSpace Safety Forms",
        description=(
            "Impalement protection inspection forms: submission, review, "
            "emailed reports and subcontractor invitations."
        ),
        version=VERSION,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.security_logger = security_logger or LoguruSecurityLogger()
    app.state.form_repository = form_repository or InMemoryFormRepository()
    app.state.superintendents = superintendents or InMemorySuperintendentDirectory()
    app.state.mailer = mailer if mailer is not None else ResendMailer.from_settings(settings)

    # ── Error contract: every error body is {"error": ...} ────────────────────
    @app.exception_handler(RateLimitRejected)
    async def _rate_limited(request: Request, exc: RateLimitRejected) -> JSONResponse:
        return rate_limit_response(exc.result, exc.message, exc.now_ms)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request data"})

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        log_error("api", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # ── CORS ──────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

    # ── Security headers ──────────────────────────────────────────────────────
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix="/api", tags=["auth"])
    app.include_router(forms.router, prefix="/api", tags=["forms"])
    app.include_router(invitations.router, prefix="/api", tags=["invitations"])

    @app.get("/api/ping", tags=["health"])
    async def ping():
        """Liveness check. Touches no collaborators."""
        return {"status": "ok", "version": VERSION}

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "subspace.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
