"""
api/main.py -- FastAPI application entry point for the auth service.

Exposes the credential and session engine (auth/) over HTTP.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins;
                              credentials allowed so the refresh cookie flows

Rate limiting is not a middleware: each route declares its action class with
Depends(rate_limit(...)) and the shared RateLimiter lives on app.state.

Lifespan handles startup (engine, stores, limiter, mailer, service, purge
task) and shutdown (cancel purge task, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, RateLimited
from auth.mailer import build_email_sender
from auth.ratelimit import build_rate_limiter
from auth.schema import create_auth_engine
from auth.service import build_auth_service
from auth.tokens import utcnow
from core.config import get_settings

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("appstore.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Remove expired sessions every CLEANUP_INTERVAL_HOURS.

    Rate-limit windows are not swept here: the limiter storage drops each
    key as its window expires.

    Only rows that are already logically dead are removed, so the sweep never
    changes the outcome of a concurrent request. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(settings.cleanup_interval_hours * 60 * 60)
        try:
            app.state.auth_service.cleanup()
        except SQLAlchemyError:
            logger.exception("Cleanup failed; retrying next interval")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- creates missing tables before any store touches them.
      2. Limiter and mailer -- independent of each other.
      3. AuthService and its stores -- compose the engine and mailer.
      4. Purge task last -- references the service.
    """
    logger.info("Auth API starting up")
    engine = create_auth_engine(settings.database_url)
    app.state.engine = engine
    app.state.rate_limiter = build_rate_limiter(settings)
    app.state.mailer = build_email_sender(settings)
    app.state.auth_service = build_auth_service(settings, engine, app.state.mailer)
    app.state.account_store = app.state.auth_service.accounts
    app.state.session_store = app.state.auth_service.sessions
    logger.info(
        "Auth initialized (accounts=%d, rate_limit_storage=%s)",
        app.state.account_store.count(),
        settings.rate_limit_storage_uri.split(":", 1)[0],
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.account_store.close()
    logger.info("Auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="App Store Auth API",
    description="Signup, email verification, JWT access tokens, refresh sessions and role-based access.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any domain error from auth/ with its own status and code.

    429 responses also carry Retry-After (whole seconds until reset_at,
    at least 1) next to reset_at in the body.
    """
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=exc.code, message=exc.message, **exc.extra())
        ).model_dump(exclude_none=True),
    )
    if isinstance(exc, RateLimited):
        seconds = int((exc.reset_at - utcnow()).total_seconds()) + 1
        response.headers["Retry-After"] = str(max(1, seconds))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    auth/dependencies.py raises HTTPException with a {code, message} dict as
    detail; use it directly as the error field. Headers such as
    WWW-Authenticate are passed through.
    """
    if isinstance(exc.detail, dict):
        content = {"error": exc.detail}
    else:
        content = ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump()
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"], response_model=HealthResponse)
async def health(request: Request) -> JSONResponse:
    """Return API liveness and database reachability. 503 when the database is down."""
    components = {"app": "ok", "database": "ok"}
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "unavailable"
    healthy = components["database"] == "ok"
    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        version=API_VERSION,
        components=components,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
