"""
api/main.py -- FastAPI application entry point for StoreRater.

Install deps:  pip install -e .
Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one access log line per request

Lifespan builds the shared engine and the services on top of it (TokenService,
UserStore, RatingStore) at startup and disposes the engine at shutdown.
Handlers reach them through request.app.state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.store_owner import router as store_owner_router
from api.routes.v1.user import router as user_router
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings
from core.errors import AppError
from db.schema import create_db_engine, init_schema
from ratings.store import RatingStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("storerater.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup, release them on shutdown.

    Startup order: settings, then the engine and schema, then the stores that
    share the engine. TokenService receives the secret here and nowhere else.
    """
    settings = get_settings()
    logger.info("StoreRater API starting up")
    engine = create_db_engine(settings.database_url)
    init_schema(engine)

    app.state.settings = settings
    app.state.engine = engine
    app.state.token_service = TokenService(settings.secret_key, settings.token_expire_seconds)
    app.state.user_store = UserStore(engine)
    app.state.rating_store = RatingStore(engine)
    if not settings.admin_password:
        logger.warning("ADMIN_PASSWORD is not set -- bootstrap admin login is disabled")
    logger.info("Database initialized")

    yield

    engine.dispose()
    logger.info("StoreRater API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="StoreRater API",
    description="Store listings and one-rating-per-user store ratings with role-based access.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS. Host and origin lists come from Settings.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "DELETE"],
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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(admin_router, prefix="/api", tags=["Admin"])
app.include_router(user_router, prefix="/api", tags=["User"])
app.include_router(store_owner_router, prefix="/api", tags=["Store Owner"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope
# {"success": false, "message": ..., "errors"?: [...]} so clients parse every
# failure the same way.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, message: str, errors: list[dict] | None = None) -> JSONResponse:
    body = ErrorResponse(
        message=message,
        errors=[FieldError(**e) for e in errors] if errors else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render domain errors raised by auth/, ratings/ and route handlers."""
    return _error_response(exc.status_code, exc.message, getattr(exc, "errors", None))


def _field_name(loc: tuple) -> str:
    # ("body", "rating") -> "rating"; ("path", "store_id") -> "store_id"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per failed field."""
    errors = [{"field": _field_name(tuple(err.get("loc", ()))), "message": err.get("msg", "")} for err in exc.errors()]
    return _error_response(400, "Validation failed", errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the envelope for FastAPI/Starlette HTTP exceptions (404 routes, 405 methods)."""
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
