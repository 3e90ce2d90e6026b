"""
api/main.py -- FastAPI application entry point for Tokengate.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins;
                              credentials allowed so the refresh cookie flows
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the three auth components from Settings onto app.state and
disposes the store's connection pool on shutdown. Tests replace the lifespan
to wire isolated stores and their own Settings.
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
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import configure as configure_rate_limits
from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, InternalError
from auth.policy import RolePolicy
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokengate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth components on startup; release the store on shutdown.

    Every component gets the same immutable Settings instance. Nothing reads
    configuration from the environment after this point.
    """
    logger.info("Tokengate API starting up")
    app.state.settings = _settings
    app.state.account_store = AccountStore(_settings.database_url, bcrypt_rounds=_settings.bcrypt_rounds)
    app.state.token_issuer = TokenIssuer(_settings)
    app.state.role_policy = RolePolicy.from_settings(_settings)
    configure_rate_limits(_settings)
    logger.info(
        "Auth initialized (accounts=%d, access_ttl=%ds, refresh_ttl=%ds, admin_signup=%s, auth_limit=%s)",
        app.state.account_store.count_accounts(),
        _settings.access_ttl,
        _settings.refresh_ttl,
        "enabled" if _settings.admin_secret else "disabled",
        _settings.auth_rate_limit,
    )

    yield

    app.state.account_store.close()
    logger.info("Tokengate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Tokengate API",
    description="Account signup, password login, and access/refresh token sessions.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Only method, path, status, latency and client address are logged;
# bodies (passwords) and cookies (refresh tokens) never are.
# ---------------------------------------------------------------------------


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(exclude_none=True),
    )


def _internal_error_response() -> JSONResponse:
    return _error_response(500, "An unexpected error occurred.", InternalError.default_message)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render domain failures with the status each error class carries."""
    if isinstance(exc, InternalError):
        return _internal_error_response()
    response = _error_response(exc.status_code, exc.message)
    if exc.status_code == 401 and request.headers.get("Authorization", "").startswith("Bearer "):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    Retry-After is the length of the limit's window in seconds. Must stay sync:
    SlowAPIMiddleware calls it directly and ignores coroutine handlers.
    """
    retry_after = exc.limit.limit.get_expiry() if exc.limit is not None else 60
    response = _error_response(429, "Too many requests")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the body is absent or not a JSON object.

    Field-level checks happen in the route, which knows the right message;
    this only fires when FastAPI cannot even produce the raw mapping.
    """
    return _error_response(400, "Missing required fields")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the error envelope for framework-raised HTTP exceptions (404, 405)."""
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the server log only, never
    to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _internal_error_response()


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
