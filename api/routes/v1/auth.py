"""
api/routes/v1/auth.py -- Session endpoints: signup, login, refresh, logout, me.

Routes:
  POST /api/v1/auth/signup   -- create account; access token in body, refresh cookie set
  POST /api/v1/auth/login    -- password login; access token in body, refresh cookie set
  POST /api/v1/auth/refresh  -- refresh cookie in, fresh access token out
  POST /api/v1/auth/logout   -- clears the refresh cookie
  GET  /api/v1/auth/me       -- current account (Bearer access token)

Security:
  [H2] signup and login are rate-limited per client IP (AUTH_RATE_LIMIT).
  [C1] AccountStore.authenticate() provides timing equalization -- use it,
       never inline find_by_email() + verify_password().
  [M5] Cache-Control: no-store on every response that carries a token.
  Unknown email and wrong password return the identical 401 body.
  The refresh token is only ever written to the cookie, never to a body.

Each handler wraps its component calls in _boundary(): AuthError subclasses
pass through to the AuthError handler in api/main.py; anything else is logged
with the operation name and re-raised as a generic InternalError.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from api.limiter import auth_rate_limit, limiter
from api.models import (
    LoginRequest,
    MessageResponse,
    PublicUser,
    RefreshResponse,
    SessionData,
    SessionResponse,
    SessionTokens,
    SignupRequest,
)
from auth.dependencies import require_access_claims, require_refresh_claims
from auth.errors import AuthError, BadRequest, Conflict, InternalError, InvalidToken, Unauthorized
from auth.models import Account, TokenClaims
from auth.policy import RolePolicy
from auth.store import AccountStore
from auth.tokens import TokenIssuer, clear_refresh_cookie, set_refresh_cookie

logger = logging.getLogger("tokengate.api")

# Auth policy:
# - POST /api/v1/auth/signup:  public
# - POST /api/v1/auth/login:   public
# - POST /api/v1/auth/refresh: refresh cookie (require_refresh_claims)
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:      Bearer access token (require_access_claims)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _boundary(operation: str) -> Iterator[None]:
    """Convert unexpected store/crypto failures into a client-safe 500."""
    try:
        yield
    except AuthError:
        raise
    except Exception as exc:
        logger.exception("%s failed", operation)
        raise InternalError() from exc


def _parse(model: type[BaseModel], body: dict[str, Any], message: str):
    """Validate the raw JSON mapping into a typed request, or raise 400."""
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        logger.info("Rejected request body: %s", [e["loc"] for e in exc.errors()])
        raise BadRequest(message) from exc


def _session_response(message: str, account: Account, request: Request) -> JSONResponse:
    """Mint both tokens for the account and build the signup/login response."""
    issuer: TokenIssuer = request.app.state.token_issuer
    access_token = issuer.sign_access(account.id, account.role)
    refresh_token = issuer.sign_refresh(account.id, account.role)

    body = SessionResponse(
        message=message,
        data=SessionData(
            user=PublicUser.from_account(account),
            tokens=SessionTokens(access_token=access_token),
        ),
    )
    resp = JSONResponse(status_code=200, content=body.model_dump(by_alias=True))
    set_refresh_cookie(resp, refresh_token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=SessionResponse)
@limiter.limit(auth_rate_limit)  # [H2] must be BELOW @router so the registered endpoint is the limited one
def signup(request: Request, body: dict[str, Any] = Body(...)) -> JSONResponse:
    """Register an account and start a session.

    Order matters: the duplicate check and the role policy both run before
    the insert, so a 409 or 403 never leaves a row behind. The store's unique
    constraint still catches a concurrent signup that slips past the check.
    """
    payload: SignupRequest = _parse(SignupRequest, body, "Missing required fields")
    store: AccountStore = request.app.state.account_store
    policy: RolePolicy = request.app.state.role_policy

    with _boundary("signup"):
        if store.find_by_email(payload.email) is not None:
            raise Conflict("Email already registered")
        role = policy.resolve_role(payload.role, payload.admin_secret)
        account = store.create(
            email=payload.email,
            raw_password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=role,
        )
        return _session_response("Signup successful", account, request)


@router.post("/auth/login", response_model=SessionResponse)
@limiter.limit(auth_rate_limit)  # [H2]
def login(request: Request, body: dict[str, Any] = Body(...)) -> JSONResponse:
    """Authenticate with email and password and start a session.

    Returns the same generic error for an unknown email and a wrong password
    to avoid leaking which accounts exist.
    """
    payload: LoginRequest = _parse(LoginRequest, body, "Missing email or password")
    store: AccountStore = request.app.state.account_store

    with _boundary("login"):
        account = store.authenticate(payload.email, payload.password)
        if account is None:
            raise Unauthorized("Invalid credentials")
        logger.info("Login succeeded (id=%s)", account.id)
        return _session_response("Login successful", account, request)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Clear the refresh cookie.

    The token itself stays valid until it expires -- there is no server-side
    session to end. Clearing the cookie stops this browser from using it.
    """
    resp = JSONResponse(content=MessageResponse(message="Logged out").model_dump(by_alias=True))
    clear_refresh_cookie(resp, request.app.state.settings)
    return resp


# ---------------------------------------------------------------------------
# Token-authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, claims: TokenClaims = Depends(require_refresh_claims)) -> JSONResponse:
    """Mint a fresh access token from a valid refresh cookie.

    The refresh token is not rotated; it keeps its original expiry.
    """
    issuer: TokenIssuer = request.app.state.token_issuer
    with _boundary("refresh"):
        access_token = issuer.sign_access(claims.account_id, claims.role)
    resp = JSONResponse(content=RefreshResponse(access_token=access_token).model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/me", response_model=PublicUser)
def me(request: Request, claims: TokenClaims = Depends(require_access_claims)) -> JSONResponse:
    """Return the account behind the Bearer access token."""
    store: AccountStore = request.app.state.account_store
    with _boundary("me"):
        account = store.get_by_id(claims.account_id)
    if account is None:
        raise InvalidToken("Account no longer exists")
    return JSONResponse(content=PublicUser.from_account(account).model_dump(by_alias=True))
