"""
auth/dependencies.py -- FastAPI Depends() helpers for token-authenticated routes.

Two token sources, one per kind, never mixed:
  1. Refresh cookie -- only the refresh endpoint reads it. The refresh token
     is never accepted from a header or body.
  2. Authorization: Bearer <access token> -- every other authenticated route.

Both dependencies verify through the TokenIssuer on app.state and raise
InvalidToken (rendered as 401 by api/main.py) before the route body runs.

Neither re-reads the account from the store. A refresh token keeps the role
it was minted with until it expires; role changes and deletions are only
picked up at the next login. Routes that need the live account (GET /me)
look it up themselves.

Layer rule: this module may import from fastapi because it is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import InvalidToken
from auth.models import TokenClaims, TokenKind
from auth.tokens import TokenIssuer


def require_refresh_claims(request: Request) -> TokenClaims:
    """Verify the refresh cookie and return its claims, or raise 401.

    Use as a FastAPI dependency:
        @router.post("/auth/refresh")
        def refresh(claims: TokenClaims = Depends(require_refresh_claims)): ...
    """
    settings = request.app.state.settings
    issuer: TokenIssuer = request.app.state.token_issuer
    token = request.cookies.get(settings.refresh_cookie_name)
    if not token:
        raise InvalidToken("Missing refresh token")
    return issuer.verify(token, TokenKind.refresh)


def require_access_claims(request: Request) -> TokenClaims:
    """Verify the Bearer access token and return its claims, or raise 401."""
    issuer: TokenIssuer = request.app.state.token_issuer
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise InvalidToken("Authentication required")
    return issuer.verify(auth_header[7:], TokenKind.access)
