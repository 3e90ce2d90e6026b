"""
auth/tokens.py -- Access/refresh JWT issuance and the refresh-cookie helpers.

Security design decisions:
  JWT: python-jose with HS256 (configurable to HS384/HS512). Both token kinds
       carry sub (account id), role, kind, jti, iat and exp. They are
       structurally identical, so the `kind` claim is what stops a refresh
       token being replayed as an access token and vice versa. verify() always
       takes the kind the caller expects.

  Keys: access tokens are signed with JWT_SECRET; refresh tokens with
       JWT_REFRESH_SECRET when set, otherwise JWT_SECRET. With distinct keys a
       token of the wrong kind also fails signature verification.

  Stateless: nothing is stored per token. A token is valid until exp and
       cannot be revoked individually. Rotating the secret revokes all.

  Refresh cookie: httpOnly (no script access), Secure (HTTPS only, unless
       SECURE_COOKIES=false for local dev), SameSite=Strict (CSRF), path-scoped
       to the auth endpoints, max_age equal to REFRESH_TTL. The refresh token
       never appears in a response body.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.models import Role, TokenClaims, TokenKind
from core.config import Settings

logger = logging.getLogger("tokengate.auth")

# Claims every token must carry; jose enforces presence before we look at them.
_DECODE_OPTIONS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
    "require_jti": True,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints and verifies access and refresh tokens.

    Args:
        settings: Immutable configuration; keys, algorithm and TTLs are read
                  once here and never again.
        clock:    Returns the current aware datetime used as mint time.
                  Expiry checks on verify() always use the real clock.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] | None = None) -> None:
        self._algorithm = settings.jwt_algorithm
        self._keys = {
            TokenKind.access: settings.jwt_secret,
            TokenKind.refresh: settings.refresh_signing_key,
        }
        self._ttls = {
            TokenKind.access: timedelta(seconds=settings.access_ttl),
            TokenKind.refresh: timedelta(seconds=settings.refresh_ttl),
        }
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_access(self, account_id: int, role: Role | str) -> str:
        """Return a short-lived access token for (account_id, role)."""
        return self._sign(account_id, role, TokenKind.access)

    def sign_refresh(self, account_id: int, role: Role | str) -> str:
        """Return a long-lived refresh token for (account_id, role)."""
        return self._sign(account_id, role, TokenKind.refresh)

    def _sign(self, account_id: int, role: Role | str, kind: TokenKind) -> str:
        now = self._clock()
        payload = {
            "sub": str(account_id),
            "role": Role(role).value,
            "kind": kind.value,
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + self._ttls[kind],
        }
        return jwt.encode(payload, self._keys[kind], algorithm=self._algorithm)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """Verify signature, expiry and kind; return the token's claims.

        Raises InvalidToken on any failure. The reason is logged at debug level
        only; clients always get the same generic 401.
        """
        try:
            payload = jwt.decode(
                token,
                self._keys[expected_kind],
                algorithms=[self._algorithm],
                options=_DECODE_OPTIONS,
            )
        except JWTError as exc:
            logger.debug("%s token rejected: %s", expected_kind.value, exc)
            raise InvalidToken() from exc

        if payload.get("kind") != expected_kind.value:
            logger.debug("Token kind mismatch: expected %s, got %r", expected_kind.value, payload.get("kind"))
            raise InvalidToken()
        try:
            account_id = int(payload["sub"])
            role = Role(payload.get("role"))
        except (TypeError, ValueError) as exc:
            raise InvalidToken() from exc

        return TokenClaims(
            account_id=account_id,
            role=role,
            kind=expected_kind,
            token_id=str(payload["jti"]),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str, settings: Settings) -> None:
    """Write the refresh token as a hardened cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    secure:        only sent over HTTPS when SECURE_COOKIES=true (default).
    samesite:      "strict" -- never sent on cross-site requests (CSRF).
    path:          only sent to the auth endpoints, not to every API call.
    max_age:       matches the refresh token expiry so both expire together.
    """
    response.set_cookie(
        settings.refresh_cookie_name,
        value=token,
        max_age=settings.refresh_ttl,
        path=settings.refresh_cookie_path,
        secure=settings.secure_cookies,
        httponly=True,
        samesite="strict",
    )


def clear_refresh_cookie(response, settings: Settings) -> None:
    """Expire the refresh cookie. Path and flags must match set_refresh_cookie()."""
    response.delete_cookie(
        settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.secure_cookies,
        httponly=True,
        samesite="strict",
    )
