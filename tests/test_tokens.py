"""Unit tests for auth/tokens.py -- TokenIssuer sign/verify and cookie helpers.

Covers:
- verify(sign_access(id, role)) and verify(sign_refresh(id, role)) round-trip
- Kind enforcement in both directions (access != refresh)
- Expired, tampered, malformed, foreign-key and claim-deficient tokens
- Distinct refresh signing key
- Expiry timestamps follow ACCESS_TTL / REFRESH_TTL
- set_refresh_cookie() / clear_refresh_cookie() attributes
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import JWTError, jwt
from starlette.responses import Response

from auth.errors import InvalidToken
from auth.models import Role, TokenKind
from auth.tokens import TokenIssuer, clear_refresh_cookie, set_refresh_cookie


def _forge(secret: str, **claims) -> str:
    """Sign an arbitrary claim set with the test key; None drops a claim."""
    now = datetime.now(timezone.utc)
    payload = {"sub": "1", "role": "user", "kind": "access", "jti": "abc", "iat": now, "exp": now + timedelta(minutes=5)}
    payload.update(claims)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, secret, algorithm="HS256")


class TestRoundTrip:
    @pytest.mark.parametrize("role", [Role.user, Role.admin])
    def test_access_round_trip(self, issuer, role):
        claims = issuer.verify(issuer.sign_access(42, role), TokenKind.access)
        assert claims.account_id == 42
        assert claims.role == role
        assert claims.kind == TokenKind.access

    @pytest.mark.parametrize("role", [Role.user, Role.admin])
    def test_refresh_round_trip(self, issuer, role):
        claims = issuer.verify(issuer.sign_refresh(7, role), TokenKind.refresh)
        assert claims.account_id == 7
        assert claims.role == role
        assert claims.kind == TokenKind.refresh

    def test_accepts_plain_role_string(self, issuer):
        claims = issuer.verify(issuer.sign_access(1, "admin"), TokenKind.access)
        assert claims.role == Role.admin

    def test_each_token_has_unique_id(self, issuer):
        a = issuer.verify(issuer.sign_access(1, Role.user), TokenKind.access)
        b = issuer.verify(issuer.sign_access(1, Role.user), TokenKind.access)
        assert a.token_id != b.token_id


class TestExpiry:
    def test_expiry_follows_configured_ttls(self, make_settings):
        now = datetime.now(timezone.utc).replace(microsecond=0)
        issuer = TokenIssuer(make_settings(access_ttl=300, refresh_ttl=3600), clock=lambda: now)
        access = issuer.verify(issuer.sign_access(1, Role.user), TokenKind.access)
        refresh = issuer.verify(issuer.sign_refresh(1, Role.user), TokenKind.refresh)
        assert access.expires_at == now + timedelta(seconds=300)
        assert refresh.expires_at == now + timedelta(seconds=3600)

    def test_expired_access_token_rejected(self, settings):
        past = datetime.now(timezone.utc) - timedelta(seconds=settings.access_ttl + 60)
        token = TokenIssuer(settings, clock=lambda: past).sign_access(1, Role.user)
        with pytest.raises(InvalidToken):
            TokenIssuer(settings).verify(token, TokenKind.access)

    def test_expired_refresh_token_rejected(self, settings):
        past = datetime.now(timezone.utc) - timedelta(seconds=settings.refresh_ttl + 60)
        token = TokenIssuer(settings, clock=lambda: past).sign_refresh(1, Role.user)
        with pytest.raises(InvalidToken):
            TokenIssuer(settings).verify(token, TokenKind.refresh)

    def test_refresh_outlives_access(self, settings):
        # Minted long enough ago that the access token is dead but the refresh token is not.
        past = datetime.now(timezone.utc) - timedelta(seconds=settings.access_ttl + 60)
        old = TokenIssuer(settings, clock=lambda: past)
        access, refresh = old.sign_access(3, Role.user), old.sign_refresh(3, Role.user)
        verifier = TokenIssuer(settings)
        with pytest.raises(InvalidToken):
            verifier.verify(access, TokenKind.access)
        assert verifier.verify(refresh, TokenKind.refresh).account_id == 3


class TestKindEnforcement:
    def test_access_token_rejected_as_refresh(self, issuer):
        with pytest.raises(InvalidToken):
            issuer.verify(issuer.sign_access(1, Role.user), TokenKind.refresh)

    def test_refresh_token_rejected_as_access(self, issuer):
        with pytest.raises(InvalidToken):
            issuer.verify(issuer.sign_refresh(1, Role.user), TokenKind.access)

    def test_distinct_refresh_key(self, make_settings):
        issuer_settings = make_settings(jwt_refresh_secret="r" * 40)
        issuer = TokenIssuer(issuer_settings)
        refresh = issuer.sign_refresh(5, Role.user)
        assert issuer.verify(refresh, TokenKind.refresh).account_id == 5
        # Signed with the refresh key, so the access key cannot even verify it.
        with pytest.raises(JWTError):
            jwt.decode(refresh, issuer_settings.jwt_secret, algorithms=["HS256"])
        with pytest.raises(InvalidToken):
            issuer.verify(refresh, TokenKind.access)


class TestRejection:
    def test_garbage_token(self, issuer):
        with pytest.raises(InvalidToken):
            issuer.verify("not.a.jwt", TokenKind.access)

    def test_empty_token(self, issuer):
        with pytest.raises(InvalidToken):
            issuer.verify("", TokenKind.refresh)

    def test_tampered_signature(self, issuer):
        token = issuer.sign_access(1, Role.user)
        head, payload, sig = token.split(".")
        flipped = ("B" if sig[0] == "A" else "A") + sig[1:]
        with pytest.raises(InvalidToken):
            issuer.verify(f"{head}.{payload}.{flipped}", TokenKind.access)

    def test_token_from_other_secret(self, make_settings, issuer):
        foreign = TokenIssuer(make_settings(jwt_secret="z" * 48)).sign_access(1, Role.user)
        with pytest.raises(InvalidToken):
            issuer.verify(foreign, TokenKind.access)

    def test_missing_kind_claim(self, issuer, settings):
        with pytest.raises(InvalidToken):
            issuer.verify(_forge(settings.jwt_secret, kind=None), TokenKind.access)

    def test_missing_exp_claim(self, issuer, settings):
        with pytest.raises(InvalidToken):
            issuer.verify(_forge(settings.jwt_secret, exp=None), TokenKind.access)

    def test_non_numeric_subject(self, issuer, settings):
        with pytest.raises(InvalidToken):
            issuer.verify(_forge(settings.jwt_secret, sub="alice"), TokenKind.access)

    def test_unknown_role(self, issuer, settings):
        with pytest.raises(InvalidToken):
            issuer.verify(_forge(settings.jwt_secret, role="root"), TokenKind.access)

    def test_forged_claims_verify_when_well_formed(self, issuer, settings):
        # Sanity check for the forging helper itself.
        assert issuer.verify(_forge(settings.jwt_secret), TokenKind.access).account_id == 1


class TestRefreshCookie:
    def test_set_cookie_attributes(self, settings):
        resp = Response()
        set_refresh_cookie(resp, "tok", settings)
        header = resp.headers["set-cookie"].lower()
        assert header.startswith(f"{settings.refresh_cookie_name}=tok")
        assert "httponly" in header
        assert "secure" in header
        assert "samesite=strict" in header
        assert f"path={settings.refresh_cookie_path}" in header
        assert f"max-age={settings.refresh_ttl}" in header

    def test_insecure_cookie_when_disabled(self, make_settings):
        resp = Response()
        set_refresh_cookie(resp, "tok", make_settings(secure_cookies=False))
        assert "secure" not in resp.headers["set-cookie"].lower()

    def test_clear_cookie_expires_same_path(self, settings):
        resp = Response()
        clear_refresh_cookie(resp, settings)
        header = resp.headers["set-cookie"].lower()
        assert header.startswith(f"{settings.refresh_cookie_name}=")
        assert "max-age=0" in header
        assert f"path={settings.refresh_cookie_path}" in header
