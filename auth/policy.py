"""
auth/policy.py -- Who may be granted the admin role at signup.

The rule runs once, before the account row is written, so a rejected admin
request never leaves an account behind. Role is immutable afterwards.

Role coercion: by default any requested role other than exactly "admin"
(case-sensitive) is granted "user" rather than rejected. Clients that send
"Admin", "superuser" or "" get an ordinary account. This is permissive on
purpose for existing clients; STRICT_ROLE_VALIDATION=true turns unknown role
strings into a 400 instead.
"""

from __future__ import annotations

import hmac
import logging

from auth.errors import BadRequest, Forbidden
from auth.models import Role
from core.config import Settings

logger = logging.getLogger("tokengate.auth")


class RolePolicy:
    def __init__(self, admin_secret: str, strict: bool = False) -> None:
        self._admin_secret = admin_secret
        self._strict = strict

    @classmethod
    def from_settings(cls, settings: Settings) -> RolePolicy:
        return cls(settings.admin_secret, strict=settings.strict_role_validation)

    def resolve_role(self, requested_role: str | None, provided_secret: str | None) -> Role:
        """Return the role to grant, or raise Forbidden for a bad admin secret.

        An empty configured admin secret means nobody can self-assign admin.
        The comparison is constant-time so the secret cannot be recovered
        byte by byte from response timing.
        """
        if requested_role != Role.admin.value:
            if self._strict and requested_role not in {r.value for r in Role}:
                raise BadRequest("Invalid role")
            return Role.user

        if not self._admin_secret or not provided_secret:
            logger.warning("Admin signup rejected: no admin secret %s", "configured" if not self._admin_secret else "provided")
            raise Forbidden()
        if not hmac.compare_digest(provided_secret.encode("utf-8"), self._admin_secret.encode("utf-8")):
            logger.warning("Admin signup rejected: admin secret mismatch")
            raise Forbidden()
        return Role.admin
