"""
auth/errors.py -- Failure taxonomy for the authentication core.

Each error carries the HTTP status it maps to and a client-safe message.
api/main.py renders every AuthError through one exception handler, so route
handlers and dependencies just raise.

Messages are deliberately generic for credential failures: an unknown email
and a wrong password both surface as Unauthorized("Invalid credentials") so a
client cannot enumerate registered accounts.

Layer rule: no imports from api/. Status codes are plain ints, not FastAPI
constants, so this module stays transport-agnostic.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the API reports to a client."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(AuthError):
    status_code = 400
    code = "bad_request"
    default_message = "Missing required fields"


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Invalid credentials"


class InvalidToken(Unauthorized):
    """Token missing, malformed, badly signed, expired, or of the wrong kind."""

    code = "invalid_token"
    default_message = "Invalid or expired token"


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Admin role requires a valid admin secret"


class Conflict(AuthError):
    status_code = 409
    code = "conflict"
    default_message = "Email already registered"


class DuplicateEmail(Conflict):
    """Raised by AccountStore.create when the unique email constraint fires."""

    code = "duplicate_email"


class InternalError(AuthError):
    """Unexpected persistence or signing failure. Details stay in the server log."""
