"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these types only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"


def normalize_email(email: str) -> str:
    """Return the canonical stored form of an email address (trimmed, lowercase)."""
    return email.strip().lower()


@dataclass
class Account:
    """One registered identity.

    email is always stored normalized (see normalize_email) and is unique.
    password_hash is a bcrypt hash; it is kept out of repr() so an Account
    dropped into a log line does not leak it. The API layer maps Account to a
    public response model that has no hash field at all.

    Accounts are created on signup and never mutated by this service.
    """

    email: str
    password_hash: str = field(repr=False)
    first_name: str
    last_name: str
    role: str  # "user" or "admin"
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of an access or refresh token.

    Tokens are not stored; a TokenClaims is rebuilt from a signed JWT on every
    use. role is the role at mint time -- a role change is not visible until
    the holder logs in again.
    """

    account_id: int
    role: Role
    kind: TokenKind
    token_id: str  # jti
    expires_at: datetime
