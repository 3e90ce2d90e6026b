"""
API request and response models for Tokengate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (firstName, accessToken); Python attributes stay
snake_case through alias_generator=to_camel. Dump with by_alias=True.

Request models are frozen and forbid unknown keys: the route reads the raw
JSON mapping and validates it into one of these before any auth/ component
sees it, so nothing loosely typed travels inward.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Account, normalize_email

# ---------------------------------------------------------------------------
# Shared config
# ---------------------------------------------------------------------------

_REQUEST_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=False,
    extra="forbid",
    frozen=True,
)

_RESPONSE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


def _require_text(value: str) -> str:
    """Reject whitespace-only strings; an all-blank name is a missing name."""
    if not value.strip():
        raise ValueError("must not be blank")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup.

    role is free text of any length: RolePolicy decides what it becomes, so
    only an absent or empty role is a missing field. password is neither
    stripped nor blank-checked; spaces are part of it. admin_secret is not
    length-capped so any wrong value reaches the policy and gets a 403.
    """

    model_config = _REQUEST_CONFIG

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: str = Field(min_length=1)
    admin_secret: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        v = normalize_email(v)
        if "@" not in v:
            raise ValueError("invalid email address")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        return _require_text(v).strip()


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = _REQUEST_CONFIG

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        return _require_text(normalize_email(v))


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PublicUser(BaseModel):
    """Account fields safe to return to a client. No password hash, ever."""

    model_config = _RESPONSE_CONFIG

    id: int
    email: str
    first_name: str
    last_name: str
    role: str

    @classmethod
    def from_account(cls, account: Account) -> "PublicUser":
        return cls(
            id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            role=account.role,
        )


class SessionTokens(BaseModel):
    """Tokens returned in the body. The refresh token travels only as a cookie."""

    model_config = _RESPONSE_CONFIG

    access_token: str


class SessionData(BaseModel):
    model_config = _RESPONSE_CONFIG

    user: PublicUser
    tokens: SessionTokens


class SessionResponse(BaseModel):
    """Response body for a successful signup or login."""

    model_config = _RESPONSE_CONFIG

    message: str
    data: SessionData


class RefreshResponse(BaseModel):
    """Response body for POST /api/v1/auth/refresh."""

    model_config = _RESPONSE_CONFIG

    access_token: str


class MessageResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses.

    4xx: {"error": "..."}. 5xx additionally carries a generic message.
    Neither ever includes exception text from the store or crypto layer.
    """

    model_config = ConfigDict(frozen=True)

    error: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
