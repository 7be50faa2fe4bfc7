"""
API request and response models for bridge-auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import LoginResult, Registration
from auth.tokens import ACCESS_TOKEN_LIFETIME

# Transport-level cap only. bcrypt's 72-byte limit is enforced by
# PasswordPolicy, which reports it as a registration validation error.
_PASSWORD_MAX = 128

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    identifier may be a username or an email address. callback_url is only
    used when the account is unconfirmed; it defaults to this service's own
    confirm-email endpoint.
    """

    identifier: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    callback_url: Optional[str] = Field(default=None, max_length=2048)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Only shape is checked here. Password strength, username characters, email
    format and uniqueness are the directory's call, reported back as a list.
    No whitespace stripping: it would silently change the password.
    """

    username: str = Field(max_length=256)
    email: str = Field(max_length=256)
    password: str = Field(max_length=_PASSWORD_MAX)
    full_name: str = Field(default="", max_length=255)
    avatar: Optional[str] = Field(default=None, max_length=2048)
    address: Optional[str] = Field(default=None, max_length=1000)
    birthday: Optional[date] = None
    phone_number: Optional[str] = Field(default=None, max_length=50)

    def to_registration(self) -> Registration:
        return Registration(**self.model_dump())


class SendConfirmationRequest(BaseModel):
    """Request body for POST /api/v1/auth/send-confirmation."""

    identifier: str = Field(min_length=1, max_length=256)
    callback_url: Optional[str] = Field(default=None, max_length=2048)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Response body for a successful POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    full_name: str
    username: str
    avatar: Optional[str]
    roles: list[str]
    token: str
    token_type: str = "bearer"
    expires_in: int = int(ACCESS_TOKEN_LIFETIME.total_seconds())

    @classmethod
    def from_result(cls, result: LoginResult) -> "LoginResponse":
        return cls(
            id=result.id,
            email=result.email,
            full_name=result.full_name,
            username=result.username,
            avatar=result.avatar,
            roles=result.roles,
            token=result.token,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class SendConfirmationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    sent: bool


class MeResponse(BaseModel):
    """Identity carried by the caller's bearer token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    email: str
    roles: list[str]


class RoleCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: str
    in_role: bool


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    errors is only set for registration validation failures, one entry per
    rejected field rule.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    errors: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
