"""
API request and response models for the EDAP auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only check shape (types, upper length bounds). Content rules --
email format, password strength, required-ness -- belong to the Auth Service,
so string fields default to "" and an omitted field reaches the service as
empty, where it fails with the same typed error a form would show.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import TokenStats, UserSummary

# Generous transport caps; the service applies the real limits.
_MAX_TEXT = 255
_MAX_PASSWORD = 1024


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(default="", max_length=_MAX_TEXT)
    email: str = Field(default="", max_length=_MAX_TEXT)
    password: str = Field(default="", max_length=_MAX_PASSWORD)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Passwords are not whitespace-stripped: a leading space is part of the secret.
    """

    email: str = Field(default="", max_length=_MAX_TEXT)
    password: str = Field(default="", max_length=_MAX_PASSWORD)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(default="", max_length=_MAX_TEXT)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password."""

    token: str = Field(default="", max_length=_MAX_TEXT)
    password: str = Field(default="", max_length=_MAX_PASSWORD)
    confirm_password: str = Field(default="", max_length=_MAX_PASSWORD)


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/profile."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(default="", max_length=_MAX_TEXT)
    department: Optional[str] = Field(default=None, max_length=_MAX_TEXT)
    location: Optional[str] = Field(default=None, max_length=_MAX_TEXT)


class PasswordChange(BaseModel):
    """Request body for POST /api/v1/profile/password."""

    current_password: str = Field(default="", max_length=_MAX_PASSWORD)
    new_password: str = Field(default="", max_length=_MAX_PASSWORD)
    confirm_password: str = Field(default="", max_length=_MAX_PASSWORD)


class AdminUserPatch(BaseModel):
    """Request body for PATCH /api/v1/admin/users/{email}.

    Both fields are optional; only provided fields are applied. role is a free
    string here so an unknown role surfaces as the service's ValidationError
    rather than a schema error.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    role: Optional[str] = Field(default=None, max_length=30)
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Outward user record -- never includes credential material."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: str
    department: Optional[str] = None
    location: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    display_name: str
    initials: str

    @classmethod
    def from_summary(cls, user: UserSummary) -> "UserResponse":
        """Build a UserResponse from an auth UserSummary."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
            location=user.location,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login=user.last_login,
            display_name=user.display_name,
            initials=user.initials,
        )


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login.

    token is the same opaque value written to the session cookie, for clients
    that send it back as a Bearer header instead.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ResetTokenStatus(BaseModel):
    """Response for GET /api/v1/auth/reset-password -- existence only, never the owner."""

    model_config = ConfigDict(frozen=True)

    valid: bool


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    field: Optional[str] = None
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class TokenStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_sessions: int
    pending_reset_tokens: int
    session_ttl_seconds: int
    reset_token_ttl_seconds: int

    @classmethod
    def from_stats(cls, stats: TokenStats) -> "TokenStatsResponse":
        return cls(
            active_sessions=stats.active_sessions,
            pending_reset_tokens=stats.pending_reset_tokens,
            session_ttl_seconds=stats.session_ttl_seconds,
            reset_token_ttl_seconds=stats.reset_token_ttl_seconds,
        )


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    tokens: Optional[TokenStatsResponse] = None
