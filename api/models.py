"""
API request and response models for the Natours auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request bodies use the camelCase field names the existing web client sends
(passwordConfirm, passwordCurrent); populate_by_name lets Python callers use
the snake_case names as well.

Password fields are capped at 72 characters -- bcrypt ignores everything
past 72 bytes. The minimum length is a policy setting and is enforced by
AuthService, not here.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

_PASSWORD_MAX = 72

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup.

    Role is not accepted here: self-signup always creates a "user". Elevated
    roles are granted administratively.
    """

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: Optional[str] = Field(default=None, max_length=255)
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=_PASSWORD_MAX)
    password_confirm: str = Field(alias="passwordConfirm", max_length=_PASSWORD_MAX)


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/auth/reset-password/{token}."""

    model_config = ConfigDict(populate_by_name=True)

    password: str = Field(max_length=_PASSWORD_MAX)
    password_confirm: str = Field(alias="passwordConfirm", max_length=_PASSWORD_MAX)


class UpdatePasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/auth/update-my-password."""

    model_config = ConfigDict(populate_by_name=True)

    password_current: str = Field(alias="passwordCurrent", max_length=_PASSWORD_MAX)
    password: str = Field(max_length=_PASSWORD_MAX)
    password_confirm: str = Field(alias="passwordConfirm", max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountOut(BaseModel):
    """Public account fields. No hashes, no reset state."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: Optional[str] = None
    role: str


class AccountData(BaseModel):
    model_config = ConfigDict(frozen=True)

    account: AccountOut


class AuthResponse(BaseModel):
    """Envelope for every token-issuing endpoint."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    token: str
    data: AccountData


class AccountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    data: AccountData


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success", "fail", "error"] = "success"
    message: str


class ErrorResponse(BaseModel):
    """Envelope returned on 4xx ("fail") and 5xx ("error") responses."""

    model_config = ConfigDict(frozen=True)

    status: Literal["fail", "error"]
    code: str
    message: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
