"""
API request and response models for RoleGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
rbac/models.py, which own the internal domain representation. Route handlers
pass validated fields into the catalogs and lifecycle service and serialize
the returned Envelope.

Input rules enforced here (before any core operation runs):
  role / action names   3-30 chars
  descriptions          <= 200 chars
  passwords             6-128 chars
  verification code     exactly 6 digits
  email                 valid address format (email-validator)

Request bodies use camelCase keys (roleId, actionIds, isActive, referredBy)
to match the {"data", "metaData"} response envelope. snake_case is accepted
too.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.otp import CODE_LENGTH

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CODE_PATTERN = rf"^\d{{{CODE_LENGTH}}}$"

_DESCRIPTION_MAX = 200


class _Body(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class RegisterRequest(_Body):
    """Request body for POST /api/v1/auth/register."""

    firstname: str = Field(min_length=1, max_length=100)
    lastname: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=30)
    referred_by: Optional[str] = Field(default=None, max_length=32, alias="referredBy")


class VerifyEmailRequest(_Body):
    """Request body for POST /api/v1/auth/verify-email."""

    email: EmailStr
    code: str = Field(pattern=CODE_PATTERN, description="The 6-digit code from the verification email.")


class LoginRequest(_Body):
    """Request body for POST /api/v1/auth/login.

    No min_length on password here: a short password must fail as
    bad_credentials, not as a 422 that reveals the length policy.
    """

    email: EmailStr
    password: str = Field(max_length=128)


class ResendCodeRequest(_Body):
    """Request body for POST /api/v1/auth/resend-code."""

    email: EmailStr


class ChangePasswordRequest(_Body):
    """Request body for PUT /api/v1/auth/password."""

    current_password: str = Field(max_length=128, alias="currentPassword")
    new_password: str = Field(min_length=6, max_length=128, alias="newPassword")


# ---------------------------------------------------------------------------
# RBAC request models
# ---------------------------------------------------------------------------


class ActionCreate(_Body):
    """Request body for POST /api/v1/admin/actions.

    category is validated by the catalog so the error carries the list of
    allowed values.
    """

    name: str = Field(min_length=3, max_length=30)
    category: str = Field(min_length=1, max_length=50)
    description: str = Field(default="", max_length=_DESCRIPTION_MAX)


class ActionUpdate(_Body):
    """Request body for PUT /api/v1/admin/actions/{id}. All fields optional."""

    name: Optional[str] = Field(default=None, min_length=3, max_length=30)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=_DESCRIPTION_MAX)
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class RoleCreate(_Body):
    """Request body for POST /api/v1/admin/roles."""

    name: str = Field(min_length=3, max_length=30)
    description: str = Field(default="", max_length=_DESCRIPTION_MAX)
    action_ids: list[int] = Field(default_factory=list, alias="actionIds")


class RoleUpdate(_Body):
    """Request body for PUT /api/v1/admin/roles/{id}. All fields optional."""

    name: Optional[str] = Field(default=None, min_length=3, max_length=30)
    description: Optional[str] = Field(default=None, max_length=_DESCRIPTION_MAX)
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class RoleActionAdd(_Body):
    """Request body for POST /api/v1/admin/roles/{id}/actions."""

    action_id: int = Field(alias="actionId")


class RoleAssign(_Body):
    """Request body for PUT /api/v1/admin/users/{id}/role."""

    role_id: int = Field(alias="roleId")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
