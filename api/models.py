"""
API request and response models for SessionGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and the
typed results in auth/results.py, which own the internal representation.
Route handlers map between the two.

Separation of concerns: auth/ = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    readwrite = "readwrite"
    admin = "admin"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    identifier is a username or an email address.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)
    device_fingerprint: Optional[str] = Field(default=None, max_length=255)


class SecondFactorRequest(BaseModel):
    """Request body for POST /api/v1/auth/2fa/verify."""

    model_config = ConfigDict(str_strip_whitespace=True)

    challenge: str = Field(min_length=1)
    code: str = Field(min_length=6, max_length=16, description="TOTP code or backup code")
    device_fingerprint: Optional[str] = Field(default=None, max_length=255)
    remember_device: bool = False


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=1024)
    new_password: str = Field(min_length=1, max_length=72)


class PasswordResetRequest(BaseModel):
    new_password: str = Field(min_length=1, max_length=72)


class RevokeSessionsRequest(BaseModel):
    reason: str = Field(default="user_request", min_length=1, max_length=255)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/auth/users (admin only)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=72)
    role: RoleEnum = RoleEnum.user
    display_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/auth/users/{id} (admin only).

    All fields are optional; only the supplied ones are changed.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None


class CodeRequest(BaseModel):
    """A TOTP code (or, where accepted, a backup code)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=6, max_length=16)


class TrustDeviceRequest(BaseModel):
    device_fingerprint: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    role: str
    is_active: bool
    force_password_change: bool = False
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LoginResponse(BaseModel):
    """Response for a completed login (password, or password + second factor)."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    is_2fa_verified: bool = False
    user: UserResponse


class SecondFactorRequiredResponse(BaseModel):
    """Response for a correct password when a second factor is still needed."""

    requires_2fa: bool = True
    challenge: str


class RefreshResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class MeResponse(BaseModel):
    user_id: int
    username: str
    email: str
    display_name: Optional[str] = None
    role: str
    session_id: int
    is_2fa_verified: bool


class PasswordChangedResponse(BaseModel):
    message: str = "Password updated."
    sessions_revoked: int


class RevokedResponse(BaseModel):
    revoked: int


# ---------------------------------------------------------------------------
# Two-factor -- responses
# ---------------------------------------------------------------------------


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    backup_codes_remaining: int
    trusted_devices_count: int
    enabled_at: Optional[datetime] = None
    last_verified_at: Optional[datetime] = None


class TwoFactorSetupResponse(BaseModel):
    """Plaintext setup material. Shown once; never retrievable again."""

    secret: str
    provisioning_uri: str
    qr_image: str
    backup_codes: list[str]


class TwoFactorEnabledResponse(BaseModel):
    enabled: bool = True
    enabled_at: datetime


class TwoFactorDisabledResponse(BaseModel):
    enabled: bool = False
    disabled_at: datetime


class BackupCodesResponse(BaseModel):
    backup_codes: list[str]


class TrustedDeviceResponse(BaseModel):
    fingerprint: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    trusted_until: datetime
    created_at: datetime
