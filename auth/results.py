"""
auth/results.py -- Typed outcomes returned by the Authenticator.

Every public Authenticator method returns one of these (or a plain domain
object) instead of raising. Callers branch with isinstance() or match:

    result = authenticator.login("alice", password, ctx)
    match result:
        case LoginSuccess(): ...
        case Requires2FA(user_id=uid): ...
        case Locked(until=until): ...

Requires2FA is not a failure: the password was right, but another call is
needed before a session exists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from auth.models import User


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginSuccess:
    user: User
    access_token: str
    refresh_token: str
    expires_at: datetime
    session_id: int
    is_2fa_verified: bool = False


@dataclass(frozen=True)
class Requires2FA:
    """challenge is a short-lived signed token naming user_id. Transports
    hand it to the client instead of trusting a client-supplied user id."""

    user_id: int
    challenge: str = ""


@dataclass(frozen=True)
class Locked:
    until: datetime


@dataclass(frozen=True)
class InvalidCredentials:
    remaining_attempts: int


@dataclass(frozen=True)
class Disabled:
    pass


@dataclass(frozen=True)
class InvalidCode:
    pass


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Refreshed:
    access_token: str
    expires_at: datetime
    session_id: int


@dataclass(frozen=True)
class TokenRejected:
    """Collapsed token failure. The specific reason is only logged."""

    error: str = "invalid token"


# ---------------------------------------------------------------------------
# Account management
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyViolation:
    """Input validation failure. errors enumerates every violated rule."""

    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PasswordChanged:
    sessions_revoked: int = 0


@dataclass(frozen=True)
class WrongCurrentPassword:
    pass


@dataclass(frozen=True)
class ReusedPassword:
    pass


@dataclass(frozen=True)
class NotFound:
    pass


# ---------------------------------------------------------------------------
# Two-factor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TwoFactorSetup:
    """Plaintext setup material, shown to the user exactly once."""

    secret: str
    provisioning_uri: str
    qr_image: str  # data: URL (SVG)
    backup_codes: list[str]


@dataclass(frozen=True)
class AlreadyEnabled:
    pass


@dataclass(frozen=True)
class TwoFactorEnabled:
    enabled_at: datetime


@dataclass(frozen=True)
class TwoFactorDisabled:
    disabled_at: datetime


@dataclass(frozen=True)
class BackupCodesIssued:
    codes: list[str]


@dataclass(frozen=True)
class TwoFactorStatus:
    enabled: bool
    backup_codes_remaining: int = 0
    trusted_devices_count: int = 0
    enabled_at: datetime | None = None
    last_verified_at: datetime | None = None
