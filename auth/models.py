"""
auth/models.py -- Domain dataclasses for identity and session entities.

Pattern: Data class (pure data container, zero logic). The store maps rows to
these types; services and the Authenticator do the work.

Time convention: every instant is an aware UTC datetime (see core/clock.py).

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

ROLES = ("user", "readwrite", "admin")
DEFAULT_ROLE = "user"

# Hard caps on bounded sequences. Checked by the store on every write.
MAX_TRUSTED_DEVICES = 10
MAX_USER_AGENT_LENGTH = 500
MAX_IP_LENGTH = 45
MAX_FINGERPRINT_LENGTH = 255


@dataclass
class User:
    """A local identity.

    email is stored lowercase. password_history holds prior bcrypt hashes,
    newest first; it never contains the current hash.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    hashed_password: str
    role: str = DEFAULT_ROLE  # "user" | "readwrite" | "admin"
    id: int | None = None
    display_name: str | None = None
    is_active: bool = True
    email_verified: bool = False
    password_history: list[str] = field(default_factory=list)
    failed_login_attempts: int = 0
    locked_until: datetime | None = None
    last_failed_login: datetime | None = None
    last_login: datetime | None = None
    password_changed_at: datetime | None = None
    force_password_change: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None


@dataclass
class Session:
    """One issued access token.

    token_hash is the SHA-256 hex digest of the access JWT. The raw token is
    never persisted.
    """

    user_id: int
    token_hash: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None
    last_active_at: datetime | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    device_fingerprint: str | None = None
    is_2fa_verified: bool = False
    remember_device: bool = False
    is_revoked: bool = False
    revoked_at: datetime | None = None
    revoked_reason: str | None = None  # "logout" | "password_change" | "admin_action" | ...
    revoked_by: str | None = None


@dataclass
class BackupCode:
    """A bcrypt digest of one recovery code plus its single-use marker."""

    code_hash: str
    used: bool = False
    used_at: datetime | None = None
    id: int | None = None


@dataclass
class TrustedDevice:
    """A client allowed to skip the second factor until trusted_until."""

    fingerprint: str
    trusted_until: datetime
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class TwoFactorRecord:
    """Per-user TOTP configuration.

    A record with enabled=False and a secret is "pending": setup was
    generated but never confirmed. Only enabled records gate login.
    totp_secret is ciphertext from auth/cipher.py.
    """

    user_id: int
    totp_secret: str
    enabled: bool = False
    totp_algorithm: str = "SHA1"
    totp_digits: int = 6
    totp_period: int = 30
    backup_codes: list[BackupCode] = field(default_factory=list)
    backup_codes_remaining: int = 0
    trusted_devices: list[TrustedDevice] = field(default_factory=list)
    backup_codes_generated_at: datetime | None = None
    enabled_at: datetime | None = None
    disabled_at: datetime | None = None
    last_totp_verified_at: datetime | None = None
    last_backup_code_used_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class RequestContext:
    """Client facts supplied by the transport layer for one request."""

    ip_address: str | None = None
    user_agent: str | None = None
    device_fingerprint: str | None = None
    remember_device: bool = False


@dataclass(frozen=True)
class DeviceDescriptor:
    fingerprint: str
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Identity:
    """The typed result of authenticating an access token.

    Callers pass this around instead of attaching state to a request object.
    """

    user_id: int
    username: str
    email: str
    role: str
    session_id: int
    is_2fa_verified: bool
    display_name: str | None = None
