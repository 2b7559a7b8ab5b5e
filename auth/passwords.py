"""
auth/passwords.py -- bcrypt password hashing and the password policy.

Security design decisions:
  Hashing: bcrypt used directly (no passlib wrapper). The cost factor comes
       from Settings.bcrypt_rounds; 12 rounds lands well above 100ms per hash
       on commodity hardware. bcrypt.checkpw compares in constant time.

  72-byte limit: bcrypt refuses input past 72 bytes. The policy rejects
       longer new passwords (measured in UTF-8 bytes) and the API caps
       new-password fields at 72 characters. There is no pre-hashing
       workaround, because that would change the digest format stored in
       existing rows. verify() treats an over-long candidate as a mismatch.

  Timing equalization: verify_dummy() runs a full bcrypt check against a
       hash computed once per hasher, so a login for an unknown user costs
       the same as a login with a wrong password.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import bcrypt

from core.config import Settings

# Top entries only. Matching is case-insensitive.
COMMON_PASSWORDS: frozenset[str] = frozenset(
    {
        "password",
        "123456",
        "12345678",
        "123456789",
        "1234567890",
        "qwerty",
        "qwertyuiop",
        "abc123",
        "monkey",
        "1234567",
        "letmein",
        "trustno1",
        "dragon",
        "baseball",
        "iloveyou",
        "master",
        "sunshine",
        "ashley",
        "bailey",
        "shadow",
        "123123",
        "654321",
        "superman",
        "qazwsx",
        "michael",
        "football",
        "password1",
        "password12",
        "password123",
        "password1234",
        "batman",
        "login",
        "admin",
        "welcome",
        "welcome123",
        "changeme",
        "passw0rd",
        "p@ssw0rd",
        "p@ssword123",
    }
)

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"\d")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?`~]")

# bcrypt input limit.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """bcrypt with a configurable work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds
        self._dummy_hash: str | None = None

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the bcrypt hash.

        A malformed or empty hash is a mismatch, not an error.
        """
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt verification for timing equalization."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("sessionguard_timing_dummy")
        self.verify(plain, self._dummy_hash)


@dataclass(frozen=True)
class PolicyResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PasswordPolicy:
    """Password strength rules. Each character-class rule can be switched off."""

    min_length: int = 12
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.password_min_length,
            require_uppercase=settings.password_require_uppercase,
            require_lowercase=settings.password_require_lowercase,
            require_digit=settings.password_require_digit,
            require_special=settings.password_require_special,
        )

    def validate(self, password: str, username: str | None = None) -> PolicyResult:
        """Check every rule and report all failures together."""
        errors: list[str] = []

        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if self.require_uppercase and not _UPPER_RE.search(password):
            errors.append("Password must contain at least one uppercase letter")
        if self.require_lowercase and not _LOWER_RE.search(password):
            errors.append("Password must contain at least one lowercase letter")
        if self.require_digit and not _DIGIT_RE.search(password):
            errors.append("Password must contain at least one digit")
        if self.require_special and not _SPECIAL_RE.search(password):
            errors.append("Password must contain at least one special character")
        if password.lower() in COMMON_PASSWORDS:
            errors.append("Password is too common, please choose a stronger password")
        if username and username.lower() in password.lower():
            errors.append("Password cannot contain your username")

        return PolicyResult(valid=not errors, errors=errors)
