"""
auth/errors.py -- Exception taxonomy used inside the auth core.

Components raise these; auth/authenticator.py catches them and returns the
typed results in auth/results.py. None of them is meant to escape the
Authenticator's public methods.
"""

from __future__ import annotations

from datetime import datetime


class AuthError(Exception):
    """Base class for every auth-core failure."""


class ValidationError(AuthError):
    """One or more input rules were violated. errors lists every one of them."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class AuthenticationError(AuthError):
    """Bad credentials. Deliberately silent about which part was wrong."""

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__("Invalid credentials")
        self.remaining_attempts = remaining_attempts


class LockedError(AuthError):
    def __init__(self, until: datetime) -> None:
        super().__init__(f"Account locked until {until.isoformat()}")
        self.until = until


class DisabledError(AuthError):
    def __init__(self) -> None:
        super().__init__("Account is disabled")


class InvalidCodeError(AuthError):
    """A TOTP or backup code did not verify. Never says which."""

    def __init__(self) -> None:
        super().__init__("Invalid code")


class TokenError(AuthError):
    """A token failed verification.

    reason is one of REASONS and is meant for logs only. Callers outside the
    core see a single generic "invalid token".
    """

    REASONS = ("expired", "invalid", "wrong_type", "not_found", "revoked", "user_inactive")

    def __init__(self, reason: str) -> None:
        if reason not in self.REASONS:
            raise ValueError(f"Unknown token error reason: {reason!r}")
        super().__init__(reason)
        self.reason = reason


class SecretCipherError(AuthError):
    """Ciphertext could not be decrypted (wrong key or tampered data)."""


class TwoFactorStateError(AuthError):
    """The requested 2FA transition does not apply to the current record
    (e.g. generating a new seed while 2FA is already enabled)."""
