"""
core/clock.py -- The single source of "now" for SessionGuard.

Every service takes a ``clock`` callable instead of calling datetime.now()
inline, so lockout windows, token expiry and TOTP time steps can be driven
from tests without sleeping or monkeypatching.

Conventions used across the codebase:
  Instants   -- timezone-aware datetime in UTC.
  Durations  -- datetime.timedelta.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(instant: datetime | None) -> str | None:
    """Serialize an instant for storage. Fixed microsecond precision keeps
    stored values lexicographically comparable."""
    if instant is None:
        return None
    return instant.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored ISO-8601 string back into an aware UTC datetime.

    Naive values (written by other tools) are assumed to be UTC.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
