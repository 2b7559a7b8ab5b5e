"""
auth/lockout.py -- Account lockout policy.

The counting itself happens inside UserStore.record_failed_login(), which
increments and applies the threshold in a single UPDATE so concurrent failed
attempts cannot slip past the limit. This class owns the numbers and the
interpretation of the stored state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.models import User

logger = logging.getLogger("sessionguard.auth")


@dataclass(frozen=True)
class FailureOutcome:
    failed_attempts: int
    remaining_attempts: int
    locked_until: datetime | None


class LockoutPolicy:
    def __init__(self, max_attempts: int = 5, duration: timedelta = timedelta(minutes=15)) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.duration = duration

    def locked_until(self, user: User, now: datetime) -> datetime | None:
        """Return the unlock instant if the account is locked at now."""
        if user.locked_until is not None and user.locked_until > now:
            return user.locked_until
        return None

    def remaining(self, failed_attempts: int) -> int:
        return max(0, self.max_attempts - failed_attempts)

    def lock_expiry(self, now: datetime) -> datetime:
        return now + self.duration

    def outcome(self, user_id: int, failed_attempts: int, locked_until: datetime | None, now: datetime) -> FailureOutcome:
        """Interpret the counter state returned by the store after a failure."""
        active_lock = locked_until if locked_until is not None and locked_until > now else None
        # Locked accounts are rejected before the password check, so a lock
        # seen here was applied by this failure.
        if active_lock is not None:
            logger.warning("Account locked after %d failed attempts (user_id=%s)", failed_attempts, user_id)
        return FailureOutcome(
            failed_attempts=failed_attempts,
            remaining_attempts=self.remaining(failed_attempts),
            locked_until=active_lock,
        )
