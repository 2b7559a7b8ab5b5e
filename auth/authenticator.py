"""
auth/authenticator.py -- The public face of the auth core.

Pattern: Facade. Routes, the CLI and tests call Authenticator; it composes
PasswordHasher, PasswordPolicy, LockoutPolicy, SessionManager and
TwoFactorService over one UserStore.

Every public method returns a typed result (auth/results.py) or a plain
value. Exceptions from the components (auth/errors.py) are converted here and
never cross this boundary.

Login flow:
  lookup --(unknown)--> dummy bcrypt, InvalidCredentials
         --(locked)---> Locked            (even with the right password)
  password --(wrong)--> count failure, InvalidCredentials | Locked
  active? --(no)------> Disabled
  2FA enabled?
     no                       -> LoginSuccess
     yes, trusted device      -> LoginSuccess(is_2fa_verified=True)
     yes                      -> Requires2FA(user_id, challenge)

The failure counter is only reset after the full login succeeds, so knowing
the password does not reset the budget for guessing the second factor.
The reset is a conditional UPDATE that refuses while a lock is active, and no
session is issued when it refuses. An attempt that passed the lock check before
a concurrent failure locked the account therefore ends in Locked.

A TOTP seed that cannot be decrypted (ENCRYPTION_KEY changed) is logged as an
error and reported as InvalidCode without counting toward the lockout.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AuthenticationError,
    DisabledError,
    InvalidCodeError,
    LockedError,
    SecretCipherError,
    TokenError,
    TwoFactorStateError,
    ValidationError,
)
from auth.lockout import LockoutPolicy
from auth.models import ROLES, DeviceDescriptor, Identity, RequestContext, TrustedDevice, User
from auth.passwords import PasswordHasher, PasswordPolicy
from auth.results import (
    AlreadyEnabled,
    BackupCodesIssued,
    Disabled,
    InvalidCode,
    InvalidCredentials,
    Locked,
    LoginSuccess,
    NotFound,
    PasswordChanged,
    PolicyViolation,
    Refreshed,
    Requires2FA,
    ReusedPassword,
    TokenRejected,
    TwoFactorDisabled,
    TwoFactorEnabled,
    TwoFactorSetup,
    TwoFactorStatus,
    WrongCurrentPassword,
)
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import CHALLENGE
from auth.two_factor import TwoFactorService
from core.clock import Clock, utc_now
from core.config import Settings

logger = logging.getLogger("sessionguard.auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.\-]{3,100}$")

CHALLENGE_TTL = timedelta(minutes=5)


class Authenticator:
    """Usage:
        auth = Authenticator(UserStore(settings.database_url), settings)
        result = auth.login("alice", "Tr0ub4dor&3xyz", RequestContext(ip_address="10.0.0.1"))
    """

    def __init__(self, store: UserStore, settings: Settings, clock: Clock = utc_now) -> None:
        self.store = store
        self.settings = settings
        self._clock = clock
        self.hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        self.policy = PasswordPolicy.from_settings(settings)
        self.lockout = LockoutPolicy(settings.lockout_max_attempts, settings.lockout_duration)
        self.sessions = SessionManager(store, settings, clock=clock)
        self.two_factor = TwoFactorService(store, settings, clock=clock)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role: str | None = None,
        display_name: str | None = None,
        created_by: str | None = None,
    ) -> User | PolicyViolation:
        username = (username or "").strip()
        email = (email or "").strip().lower()
        role = role or "user"

        try:
            self._validate_new_user(username, email, password, role)
        except ValidationError as exc:
            return PolicyViolation(exc.errors)

        user = User(
            username=username,
            email=email,
            hashed_password=self.hasher.hash(password),
            role=role,
            display_name=display_name,
            created_by=created_by,
        )
        try:
            user_id = self.store.create_user(user, self._clock())
        except IntegrityError:
            # Concurrent insert won between the pre-check and ours.
            return PolicyViolation(["Username or email already exists"])
        logger.info("User created: user_id=%d role=%s", user_id, role)
        return self.store.get_by_id(user_id)

    def _validate_new_user(self, username: str, email: str, password: str, role: str) -> None:
        errors: list[str] = []
        if not _USERNAME_RE.match(username):
            errors.append("Username must be 3-100 characters of letters, digits, '.', '_' or '-'")
        if not _EMAIL_RE.match(email):
            errors.append("Email address is not valid")
        if role not in ROLES:
            errors.append(f"Role must be one of: {', '.join(ROLES)}")
        errors.extend(self.policy.validate(password, username).errors)
        if errors:
            raise ValidationError(errors)

        if self.store.get_by_username(username) is not None:
            raise ValidationError(["Username already exists"])
        if self.store.get_by_email(email) is not None:
            raise ValidationError(["Email already exists"])

    def update_user(
        self,
        user_id: int,
        display_name: str | None = None,
        email: str | None = None,
        role: str | None = None,
        is_active: bool | None = None,
        updated_by: str | None = None,
    ) -> User | PolicyViolation | NotFound:
        """Update profile fields. Deactivating a user revokes their sessions."""
        user = self.store.get_by_id(user_id)
        if user is None:
            return NotFound()

        fields: dict = {}
        if display_name is not None:
            fields["display_name"] = display_name
        if email is not None:
            email = email.strip().lower()
            if not _EMAIL_RE.match(email):
                return PolicyViolation(["Email address is not valid"])
            other = self.store.get_by_email(email)
            if other is not None and other.id != user_id:
                return PolicyViolation(["Email already exists"])
            fields["email"] = email
        if role is not None:
            if role not in ROLES:
                return PolicyViolation([f"Role must be one of: {', '.join(ROLES)}"])
            fields["role"] = role
        if is_active is not None:
            fields["is_active"] = is_active
        if updated_by is not None:
            fields["updated_by"] = updated_by

        if fields:
            try:
                self.store.update_user(user_id, self._clock(), **fields)
            except IntegrityError:
                return PolicyViolation(["Email already exists"])
        if is_active is False and user.is_active:
            self.sessions.revoke_all(user_id, "account_disabled", updated_by)
            logger.warning("User deactivated: user_id=%d by=%s", user_id, updated_by)
        return self.store.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self, identifier: str, password: str, context: RequestContext | None = None
    ) -> Locked | InvalidCredentials | Disabled | Requires2FA | LoginSuccess:
        context = context or RequestContext()
        try:
            user = self._check_password(identifier, password, context)
        except LockedError as exc:
            return Locked(until=exc.until)
        except AuthenticationError as exc:
            return InvalidCredentials(remaining_attempts=exc.remaining_attempts)
        except DisabledError:
            return Disabled()

        if self.two_factor.is_enabled(user.id):
            if self.two_factor.is_device_trusted(user.id, context.device_fingerprint):
                logger.info("2FA skipped for trusted device (user_id=%d)", user.id)
                return self._complete_login(user, context, is_2fa_verified=True, remember_device=True)
            challenge, _ = self.sessions.codec.encode(user.id, CHALLENGE, CHALLENGE_TTL)
            return Requires2FA(user_id=user.id, challenge=challenge)

        return self._complete_login(user, context, is_2fa_verified=False)

    def verify_second_factor(
        self, user_id: int, code: str, context: RequestContext | None = None
    ) -> LoginSuccess | InvalidCode | Locked:
        """Finish a login that returned Requires2FA.

        Accepts a current TOTP code or an unused backup code. Failures count
        toward the same lockout as password failures.
        """
        context = context or RequestContext()
        user = self.store.get_by_id(user_id)
        if user is None or not user.is_active:
            return InvalidCode()

        until = self.lockout.locked_until(user, self._clock())
        if until is not None:
            return Locked(until=until)

        try:
            method = self.two_factor.verify_code(user.id, code)
        except InvalidCodeError:
            result = self._register_failure(user.id)
            if isinstance(result, Locked):
                return result
            return InvalidCode()
        except SecretCipherError:
            logger.error("Stored TOTP seed for user_id=%d cannot be decrypted; check ENCRYPTION_KEY", user.id)
            return InvalidCode()

        logger.info("Second factor verified for user_id=%d via %s", user.id, method)
        if context.remember_device and context.device_fingerprint:
            self.two_factor.trust_device(
                user.id,
                DeviceDescriptor(
                    fingerprint=context.device_fingerprint,
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                ),
            )
        return self._complete_login(user, context, is_2fa_verified=True, remember_device=context.remember_device)

    def resolve_challenge(self, challenge: str) -> int | None:
        """Return the user id named by a Requires2FA challenge, or None."""
        try:
            return self.sessions.codec.decode(challenge, CHALLENGE).user_id
        except TokenError as exc:
            logger.info("2FA challenge rejected (%s)", exc.reason)
            return None

    def _check_password(self, identifier: str, password: str, context: RequestContext) -> User:
        """Return the active user named by identifier if password matches.

        Raises AuthenticationError, LockedError or DisabledError. The disabled
        check runs last so it only answers callers who know the password.
        """
        user = self.store.get_by_login((identifier or "").strip())
        if user is None:
            # Spend the same bcrypt time as a wrong password.
            self.hasher.verify_dummy(password or "")
            logger.info("Failed login for unknown identifier from %s", context.ip_address or "unknown")
            raise AuthenticationError(self.lockout.max_attempts)

        until = self.lockout.locked_until(user, self._clock())
        if until is not None:
            logger.info("Login rejected for locked user_id=%d", user.id)
            raise LockedError(until)

        if not self.hasher.verify(password or "", user.hashed_password):
            failure = self._register_failure(user.id)
            if isinstance(failure, Locked):
                raise LockedError(failure.until)
            raise AuthenticationError(failure.remaining_attempts)

        if not user.is_active:
            logger.info("Login rejected for disabled user_id=%d", user.id)
            raise DisabledError()
        return user

    def _register_failure(self, user_id: int) -> InvalidCredentials | Locked:
        now = self._clock()
        recorded = self.store.record_failed_login(
            user_id, self.lockout.max_attempts, self.lockout.lock_expiry(now), now
        )
        if recorded is None:
            return InvalidCredentials(remaining_attempts=self.lockout.max_attempts)
        outcome = self.lockout.outcome(user_id, recorded[0], recorded[1], now)
        if outcome.locked_until is not None:
            return Locked(until=outcome.locked_until)
        logger.info("Failed login for user_id=%d (%d attempt(s) left)", user_id, outcome.remaining_attempts)
        return InvalidCredentials(remaining_attempts=outcome.remaining_attempts)

    def _complete_login(
        self, user: User, context: RequestContext, is_2fa_verified: bool, remember_device: bool = False
    ) -> LoginSuccess | Locked:
        now = self._clock()
        if not self.store.record_successful_login(user.id, now):
            # A concurrent failure locked the account after our lock check.
            current = self.store.get_by_id(user.id)
            until = self.lockout.locked_until(current, now) if current is not None else None
            logger.warning("Login for user_id=%d refused: account locked during verification", user.id)
            return Locked(until=until or self.lockout.lock_expiry(now))
        issued = self.sessions.issue(user.id, context, is_2fa_verified=is_2fa_verified, remember_device=remember_device)
        return LoginSuccess(
            user=self.store.get_by_id(user.id),
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            expires_at=issued.expires_at,
            session_id=issued.session_id,
            is_2fa_verified=is_2fa_verified,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def authenticate(self, access_token: str) -> Identity | TokenRejected:
        check = self.sessions.verify(access_token or "")
        if not check.valid:
            logger.debug("Access token rejected (%s)", check.error)
            return TokenRejected()
        return Identity(
            user_id=check.user.id,
            username=check.user.username,
            email=check.user.email,
            role=check.user.role,
            session_id=check.session.id,
            is_2fa_verified=check.session.is_2fa_verified,
            display_name=check.user.display_name,
        )

    def refresh_token(self, refresh_token: str, context: RequestContext | None = None) -> Refreshed | TokenRejected:
        try:
            return self.sessions.refresh(refresh_token or "", context)
        except TokenError as exc:
            logger.info("Refresh token rejected (%s)", exc.reason)
            return TokenRejected()

    def logout(self, access_token: str) -> bool:
        return self.sessions.revoke(access_token or "", "logout")

    def revoke_all_sessions(self, user_id: int, reason: str, by: str | None = None) -> int:
        return self.sessions.revoke_all(user_id, reason, by)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(
        self, user_id: int, current: str, new: str
    ) -> PasswordChanged | WrongCurrentPassword | PolicyViolation | ReusedPassword:
        """Change a password after proving the current one.

        The new password may not match the current hash or the most recent
        password_reuse_window history entries. All sessions are revoked.
        """
        user = self.store.get_by_id(user_id)
        if user is None or not self.hasher.verify(current or "", user.hashed_password):
            return WrongCurrentPassword()

        checked = self.policy.validate(new, user.username)
        if not checked.valid:
            return PolicyViolation(checked.errors)

        recent = [user.hashed_password] + user.password_history[: self.settings.password_reuse_window]
        if any(self.hasher.verify(new, digest) for digest in recent):
            return ReusedPassword()

        self._store_password(user, new, force_change=False, updated_by=str(user_id))
        revoked = self.sessions.revoke_all(user_id, "password_change", str(user_id))
        logger.info("Password changed for user_id=%d", user_id)
        return PasswordChanged(sessions_revoked=revoked)

    def reset_password(self, user_id: int, new: str, admin_id: int | str) -> PasswordChanged | PolicyViolation | NotFound:
        """Administrative reset: no current password, forces a change at next
        login, clears any lockout and revokes all sessions."""
        user = self.store.get_by_id(user_id)
        if user is None:
            return NotFound()

        checked = self.policy.validate(new, user.username)
        if not checked.valid:
            return PolicyViolation(checked.errors)

        self._store_password(user, new, force_change=True, updated_by=str(admin_id), clear_lockout=True)
        revoked = self.sessions.revoke_all(user_id, "password_reset", str(admin_id))
        logger.warning("Password reset for user_id=%d by admin %s", user_id, admin_id)
        return PasswordChanged(sessions_revoked=revoked)

    def _store_password(
        self, user: User, new: str, force_change: bool, updated_by: str, clear_lockout: bool = False
    ) -> None:
        history = ([user.hashed_password] + user.password_history)[: self.settings.password_history_size]
        fields: dict = dict(
            hashed_password=self.hasher.hash(new),
            password_history=history,
            password_changed_at=self._clock(),
            force_password_change=force_change,
            updated_by=updated_by,
        )
        if clear_lockout:
            fields.update(failed_login_attempts=0, locked_until=None)
        self.store.update_user(user.id, self._clock(), **fields)

    # ------------------------------------------------------------------
    # Two-factor
    # ------------------------------------------------------------------

    def generate_2fa_setup(self, user_id: int, email: str) -> TwoFactorSetup | AlreadyEnabled:
        try:
            return self.two_factor.generate_setup(user_id, email)
        except TwoFactorStateError:
            return AlreadyEnabled()

    def confirm_2fa(self, user_id: int, code: str) -> TwoFactorEnabled | InvalidCode:
        try:
            return TwoFactorEnabled(enabled_at=self.two_factor.confirm(user_id, code))
        except InvalidCodeError:
            return InvalidCode()
        except SecretCipherError:
            logger.error("Stored TOTP seed for user_id=%d cannot be decrypted; check ENCRYPTION_KEY", user_id)
            return InvalidCode()

    def disable_2fa(self, user_id: int, code: str) -> TwoFactorDisabled | InvalidCode:
        try:
            return TwoFactorDisabled(disabled_at=self.two_factor.disable(user_id, code))
        except InvalidCodeError:
            return InvalidCode()
        except SecretCipherError:
            logger.error("Stored TOTP seed for user_id=%d cannot be decrypted; check ENCRYPTION_KEY", user_id)
            return InvalidCode()

    def regenerate_backup_codes(self, user_id: int, code: str) -> BackupCodesIssued | InvalidCode:
        try:
            return BackupCodesIssued(codes=self.two_factor.regenerate_backup_codes(user_id, code))
        except InvalidCodeError:
            return InvalidCode()
        except SecretCipherError:
            logger.error("Stored TOTP seed for user_id=%d cannot be decrypted; check ENCRYPTION_KEY", user_id)
            return InvalidCode()

    def get_2fa_status(self, user_id: int) -> TwoFactorStatus:
        return self.two_factor.status(user_id)

    def trust_device(self, user_id: int, descriptor: DeviceDescriptor) -> None:
        self.two_factor.trust_device(user_id, descriptor)

    def is_device_trusted(self, user_id: int, fingerprint: str | None) -> bool:
        return self.two_factor.is_device_trusted(user_id, fingerprint)

    def list_trusted_devices(self, user_id: int) -> list[TrustedDevice]:
        return self.two_factor.list_trusted_devices(user_id)

    def revoke_all_trusted_devices(self, user_id: int) -> int:
        return self.two_factor.revoke_all_trusted_devices(user_id)
