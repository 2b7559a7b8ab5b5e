"""
auth/two_factor.py -- TOTP enrollment, verification and recovery.

Composes SecretCipher (seed at rest), TOTPEngine (codes), BackupCodeManager
(recovery codes) and TrustedDeviceRegistry (skip-2FA devices) on top of the
UserStore.

Lifecycle of a user's record:
  (none) --generate_setup--> pending --confirm--> enabled --disable--> disabled
  disabled/pending --generate_setup--> pending (fresh seed and codes)

Failures raise auth.errors exceptions; the Authenticator turns them into
typed results. InvalidCodeError never says whether a TOTP or a backup code
was tried.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from auth.backup_codes import BackupCodeManager
from auth.cipher import SecretCipher
from auth.devices import TrustedDeviceRegistry
from auth.errors import InvalidCodeError, TwoFactorStateError
from auth.models import DeviceDescriptor, TrustedDevice, TwoFactorRecord
from auth.results import TwoFactorSetup, TwoFactorStatus
from auth.store import UserStore
from auth.totp import TOTP_ALGORITHM, TOTPEngine
from core.clock import Clock, utc_now
from core.config import Settings

logger = logging.getLogger("sessionguard.2fa")

TOTP = "totp"
BACKUP = "backup"


class TwoFactorService:
    def __init__(self, store: UserStore, settings: Settings, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self.cipher = SecretCipher(settings.encryption_key)
        self.totp = TOTPEngine(settings.totp_issuer, window=settings.totp_window, clock=clock)
        self.backup_codes = BackupCodeManager(count=settings.backup_code_count, rounds=settings.backup_code_rounds)
        self.devices = TrustedDeviceRegistry(settings.trusted_device_duration)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_enabled(self, user_id: int) -> bool:
        return self._store.is_two_factor_enabled(user_id)

    def status(self, user_id: int) -> TwoFactorStatus:
        record = self._store.get_two_factor(user_id)
        if record is None:
            return TwoFactorStatus(enabled=False)
        return TwoFactorStatus(
            enabled=record.enabled,
            backup_codes_remaining=record.backup_codes_remaining if record.enabled else 0,
            trusted_devices_count=len(self.devices.active(record.trusted_devices, self._clock())),
            enabled_at=record.enabled_at,
            last_verified_at=record.last_totp_verified_at,
        )

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def generate_setup(self, user_id: int, account: str) -> TwoFactorSetup:
        """Create a pending record with a fresh seed and backup codes.

        Returns the plaintext material exactly once. Raises
        TwoFactorStateError if 2FA is already enabled.
        """
        secret = self.totp.generate_secret()
        codes = self.backup_codes.generate()
        saved = self._store.save_pending_two_factor(
            user_id,
            self.cipher.encrypt(secret),
            self.backup_codes.hash_codes(codes),
            self._clock(),
            algorithm=TOTP_ALGORITHM,
            digits=self.totp.digits,
            period=self.totp.period,
        )
        if not saved:
            raise TwoFactorStateError("Two-factor authentication is already enabled")
        uri = self.totp.provisioning_uri(secret, account)
        logger.info("2FA setup generated for user_id=%d", user_id)
        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=uri,
            qr_image=self.totp.qr_data_url(uri),
            backup_codes=codes,
        )

    def confirm(self, user_id: int, code: str) -> datetime:
        """Enable a pending record. Only a TOTP code is accepted here, which
        proves the authenticator app was provisioned correctly."""
        record = self._store.get_two_factor(user_id)
        if record is None or record.enabled:
            raise InvalidCodeError()
        if not self.totp.verify(self.cipher.decrypt(record.totp_secret), code):
            logger.info("2FA confirmation failed for user_id=%d", user_id)
            raise InvalidCodeError()
        now = self._clock()
        if not self._store.enable_two_factor(user_id, now):
            raise InvalidCodeError()
        logger.info("2FA enabled for user_id=%d", user_id)
        return now

    def disable(self, user_id: int, code: str) -> datetime:
        record = self._enabled_record(user_id)
        self._verify(record, code)
        now = self._clock()
        if not self._store.disable_two_factor(user_id, now):
            raise InvalidCodeError()
        logger.warning("2FA disabled for user_id=%d", user_id)
        return now

    def regenerate_backup_codes(self, user_id: int, code: str) -> list[str]:
        record = self._enabled_record(user_id)
        self._verify(record, code)
        codes = self.backup_codes.generate()
        self._store.replace_backup_codes(user_id, self.backup_codes.hash_codes(codes), self._clock())
        logger.info("Backup codes regenerated for user_id=%d", user_id)
        return codes

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_code(self, user_id: int, code: str) -> str:
        """Verify a TOTP or backup code for an enabled user.

        Returns TOTP or BACKUP. Raises InvalidCodeError.
        """
        return self._verify(self._enabled_record(user_id), code)

    def _enabled_record(self, user_id: int) -> TwoFactorRecord:
        record = self._store.get_two_factor(user_id)
        if record is None or not record.enabled:
            raise InvalidCodeError()
        return record

    def _verify(self, record: TwoFactorRecord, code: str) -> str:
        candidate = (code or "").replace(" ", "")
        now = self._clock()
        if candidate.isdigit() and len(candidate) == self.totp.digits:
            if self.totp.verify(self.cipher.decrypt(record.totp_secret), candidate, at=now):
                self._store.mark_totp_verified(record.user_id, now)
                return TOTP
            raise InvalidCodeError()

        entry = self.backup_codes.match(candidate, record.backup_codes)
        if entry is None:
            raise InvalidCodeError()
        remaining = self._store.consume_backup_code(record.user_id, entry.id, now)
        if remaining is None:
            # Lost the race against a concurrent use of the same code.
            raise InvalidCodeError()
        logger.info("Backup code used for user_id=%d (%d remaining)", record.user_id, remaining)
        return BACKUP

    # ------------------------------------------------------------------
    # Trusted devices
    # ------------------------------------------------------------------

    def trust_device(self, user_id: int, descriptor: DeviceDescriptor) -> None:
        record = self._store.get_two_factor(user_id)
        if record is None or not record.enabled:
            logger.debug("Not trusting device for user_id=%d: 2FA not enabled", user_id)
            return
        now = self._clock()
        devices = self.devices.trust(record.trusted_devices, descriptor, now)
        self._store.replace_trusted_devices(user_id, devices, now)
        logger.info("Device trusted for user_id=%d (%d active)", user_id, len(devices))

    def is_device_trusted(self, user_id: int, fingerprint: str | None) -> bool:
        """Best-effort lookup. A storage failure means "not trusted", which
        only costs the user a 2FA prompt."""
        if not fingerprint:
            return False
        try:
            record = self._store.get_two_factor(user_id)
        except SQLAlchemyError:
            logger.exception("Trusted device lookup failed for user_id=%d", user_id)
            return False
        if record is None or not record.enabled:
            return False
        return self.devices.is_trusted(record.trusted_devices, fingerprint, self._clock())

    def list_trusted_devices(self, user_id: int) -> list[TrustedDevice]:
        record = self._store.get_two_factor(user_id)
        if record is None:
            return []
        return self.devices.active(record.trusted_devices, self._clock())

    def revoke_all_trusted_devices(self, user_id: int) -> int:
        record = self._store.get_two_factor(user_id)
        if record is None or not record.trusted_devices:
            return 0
        self._store.replace_trusted_devices(user_id, [], self._clock())
        count = len(record.trusted_devices)
        logger.info("Cleared %d trusted device(s) for user_id=%d", count, user_id)
        return count
