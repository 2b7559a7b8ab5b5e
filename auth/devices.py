"""
auth/devices.py -- Trusted device registry.

A trusted device lets a user skip the second factor (never the password) for
a bounded time. The registry is pure list logic; TwoFactorService loads and
saves the list through the store, which re-checks the size cap on write.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta

from auth.models import MAX_FINGERPRINT_LENGTH, MAX_IP_LENGTH, MAX_TRUSTED_DEVICES, MAX_USER_AGENT_LENGTH
from auth.models import DeviceDescriptor, TrustedDevice


class TrustedDeviceRegistry:
    def __init__(self, duration: timedelta, max_devices: int = MAX_TRUSTED_DEVICES) -> None:
        self.duration = duration
        self.max_devices = max_devices

    @staticmethod
    def active(devices: list[TrustedDevice], now: datetime) -> list[TrustedDevice]:
        return [d for d in devices if d.trusted_until > now]

    def trust(self, devices: list[TrustedDevice], descriptor: DeviceDescriptor, now: datetime) -> list[TrustedDevice]:
        """Return the new device list: expired entries dropped, descriptor
        appended, oldest entries evicted down to max_devices."""
        if not descriptor.fingerprint:
            raise ValueError("device fingerprint must not be empty")
        kept = self.active(devices, now)
        kept.append(
            TrustedDevice(
                fingerprint=descriptor.fingerprint[:MAX_FINGERPRINT_LENGTH],
                ip_address=descriptor.ip_address[:MAX_IP_LENGTH] if descriptor.ip_address else None,
                user_agent=descriptor.user_agent[:MAX_USER_AGENT_LENGTH] if descriptor.user_agent else None,
                trusted_until=now + self.duration,
                created_at=now,
            )
        )
        return kept[-self.max_devices :]

    @staticmethod
    def is_trusted(devices: list[TrustedDevice], fingerprint: str | None, now: datetime) -> bool:
        if not fingerprint:
            return False
        wanted = fingerprint[:MAX_FINGERPRINT_LENGTH].encode("utf-8")
        return any(
            hmac.compare_digest(d.fingerprint.encode("utf-8"), wanted) and d.trusted_until > now for d in devices
        )
