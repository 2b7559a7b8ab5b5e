"""Unit tests for auth/two_factor.py -- enrollment, verification, devices."""

import pytest

from auth.errors import InvalidCodeError, TwoFactorStateError
from auth.models import DeviceDescriptor
from auth.two_factor import BACKUP, TOTP, TwoFactorService


@pytest.fixture
def service(store, settings, clock) -> TwoFactorService:
    return TwoFactorService(store, settings, clock=clock)


@pytest.fixture
def enrolled(service, alice):
    """alice with 2FA enabled. Returns the setup material."""
    setup = service.generate_setup(alice.id, alice.email)
    service.confirm(alice.id, service.totp.code_at(setup.secret))
    return setup


def test_setup_stores_only_ciphertext(service, store, alice):
    setup = service.generate_setup(alice.id, alice.email)
    record = store.get_two_factor(alice.id)
    assert record.enabled is False
    assert record.totp_secret != setup.secret
    assert service.cipher.decrypt(record.totp_secret) == setup.secret
    assert len(setup.backup_codes) == 8
    assert "alice%40example.com" not in setup.provisioning_uri
    assert "SessionGuard:alice@example.com" in setup.provisioning_uri
    assert setup.qr_image.startswith("data:image/svg+xml;base64,")


def test_pending_setup_does_not_gate_login(service, alice):
    service.generate_setup(alice.id, alice.email)
    assert service.is_enabled(alice.id) is False


def test_confirm_requires_valid_totp(service, alice):
    setup = service.generate_setup(alice.id, alice.email)
    wrong = f"{(int(service.totp.code_at(setup.secret)) + 500000) % 1000000:06d}"
    with pytest.raises(InvalidCodeError):
        service.confirm(alice.id, wrong)
    with pytest.raises(InvalidCodeError):
        service.confirm(alice.id, setup.backup_codes[0])
    assert service.is_enabled(alice.id) is False


def test_confirm_enables(service, alice, enrolled, clock):
    status = service.status(alice.id)
    assert status.enabled
    assert status.enabled_at == clock()
    assert status.backup_codes_remaining == 8


def test_setup_refused_while_enabled(service, alice, enrolled):
    with pytest.raises(TwoFactorStateError):
        service.generate_setup(alice.id, alice.email)


def test_verify_totp_and_backup(service, alice, enrolled):
    assert service.verify_code(alice.id, service.totp.code_at(enrolled.secret)) == TOTP
    assert service.verify_code(alice.id, enrolled.backup_codes[0]) == BACKUP
    with pytest.raises(InvalidCodeError):
        service.verify_code(alice.id, enrolled.backup_codes[0])
    assert service.status(alice.id).backup_codes_remaining == 7


def test_stale_totp_rejected(service, alice, enrolled, clock):
    code = service.totp.code_at(enrolled.secret)
    clock.advance(seconds=120)
    with pytest.raises(InvalidCodeError):
        service.verify_code(alice.id, code)


def test_verify_without_2fa_is_invalid(service, alice):
    with pytest.raises(InvalidCodeError):
        service.verify_code(alice.id, "123456")


def test_regenerate_invalidates_old_codes(service, alice, enrolled):
    fresh = service.regenerate_backup_codes(alice.id, service.totp.code_at(enrolled.secret))
    assert set(fresh).isdisjoint(enrolled.backup_codes)
    with pytest.raises(InvalidCodeError):
        service.verify_code(alice.id, enrolled.backup_codes[1])
    assert service.verify_code(alice.id, fresh[0]) == BACKUP


def test_disable_with_backup_code(service, alice, enrolled):
    service.trust_device(alice.id, DeviceDescriptor("laptop"))
    service.disable(alice.id, enrolled.backup_codes[2])
    assert service.is_enabled(alice.id) is False
    assert service.list_trusted_devices(alice.id) == []


def test_trusted_devices(service, alice, enrolled, clock, settings):
    service.trust_device(alice.id, DeviceDescriptor("laptop", "10.0.0.1", "Firefox"))
    assert service.is_device_trusted(alice.id, "laptop")
    assert not service.is_device_trusted(alice.id, "phone")
    assert service.status(alice.id).trusted_devices_count == 1

    clock.advance(seconds=settings.trusted_device_seconds)
    assert not service.is_device_trusted(alice.id, "laptop")
    assert service.list_trusted_devices(alice.id) == []


def test_trust_is_noop_without_2fa(service, store, alice):
    service.trust_device(alice.id, DeviceDescriptor("laptop"))
    assert store.get_two_factor(alice.id) is None


def test_revoke_all_trusted_devices(service, alice, enrolled):
    service.trust_device(alice.id, DeviceDescriptor("a"))
    service.trust_device(alice.id, DeviceDescriptor("b"))
    assert service.revoke_all_trusted_devices(alice.id) == 2
    assert not service.is_device_trusted(alice.id, "a")
    assert service.revoke_all_trusted_devices(alice.id) == 0
