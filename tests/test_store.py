"""Unit tests for auth/store.py -- UserStore persistence and atomic updates.

Covers:
- user create/lookup (username exact, email case-insensitive, duplicates)
- update_user field whitelist and conversions
- 2FA record lifecycle: pending -> enabled -> disabled, no re-seed while enabled
- backup code consumption is single-use
- trusted device list cap is enforced on write
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import BackupCode, TrustedDevice, User

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def uid(store) -> int:
    return store.create_user(
        User(username="dave", email="Dave@Example.com", hashed_password="h", password_history=["h0"]),
        NOW,
    )


def _codes(n: int = 3) -> list[BackupCode]:
    return [BackupCode(code_hash=f"hash-{i}") for i in range(n)]


class TestUsers:
    def test_create_and_lookup(self, store, uid):
        user = store.get_by_id(uid)
        assert user.username == "dave"
        assert user.email == "dave@example.com"
        assert user.password_history == ["h0"]
        assert user.role == "user"
        assert user.is_active is True
        assert user.created_at == NOW
        assert user.password_changed_at == NOW

    def test_login_lookup_by_username_or_email(self, store, uid):
        assert store.get_by_login("dave").id == uid
        assert store.get_by_login("DAVE@example.com").id == uid
        assert store.get_by_login("Dave") is None
        assert store.get_by_login("nobody") is None

    def test_duplicate_username_raises(self, store, uid):
        with pytest.raises(IntegrityError):
            store.create_user(User(username="dave", email="other@example.com", hashed_password="h"), NOW)

    def test_duplicate_email_raises(self, store, uid):
        with pytest.raises(IntegrityError):
            store.create_user(User(username="dave2", email="DAVE@example.com", hashed_password="h"), NOW)

    def test_update_user_converts_fields(self, store, uid):
        later = NOW + timedelta(hours=1)
        assert store.update_user(
            uid,
            later,
            is_active=False,
            password_history=["a", "b"],
            locked_until=later,
            email="NEW@Example.com",
        )
        user = store.get_by_id(uid)
        assert user.is_active is False
        assert user.password_history == ["a", "b"]
        assert user.locked_until == later
        assert user.email == "new@example.com"
        assert user.updated_at == later

    def test_update_user_rejects_unknown_fields(self, store, uid):
        with pytest.raises(ValueError):
            store.update_user(uid, NOW, username="mallory")

    def test_update_missing_user(self, store):
        assert store.update_user(404, NOW, display_name="x") is False

    def test_admin_count(self, store, uid):
        assert store.count_active_admins() == 0
        store.update_user(uid, NOW, role="admin")
        assert store.count_active_admins() == 1
        assert store.has_users()


class TestTwoFactorRecords:
    def test_pending_then_enabled(self, store, uid):
        assert store.get_two_factor(uid) is None
        assert store.save_pending_two_factor(uid, "cipher", _codes(), NOW)
        record = store.get_two_factor(uid)
        assert record.enabled is False
        assert record.backup_codes_remaining == 3
        assert [c.code_hash for c in record.backup_codes] == ["hash-0", "hash-1", "hash-2"]

        assert store.enable_two_factor(uid, NOW) is True
        assert store.enable_two_factor(uid, NOW) is False
        assert store.is_two_factor_enabled(uid)

    def test_no_reseed_while_enabled(self, store, uid):
        store.save_pending_two_factor(uid, "first", _codes(), NOW)
        store.enable_two_factor(uid, NOW)
        assert store.save_pending_two_factor(uid, "second", _codes(), NOW) is False
        assert store.get_two_factor(uid).totp_secret == "first"

    def test_disable_clears_devices(self, store, uid):
        store.save_pending_two_factor(uid, "s", _codes(), NOW)
        store.enable_two_factor(uid, NOW)
        device = TrustedDevice(fingerprint="fp", trusted_until=NOW + timedelta(days=1), created_at=NOW)
        store.replace_trusted_devices(uid, [device], NOW)
        assert store.disable_two_factor(uid, NOW) is True
        record = store.get_two_factor(uid)
        assert record.enabled is False
        assert record.disabled_at == NOW
        assert record.trusted_devices == []
        assert store.disable_two_factor(uid, NOW) is False

    def test_backup_code_consumed_once(self, store, uid):
        store.save_pending_two_factor(uid, "s", _codes(), NOW)
        code_id = store.get_two_factor(uid).backup_codes[1].id
        assert store.consume_backup_code(uid, code_id, NOW) == 2
        assert store.consume_backup_code(uid, code_id, NOW) is None
        record = store.get_two_factor(uid)
        assert record.backup_codes_remaining == 2
        assert record.backup_codes[1].used is True
        assert record.last_backup_code_used_at == NOW

    def test_backup_code_of_another_user_is_not_consumed(self, store, uid):
        other = store.create_user(User(username="erin", email="erin@example.com", hashed_password="h"), NOW)
        store.save_pending_two_factor(uid, "s", _codes(), NOW)
        code_id = store.get_two_factor(uid).backup_codes[0].id
        assert store.consume_backup_code(other, code_id, NOW) is None

    def test_replace_backup_codes(self, store, uid):
        store.save_pending_two_factor(uid, "s", _codes(), NOW)
        store.replace_backup_codes(uid, _codes(5), NOW)
        record = store.get_two_factor(uid)
        assert len(record.backup_codes) == 5
        assert record.backup_codes_remaining == 5

    def test_trusted_device_cap(self, store, uid):
        store.save_pending_two_factor(uid, "s", _codes(), NOW)
        devices = [
            TrustedDevice(fingerprint=f"fp{i}", trusted_until=NOW + timedelta(days=1), created_at=NOW)
            for i in range(11)
        ]
        with pytest.raises(ValueError):
            store.replace_trusted_devices(uid, devices, NOW)
        assert store.replace_trusted_devices(uid, devices[:10], NOW)
        assert [d.fingerprint for d in store.get_two_factor(uid).trusted_devices] == [f"fp{i}" for i in range(10)]

    def test_devices_need_a_record(self, store, uid):
        assert store.replace_trusted_devices(uid, [], NOW) is False
