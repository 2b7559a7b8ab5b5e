"""Unit tests for auth/lockout.py and UserStore.record_failed_login().

The policy object only interprets state; the counting is the store's atomic
UPDATE, so both are exercised together here.
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.lockout import LockoutPolicy
from auth.models import User

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def policy() -> LockoutPolicy:
    return LockoutPolicy(max_attempts=5, duration=timedelta(minutes=15))


@pytest.fixture
def user_id(store) -> int:
    return store.create_user(User(username="carol", email="carol@example.com", hashed_password="x"), NOW)


def test_remaining_never_negative(policy):
    assert policy.remaining(0) == 5
    assert policy.remaining(4) == 1
    assert policy.remaining(9) == 0


def test_locked_until_only_while_in_future(policy):
    user = User(username="u", email="u@x.io", hashed_password="x", locked_until=NOW + timedelta(minutes=1))
    assert policy.locked_until(user, NOW) == NOW + timedelta(minutes=1)
    assert policy.locked_until(user, NOW + timedelta(minutes=1)) is None


def test_invalid_threshold_is_refused():
    with pytest.raises(ValueError):
        LockoutPolicy(max_attempts=0)


def test_counter_locks_exactly_at_threshold(store, policy, user_id):
    until = policy.lock_expiry(NOW)
    for attempt in range(1, 5):
        failed, locked = store.record_failed_login(user_id, 5, until, NOW)
        assert failed == attempt
        assert locked is None
        assert policy.outcome(user_id, failed, locked, NOW).remaining_attempts == 5 - attempt

    failed, locked = store.record_failed_login(user_id, 5, until, NOW)
    outcome = policy.outcome(user_id, failed, locked, NOW)
    assert failed == 5
    assert outcome.locked_until == NOW + timedelta(minutes=15)
    assert outcome.remaining_attempts == 0


def test_successful_login_resets(store, user_id):
    for _ in range(3):
        store.record_failed_login(user_id, 5, NOW + timedelta(minutes=15), NOW)
    assert store.record_successful_login(user_id, NOW) is True
    user = store.get_by_id(user_id)
    assert user.failed_login_attempts == 0
    assert user.locked_until is None
    assert user.last_login == NOW


def test_successful_login_cannot_clear_an_active_lock(store, user_id):
    until = NOW + timedelta(minutes=15)
    for _ in range(5):
        store.record_failed_login(user_id, 5, until, NOW)

    assert store.record_successful_login(user_id, NOW + timedelta(minutes=1)) is False
    user = store.get_by_id(user_id)
    assert user.failed_login_attempts == 5
    assert user.locked_until == until
    assert user.last_login is None

    assert store.record_successful_login(user_id, until) is True
    user = store.get_by_id(user_id)
    assert user.failed_login_attempts == 0
    assert user.locked_until is None
    assert user.last_login == until


def test_unknown_user_records_nothing(store):
    assert store.record_failed_login(999, 5, NOW, NOW) is None
    assert store.record_successful_login(999, NOW) is False


def test_expired_lock_reads_as_unlocked(policy):
    outcome = policy.outcome(1, 5, NOW - timedelta(seconds=1), NOW)
    assert outcome.locked_until is None
