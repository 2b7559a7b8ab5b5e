"""Unit tests for core/config.py -- key policy and cross-field validation."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from core.config import Settings

KEY = "k" * 32


def test_production_requires_keys():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="", encryption_key=KEY)
    with pytest.raises(ValidationError, match="ENCRYPTION_KEY is required"):
        Settings(debug=False, secret_key=KEY, encryption_key="")


def test_debug_generates_distinct_keys():
    settings = Settings(debug=True, secret_key="", encryption_key="")
    assert len(settings.secret_key) >= 32
    assert len(settings.encryption_key) >= 32
    assert settings.secret_key != settings.encryption_key


def test_short_key_rejected_even_in_debug():
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=True, secret_key="short", encryption_key=KEY)


def test_refresh_must_outlive_access():
    with pytest.raises(ValidationError):
        Settings(secret_key=KEY, encryption_key=KEY, access_token_ttl_seconds=600, refresh_token_ttl_seconds=60)


def test_defaults_and_durations():
    settings = Settings(debug=False, secret_key=KEY, encryption_key=KEY)
    assert settings.lockout_max_attempts == 5
    assert settings.lockout_duration == timedelta(minutes=15)
    assert settings.access_token_ttl == timedelta(hours=24)
    assert settings.refresh_token_ttl == timedelta(days=7)
    assert settings.trusted_device_duration == timedelta(days=30)
    assert settings.password_min_length == 12


def test_env_vars_are_read(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "e" * 40)
    monkeypatch.setenv("ENCRYPTION_KEY", "f" * 40)
    monkeypatch.setenv("LOCKOUT_MAX_ATTEMPTS", "3")
    settings = Settings(debug=False)
    assert settings.secret_key == "e" * 40
    assert settings.lockout_max_attempts == 3
