"""Unit tests for auth/totp.py -- RFC 6238 codes, drift window, provisioning.

The reference vectors are the SHA-1 rows of RFC 6238 Appendix B, truncated to
the low six digits.
"""

import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from auth.totp import TOTPEngine

# base32("12345678901234567890"), the RFC 6238 SHA-1 seed
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def _at(unix: int) -> datetime:
    return datetime.fromtimestamp(unix, tz=timezone.utc)


@pytest.fixture
def engine() -> TOTPEngine:
    return TOTPEngine("SessionGuard", window=1)


class TestCodes:
    @pytest.mark.parametrize(
        "unix,code",
        [(59, "287082"), (1111111109, "081804"), (1111111111, "050471"), (1234567890, "005924"), (2000000000, "279037")],
    )
    def test_rfc6238_vectors(self, engine, unix, code):
        assert engine.code_at(RFC_SECRET, _at(unix)) == code

    def test_counter_is_floor_of_unix_over_period(self, engine):
        assert engine.counter_at(_at(59)) == 1
        assert engine.counter_at(_at(60)) == 2

    def test_secret_is_160_bit_unpadded_base32(self):
        secret = TOTPEngine.generate_secret()
        assert "=" not in secret
        assert len(TOTPEngine.decode_secret(secret)) == 20
        assert TOTPEngine.decode_secret(secret) == base64.b32decode(secret)

    def test_secrets_are_random(self):
        assert TOTPEngine.generate_secret() != TOTPEngine.generate_secret()


class TestVerify:
    def test_accepts_current_step(self, engine):
        t = _at(1_700_000_000)
        assert engine.verify(RFC_SECRET, engine.code_at(RFC_SECRET, t), at=t)

    def test_accepts_one_step_of_drift_either_way(self, engine):
        t = _at(1_700_000_000)
        code = engine.code_at(RFC_SECRET, t)
        assert engine.verify(RFC_SECRET, code, at=t + timedelta(seconds=30))
        assert engine.verify(RFC_SECRET, code, at=t - timedelta(seconds=30))

    def test_rejects_outside_window(self, engine):
        t = _at(1_700_000_000)
        code = engine.code_at(RFC_SECRET, t)
        assert not engine.verify(RFC_SECRET, code, at=t + timedelta(seconds=90))

    def test_zero_window_is_exact(self):
        strict = TOTPEngine("SessionGuard", window=0)
        t = _at(1_700_000_000)
        code = strict.code_at(RFC_SECRET, t)
        assert strict.verify(RFC_SECRET, code, at=t)
        assert not strict.verify(RFC_SECRET, code, at=t + timedelta(seconds=30))

    @pytest.mark.parametrize("bad", ["", "12345", "1234567", "abcdef", "12 34 5x"])
    def test_rejects_malformed_input(self, engine, bad):
        assert not engine.verify(RFC_SECRET, bad, at=_at(59))

    def test_spaces_are_ignored(self, engine):
        assert engine.verify(RFC_SECRET, "287 082", at=_at(59))

    def test_uses_injected_clock_by_default(self):
        engine = TOTPEngine("SessionGuard", clock=lambda: _at(59))
        assert engine.verify(RFC_SECRET, "287082")


class TestProvisioning:
    def test_uri_carries_all_parameters(self, engine):
        uri = engine.provisioning_uri(RFC_SECRET, "alice@example.com")
        parsed = urlparse(uri)
        assert parsed.scheme == "otpauth"
        assert parsed.netloc == "totp"
        assert parsed.path == "/SessionGuard:alice@example.com"
        query = parse_qs(parsed.query)
        assert query == {
            "secret": [RFC_SECRET],
            "issuer": ["SessionGuard"],
            "algorithm": ["SHA1"],
            "digits": ["6"],
            "period": ["30"],
        }

    def test_issuer_with_spaces_is_escaped(self):
        uri = TOTPEngine("Acme Corp").provisioning_uri(RFC_SECRET, "bob@example.com")
        assert uri.startswith("otpauth://totp/Acme%20Corp:bob@example.com?")

    def test_qr_is_svg_data_url(self, engine):
        data_url = engine.qr_data_url(engine.provisioning_uri(RFC_SECRET, "alice@example.com"))
        prefix = "data:image/svg+xml;base64,"
        assert data_url.startswith(prefix)
        assert b"<svg" in base64.b64decode(data_url[len(prefix) :])
