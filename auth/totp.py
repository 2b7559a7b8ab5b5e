"""
auth/totp.py -- RFC 6238 time-based one-time passwords.

Code generation and comparison are delegated to pyotp:
  counter  = floor(unix_time / period)
  hmac     = HMAC-SHA1(base32_decode(secret), counter as 8-byte big-endian)
  code     = RFC 4226 dynamic truncation mod 10**digits, zero padded

Verification accepts the current counter and +/- window neighbours to absorb
clock drift between server and authenticator app. The window is small and
bounded (default 1 period each side).

The provisioning URI is built here rather than with pyotp's helper because
pyotp omits algorithm/digits/period when they equal the defaults, and some
authenticator apps behave better when all three are explicit.
"""

from __future__ import annotations

import base64
import hashlib
import io
from datetime import datetime
from urllib.parse import quote, urlencode

import pyotp
import qrcode
import qrcode.image.svg

from core.clock import Clock, utc_now

TOTP_ALGORITHM = "SHA1"
TOTP_DIGITS = 6
TOTP_PERIOD = 30
SECRET_BYTES = 20


class TOTPEngine:
    """Secret generation, code generation/verification and provisioning."""

    def __init__(
        self,
        issuer: str,
        window: int = 1,
        digits: int = TOTP_DIGITS,
        period: int = TOTP_PERIOD,
        clock: Clock = utc_now,
    ) -> None:
        if window < 0:
            raise ValueError("window must be >= 0")
        self.issuer = issuer
        self.window = window
        self.digits = digits
        self.period = period
        self._clock = clock

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    @staticmethod
    def generate_secret() -> str:
        """Return a fresh base32 secret (20 random bytes, no padding)."""
        # 32 base32 characters carry exactly 160 bits.
        return pyotp.random_base32(length=SECRET_BYTES * 8 // 5)

    @staticmethod
    def decode_secret(secret: str) -> bytes:
        padded = secret.upper() + "=" * (-len(secret) % 8)
        return base64.b32decode(padded)

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=self.digits, digest=hashlib.sha1, interval=self.period)

    def counter_at(self, instant: datetime) -> int:
        return int(instant.timestamp()) // self.period

    def code_at(self, secret: str, instant: datetime | None = None) -> str:
        """Return the code valid for the time step containing instant."""
        return self._totp(secret).at(instant or self._clock())

    def verify(self, secret: str, code: str, at: datetime | None = None) -> bool:
        """Return True if code matches any step within +/- window of at.

        Input is normalized (spaces removed) and must be exactly `digits`
        decimal characters; anything else is rejected before comparing.
        """
        candidate = (code or "").replace(" ", "").strip()
        if len(candidate) != self.digits or not candidate.isdigit():
            return False
        return self._totp(secret).verify(candidate, for_time=at or self._clock(), valid_window=self.window)

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def provisioning_uri(self, secret: str, account: str) -> str:
        """Build an otpauth://totp/ URI for authenticator apps."""
        label = f"{quote(self.issuer, safe='')}:{quote(account, safe='@')}"
        query = urlencode(
            {
                "secret": secret,
                "issuer": self.issuer,
                "algorithm": TOTP_ALGORITHM,
                "digits": self.digits,
                "period": self.period,
            },
            quote_via=quote,
        )
        return f"otpauth://totp/{label}?{query}"

    @staticmethod
    def qr_data_url(uri: str) -> str:
        """Render uri as an SVG QR code and return it as a data: URL."""
        image = qrcode.make(uri, image_factory=qrcode.image.svg.SvgPathImage)
        buffer = io.BytesIO()
        image.save(buffer)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"
