"""
auth/tokens.py -- JWT encoding/decoding and token digests.

Security design decisions:
  JWT: python-jose with HS256, signed with Settings.secret_key. Two token
       types share the format and are told apart by the "type" claim:
         access  -- sub, type, iat, exp, jti
         refresh -- sub, type, sid, iat, exp, jti
       "sid" ties a refresh token to the session it was issued with, so
       revoking that session also stops the refresh token. "jti" makes every
       token unique even when two are minted in the same second, which keeps
       the stored digests unique.

  Expiry: jose's own exp check uses the wall clock. It is switched off and
       exp is compared against the injected clock instead, so expiry and
       session bookkeeping agree on what "now" is.

  Digests: sessions store SHA-256(access_token) as hex. A leaked sessions
       table yields no usable tokens. Comparison against a stored digest
       goes through hmac.compare_digest.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import TokenError
from core.clock import Clock, utc_now

logger = logging.getLogger("sessionguard.sessions")

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"
# Short-lived proof that the password step passed. Exchanged for a session
# once the second factor verifies.
CHALLENGE = "2fa_challenge"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    token_type: str
    expires_at: datetime
    issued_at: datetime
    jti: str
    session_id: int | None = None


def token_digest(token: str) -> str:
    """Return the SHA-256 hex digest stored in place of a raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def digests_match(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("ascii"), b.encode("ascii"))


class TokenCodec:
    """Mints and verifies signed access/refresh tokens."""

    def __init__(self, secret_key: str, clock: Clock = utc_now) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self._clock = clock

    def encode(self, user_id: int, token_type: str, ttl: timedelta, session_id: int | None = None) -> tuple[str, datetime]:
        """Return (token, expires_at)."""
        now = self._clock()
        expires_at = now + ttl
        payload: dict = {
            "sub": str(user_id),
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
        }
        if session_id is not None:
            payload["sid"] = session_id
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM), expires_at

    def decode(self, token: str, expected_type: str) -> TokenClaims:
        """Verify signature, expiry and type. Raises TokenError."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug("JWT decode failed: %s", exc)
            raise TokenError("invalid") from exc

        try:
            user_id = int(payload["sub"])
            token_type = str(payload["type"])
            exp = int(payload["exp"])
            iat = int(payload.get("iat", 0))
            jti = str(payload.get("jti", ""))
            sid = payload.get("sid")
            session_id = int(sid) if sid is not None else None
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenError("invalid") from exc

        if token_type != expected_type:
            raise TokenError("wrong_type")

        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        if expires_at <= self._clock():
            raise TokenError("expired")

        return TokenClaims(
            user_id=user_id,
            token_type=token_type,
            expires_at=expires_at,
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            jti=jti,
            session_id=session_id,
        )
