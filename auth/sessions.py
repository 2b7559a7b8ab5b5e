"""
auth/sessions.py -- Session issuance, verification, refresh and revocation.

One session row per access token. The row stores the SHA-256 digest of the
token, never the token itself, plus the client context it was issued to.

verify() checks, in order:
  1. signature, type "access" and exp (TokenCodec, injected clock)
  2. a stored session exists for the token digest
  3. the session is not revoked and its stored expiry has not passed
  4. the owning user still exists and is active
and then stamps last_active_at.

Revocation is permanent. Nothing in this module clears is_revoked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auth.errors import TokenError
from auth.models import MAX_FINGERPRINT_LENGTH, MAX_IP_LENGTH, MAX_USER_AGENT_LENGTH
from auth.models import RequestContext, Session, User
from auth.results import Refreshed
from auth.store import UserStore
from auth.tokens import ACCESS, REFRESH, TokenCodec, token_digest
from core.clock import Clock, utc_now
from core.config import Settings

logger = logging.getLogger("sessionguard.sessions")


@dataclass(frozen=True)
class IssuedSession:
    session_id: int
    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    user: User | None = None
    session: Session | None = None
    error: str | None = None  # a TokenError reason when valid is False


def _truncate(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else None


class SessionManager:
    def __init__(self, store: UserStore, settings: Settings, clock: Clock = utc_now) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock
        self.codec = TokenCodec(settings.secret_key, clock=clock)

    def issue(
        self,
        user_id: int,
        context: RequestContext | None = None,
        is_2fa_verified: bool = False,
        remember_device: bool = False,
    ) -> IssuedSession:
        """Mint an access/refresh pair and persist the session row."""
        context = context or RequestContext()
        session_id, access_token, expires_at = self._open_session(
            user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            device_fingerprint=context.device_fingerprint,
            is_2fa_verified=is_2fa_verified,
            remember_device=remember_device,
        )
        refresh_token, _ = self.codec.encode(
            user_id, REFRESH, self._settings.refresh_token_ttl, session_id=session_id
        )
        logger.info("Session %d issued (user_id=%d, 2fa=%s)", session_id, user_id, is_2fa_verified)
        return IssuedSession(
            session_id=session_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    def verify(self, access_token: str) -> SessionCheck:
        try:
            claims = self.codec.decode(access_token, ACCESS)
        except TokenError as exc:
            return SessionCheck(valid=False, error=exc.reason)

        session = self._store.get_session_by_digest(token_digest(access_token))
        if session is None or session.user_id != claims.user_id:
            return SessionCheck(valid=False, error="not_found")
        if session.is_revoked:
            return SessionCheck(valid=False, session=session, error="revoked")
        now = self._clock()
        if session.expires_at <= now:
            return SessionCheck(valid=False, session=session, error="expired")

        user = self._store.get_by_id(session.user_id)
        if user is None or not user.is_active:
            return SessionCheck(valid=False, session=session, error="user_inactive")

        self._store.touch_session(session.id, now)
        return SessionCheck(valid=True, user=user, session=session)

    def refresh(self, refresh_token: str, context: RequestContext | None = None) -> Refreshed:
        """Exchange a refresh token for a new access token.

        The new session inherits the 2FA flag and device fingerprint of the
        session the refresh token was issued with. Raises TokenError.
        """
        claims = self.codec.decode(refresh_token, REFRESH)
        if claims.session_id is None:
            raise TokenError("invalid")

        origin = self._store.get_session(claims.session_id)
        if origin is None:
            raise TokenError("not_found")
        if origin.user_id != claims.user_id:
            raise TokenError("invalid")
        if origin.is_revoked:
            raise TokenError("revoked")

        user = self._store.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            raise TokenError("user_inactive")

        context = context or RequestContext()
        session_id, access_token, expires_at = self._open_session(
            user.id,
            ip_address=context.ip_address or origin.ip_address,
            user_agent=context.user_agent or origin.user_agent,
            device_fingerprint=origin.device_fingerprint,
            is_2fa_verified=origin.is_2fa_verified,
            remember_device=origin.remember_device,
        )
        logger.info("Session %d refreshed from session %d (user_id=%d)", session_id, origin.id, user.id)
        return Refreshed(access_token=access_token, expires_at=expires_at, session_id=session_id)

    def revoke(self, access_token: str, reason: str, revoked_by: str | None = None) -> bool:
        revoked = self._store.revoke_session_by_digest(token_digest(access_token), reason, revoked_by, self._clock())
        if revoked:
            logger.info("Session revoked (reason=%s)", reason)
        return revoked

    def revoke_all(self, user_id: int, reason: str, revoked_by: str | None = None) -> int:
        count = self._store.revoke_user_sessions(user_id, reason, revoked_by, self._clock())
        logger.info("Revoked %d session(s) for user_id=%d (reason=%s)", count, user_id, reason)
        return count

    def _open_session(
        self,
        user_id: int,
        ip_address: str | None,
        user_agent: str | None,
        device_fingerprint: str | None,
        is_2fa_verified: bool,
        remember_device: bool,
    ) -> tuple[int, str, datetime]:
        now = self._clock()
        access_token, expires_at = self.codec.encode(user_id, ACCESS, self._settings.access_token_ttl)
        session = Session(
            user_id=user_id,
            token_hash=token_digest(access_token),
            expires_at=expires_at,
            ip_address=_truncate(ip_address, MAX_IP_LENGTH),
            user_agent=_truncate(user_agent, MAX_USER_AGENT_LENGTH),
            device_fingerprint=_truncate(device_fingerprint, MAX_FINGERPRINT_LENGTH),
            is_2fa_verified=is_2fa_verified,
            remember_device=remember_device,
        )
        session_id = self._store.create_session(session, now)
        return session_id, access_token, expires_at
