"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; the _row_to_* functions are the mappers.
Services never touch SQL directly.

Tables:
  users                     -- identity, password hash/history, lockout state
  user_sessions             -- one row per issued access token (digest only)
  user_2fa                  -- one row per user, TOTP seed ciphertext + flags
  user_2fa_backup_codes     -- ordered backup code digests with used markers
  user_2fa_trusted_devices  -- ordered trusted devices (capped per user)

Security:
  All queries use bound parameters. No f-strings in SQL.

  Atomic state changes. Each of these is a single conditional UPDATE, so
  concurrent requests cannot both "win":
    record_failed_login()  -- increment + threshold check in one statement
    consume_backup_code()  -- UPDATE ... WHERE used = 0
    enable_two_factor()    -- UPDATE ... WHERE is_enabled = 0
    revoke_*()             -- UPDATE ... WHERE is_revoked = 0
  Where a follow-up read or a second write belongs to the same unit of work,
  both run inside one engine.begin() transaction.

Timestamps are stored as ISO-8601 UTC strings with microsecond precision
(core.clock.to_iso) and mapped back to aware datetimes.
"""

from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import MAX_TRUSTED_DEVICES, BackupCode, Session, TrustedDevice, TwoFactorRecord, User
from core.clock import from_iso, to_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),  # stored lowercase
    Column("display_name", String(255)),
    Column("hashed_password", String(255), nullable=False),
    Column("password_history", Text, nullable=False, server_default="[]"),  # JSON list, newest first
    Column("role", String(30), nullable=False, server_default="user"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),
    Column("last_failed_login", String(32)),
    Column("last_login", String(32)),
    Column("password_changed_at", String(32)),
    Column("force_password_change", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("created_by", String(255)),
    Column("updated_by", String(255)),
)

_sessions = Table(
    "user_sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("last_active_at", String(32), nullable=False),
    Column("ip_address", String(45)),
    Column("user_agent", String(500)),
    Column("device_fingerprint", String(255)),
    Column("is_2fa_verified", Integer, nullable=False, server_default="0"),
    Column("remember_device", Integer, nullable=False, server_default="0"),
    Column("is_revoked", Integer, nullable=False, server_default="0"),
    Column("revoked_at", String(32)),
    Column("revoked_reason", String(255)),
    Column("revoked_by", String(255)),
)

_two_factor = Table(
    "user_2fa",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("is_enabled", Integer, nullable=False, server_default="0"),
    Column("totp_secret", Text, nullable=False),  # SecretCipher ciphertext
    Column("totp_algorithm", String(10), nullable=False, server_default="SHA1"),
    Column("totp_digits", Integer, nullable=False, server_default="6"),
    Column("totp_period", Integer, nullable=False, server_default="30"),
    Column("backup_codes_remaining", Integer, nullable=False, server_default="0"),
    Column("backup_codes_generated_at", String(32)),
    Column("enabled_at", String(32)),
    Column("disabled_at", String(32)),
    Column("last_totp_verified_at", String(32)),
    Column("last_backup_code_used_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_backup_codes = Table(
    "user_2fa_backup_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("user_2fa.user_id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("code_hash", String(255), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("used_at", String(32)),
)

_trusted_devices = Table(
    "user_2fa_trusted_devices",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("user_2fa.user_id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("fingerprint", String(255), nullable=False),
    Column("ip_address", String(45)),
    Column("user_agent", String(500)),
    Column("trusted_until", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_USER_UPDATABLE = {
    "display_name",
    "email",
    "role",
    "is_active",
    "email_verified",
    "hashed_password",
    "password_history",
    "password_changed_at",
    "force_password_change",
    "failed_login_attempts",
    "locked_until",
    "updated_by",
}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, sessions and two-factor records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(username="alice", email="alice@example.com", hashed_password=h), now)
        user = store.get_by_login("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User, now: datetime) -> int:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email is
        already taken. Callers pre-check for a friendly message and treat
        IntegrityError as the concurrent-insert case.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email.lower(),
                    display_name=user.display_name,
                    hashed_password=user.hashed_password,
                    password_history=json.dumps(user.password_history),
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    email_verified=1 if user.email_verified else 0,
                    password_changed_at=to_iso(now),
                    force_password_change=1 if user.force_password_change else 0,
                    created_at=to_iso(now),
                    updated_at=to_iso(now),
                    created_by=user.created_by,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Exact, case-sensitive username match."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, identifier: str) -> User | None:
        """Resolve a login identifier: exact username first, then email.

        Username wins so that a user whose username happens to look like
        somebody else's email still resolves to themselves.
        """
        return self.get_by_username(identifier) or self.get_by_email(identifier)

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            return conn.execute(select(_users.c.id).limit(1)).first() is not None

    def count_active_admins(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == "admin") & (_users.c.is_active == 1))
            ).scalar_one()

    def update_user(self, user_id: int, now: datetime, **fields) -> bool:
        """Update mutable profile/credential fields.

        Only keys in _USER_UPDATABLE are accepted; unknown keys raise
        ValueError. Booleans, datetimes and password_history are converted to
        their column representation here.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        values: dict = {}
        for key, value in fields.items():
            if key in ("is_active", "email_verified", "force_password_change"):
                value = 1 if value else 0
            elif key in ("password_changed_at", "locked_until"):
                value = to_iso(value)
            elif key == "password_history":
                value = json.dumps(list(value))
            elif key == "email":
                value = value.lower()
            values[key] = value
        values["updated_at"] = to_iso(now)
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
        return result.rowcount > 0

    def record_failed_login(
        self, user_id: int, max_attempts: int, lock_until: datetime, now: datetime
    ) -> tuple[int, datetime | None] | None:
        """Atomically count a failed attempt and apply the lock threshold.

        The increment and the comparison against max_attempts happen in the
        same UPDATE statement (the SET clause sees the pre-update value), so
        N concurrent failures always produce a counter of N and the lock is
        set by whichever one crosses the threshold.

        Returns (failed_attempts, locked_until) after the update, or None if
        the user does not exist.
        """
        new_count = _users.c.failed_login_attempts + 1
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    failed_login_attempts=new_count,
                    last_failed_login=to_iso(now),
                    locked_until=case((new_count >= max_attempts, to_iso(lock_until)), else_=_users.c.locked_until),
                )
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(
                select(_users.c.failed_login_attempts, _users.c.locked_until).where(_users.c.id == user_id)
            ).one()
        return row.failed_login_attempts, from_iso(row.locked_until)

    def record_successful_login(self, user_id: int, now: datetime) -> bool:
        """Reset the failure counter, clear an expired lock and stamp last_login.

        The WHERE clause refuses the write while a lock is active at now, so a
        login whose password check started before a concurrent failure locked
        the account cannot erase that lock. Returns False in that case (or if
        the user does not exist); the caller must not issue a session.
        ISO strings from to_iso() compare in time order.
        """
        now_iso = to_iso(now)
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    _users.c.id == user_id,
                    or_(_users.c.locked_until.is_(None), _users.c.locked_until <= now_iso),
                )
                .values(failed_login_attempts=0, locked_until=None, last_login=now_iso)
            )
        return result.rowcount > 0

    def clear_failed_logins(self, user_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(failed_login_attempts=0, locked_until=None))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session, now: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    user_id=session.user_id,
                    token_hash=session.token_hash,
                    created_at=to_iso(now),
                    expires_at=to_iso(session.expires_at),
                    last_active_at=to_iso(now),
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    device_fingerprint=session.device_fingerprint,
                    is_2fa_verified=1 if session.is_2fa_verified else 0,
                    remember_device=1 if session.remember_device else 0,
                )
            )
            return result.inserted_primary_key[0]

    def get_session(self, session_id: int) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_session_by_digest(self, token_hash: str) -> Session | None:
        """The only lookup path from a presented token to its session."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def touch_session(self, session_id: int, now: datetime) -> None:
        with self.engine.begin() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(last_active_at=to_iso(now)))

    def revoke_session_by_digest(self, token_hash: str, reason: str, revoked_by: str | None, now: datetime) -> bool:
        """Revoke one session. Already-revoked rows are left untouched."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.token_hash == token_hash) & (_sessions.c.is_revoked == 0))
                .values(is_revoked=1, revoked_at=to_iso(now), revoked_reason=reason, revoked_by=revoked_by)
            )
        return result.rowcount > 0

    def revoke_user_sessions(self, user_id: int, reason: str, revoked_by: str | None, now: datetime) -> int:
        """Revoke every live session of one user and return how many changed."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.is_revoked == 0))
                .values(is_revoked=1, revoked_at=to_iso(now), revoked_reason=reason, revoked_by=revoked_by)
            )
        return result.rowcount

    def list_sessions(self, user_id: int, include_revoked: bool = False) -> list[Session]:
        query = _sessions.select().where(_sessions.c.user_id == user_id)
        if not include_revoked:
            query = query.where(_sessions.c.is_revoked == 0)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_sessions.c.id)).fetchall()
        return [_row_to_session(r) for r in rows]

    # ------------------------------------------------------------------
    # Two-factor records
    # ------------------------------------------------------------------

    def get_two_factor(self, user_id: int) -> TwoFactorRecord | None:
        """Load the 2FA row with its backup codes and trusted devices."""
        with self.engine.connect() as conn:
            row = conn.execute(_two_factor.select().where(_two_factor.c.user_id == user_id)).fetchone()
            if row is None:
                return None
            code_rows = conn.execute(
                _backup_codes.select().where(_backup_codes.c.user_id == user_id).order_by(_backup_codes.c.position)
            ).fetchall()
            device_rows = conn.execute(
                _trusted_devices.select()
                .where(_trusted_devices.c.user_id == user_id)
                .order_by(_trusted_devices.c.position)
            ).fetchall()
        record = _row_to_two_factor(row)
        record.backup_codes = [_row_to_backup_code(r) for r in code_rows]
        record.trusted_devices = [_row_to_trusted_device(r) for r in device_rows]
        return record

    def is_two_factor_enabled(self, user_id: int) -> bool:
        with self.engine.connect() as conn:
            value = conn.execute(
                select(_two_factor.c.is_enabled).where(_two_factor.c.user_id == user_id)
            ).scalar()
        return bool(value)

    def save_pending_two_factor(
        self,
        user_id: int,
        encrypted_secret: str,
        codes: list[BackupCode],
        now: datetime,
        algorithm: str = "SHA1",
        digits: int = 6,
        period: int = 30,
    ) -> bool:
        """Create or reset a record to the pending state with a new secret.

        Refuses (returns False) when the record is already enabled: an
        enabled seed may only change after disable_two_factor(). Backup codes
        are replaced and trusted devices cleared in the same transaction.
        """
        values = dict(
            is_enabled=0,
            totp_secret=encrypted_secret,
            totp_algorithm=algorithm,
            totp_digits=digits,
            totp_period=period,
            backup_codes_remaining=len(codes),
            backup_codes_generated_at=to_iso(now),
            updated_at=to_iso(now),
        )
        with self.engine.begin() as conn:
            result = conn.execute(
                _two_factor.update()
                .where((_two_factor.c.user_id == user_id) & (_two_factor.c.is_enabled == 0))
                .values(**values)
            )
            if result.rowcount == 0:
                exists = conn.execute(select(_two_factor.c.user_id).where(_two_factor.c.user_id == user_id)).first()
                if exists is not None:
                    return False
                conn.execute(_two_factor.insert().values(user_id=user_id, created_at=to_iso(now), **values))
            self._write_backup_codes(conn, user_id, codes)
            conn.execute(_trusted_devices.delete().where(_trusted_devices.c.user_id == user_id))
        return True

    def enable_two_factor(self, user_id: int, now: datetime) -> bool:
        """Flip a pending record to enabled. False if missing or already enabled."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _two_factor.update()
                .where((_two_factor.c.user_id == user_id) & (_two_factor.c.is_enabled == 0))
                .values(
                    is_enabled=1,
                    enabled_at=to_iso(now),
                    last_totp_verified_at=to_iso(now),
                    updated_at=to_iso(now),
                )
            )
        return result.rowcount > 0

    def disable_two_factor(self, user_id: int, now: datetime) -> bool:
        """Disable 2FA and forget trusted devices. False if not enabled."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _two_factor.update()
                .where((_two_factor.c.user_id == user_id) & (_two_factor.c.is_enabled == 1))
                .values(is_enabled=0, disabled_at=to_iso(now), updated_at=to_iso(now))
            )
            if result.rowcount == 0:
                return False
            conn.execute(_trusted_devices.delete().where(_trusted_devices.c.user_id == user_id))
        return True

    def mark_totp_verified(self, user_id: int, now: datetime) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _two_factor.update()
                .where(_two_factor.c.user_id == user_id)
                .values(last_totp_verified_at=to_iso(now), updated_at=to_iso(now))
            )

    # ------------------------------------------------------------------
    # Backup codes
    # ------------------------------------------------------------------

    def replace_backup_codes(self, user_id: int, codes: list[BackupCode], now: datetime) -> None:
        """Discard every existing code and store the new set."""
        with self.engine.begin() as conn:
            self._write_backup_codes(conn, user_id, codes)
            conn.execute(
                _two_factor.update()
                .where(_two_factor.c.user_id == user_id)
                .values(
                    backup_codes_remaining=len(codes),
                    backup_codes_generated_at=to_iso(now),
                    updated_at=to_iso(now),
                )
            )

    def consume_backup_code(self, user_id: int, code_id: int, now: datetime) -> int | None:
        """Mark one backup code used.

        The WHERE used = 0 guard makes this the single point that decides
        whether a code is still spendable: of two concurrent attempts with
        the same code, exactly one sees rowcount == 1.

        Returns the number of unused codes left, or None if the code was
        already used (or does not belong to user_id).
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _backup_codes.update()
                .where(
                    (_backup_codes.c.id == code_id) & (_backup_codes.c.user_id == user_id) & (_backup_codes.c.used == 0)
                )
                .values(used=1, used_at=to_iso(now))
            )
            if result.rowcount != 1:
                return None
            remaining = conn.execute(
                select(func.count())
                .select_from(_backup_codes)
                .where((_backup_codes.c.user_id == user_id) & (_backup_codes.c.used == 0))
            ).scalar_one()
            conn.execute(
                _two_factor.update()
                .where(_two_factor.c.user_id == user_id)
                .values(
                    backup_codes_remaining=remaining,
                    last_backup_code_used_at=to_iso(now),
                    updated_at=to_iso(now),
                )
            )
        return remaining

    @staticmethod
    def _write_backup_codes(conn, user_id: int, codes: list[BackupCode]) -> None:
        conn.execute(_backup_codes.delete().where(_backup_codes.c.user_id == user_id))
        if codes:
            conn.execute(
                _backup_codes.insert(),
                [
                    {"user_id": user_id, "position": i, "code_hash": c.code_hash, "used": 1 if c.used else 0}
                    for i, c in enumerate(codes)
                ],
            )

    # ------------------------------------------------------------------
    # Trusted devices
    # ------------------------------------------------------------------

    def replace_trusted_devices(self, user_id: int, devices: list[TrustedDevice], now: datetime) -> bool:
        """Persist the full trusted-device list for a user.

        Raises ValueError if the list exceeds MAX_TRUSTED_DEVICES. Returns
        False if the user has no 2FA record.
        """
        if len(devices) > MAX_TRUSTED_DEVICES:
            raise ValueError(f"At most {MAX_TRUSTED_DEVICES} trusted devices per user, got {len(devices)}")
        with self.engine.begin() as conn:
            result = conn.execute(
                _two_factor.update().where(_two_factor.c.user_id == user_id).values(updated_at=to_iso(now))
            )
            if result.rowcount == 0:
                return False
            conn.execute(_trusted_devices.delete().where(_trusted_devices.c.user_id == user_id))
            if devices:
                conn.execute(
                    _trusted_devices.insert(),
                    [
                        {
                            "user_id": user_id,
                            "position": i,
                            "fingerprint": d.fingerprint,
                            "ip_address": d.ip_address,
                            "user_agent": d.user_agent,
                            "trusted_until": to_iso(d.trusted_until),
                            "created_at": to_iso(d.created_at),
                        }
                        for i, d in enumerate(devices)
                    ],
                )
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        display_name=row.display_name,
        hashed_password=row.hashed_password,
        password_history=json.loads(row.password_history or "[]"),
        role=row.role,
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        failed_login_attempts=row.failed_login_attempts or 0,
        locked_until=from_iso(row.locked_until),
        last_failed_login=from_iso(row.last_failed_login),
        last_login=from_iso(row.last_login),
        password_changed_at=from_iso(row.password_changed_at),
        force_password_change=bool(row.force_password_change),
        created_at=from_iso(row.created_at),
        updated_at=from_iso(row.updated_at),
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        created_at=from_iso(row.created_at),
        expires_at=from_iso(row.expires_at),
        last_active_at=from_iso(row.last_active_at),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        device_fingerprint=row.device_fingerprint,
        is_2fa_verified=bool(row.is_2fa_verified),
        remember_device=bool(row.remember_device),
        is_revoked=bool(row.is_revoked),
        revoked_at=from_iso(row.revoked_at),
        revoked_reason=row.revoked_reason,
        revoked_by=row.revoked_by,
    )


def _row_to_two_factor(row) -> TwoFactorRecord:
    return TwoFactorRecord(
        user_id=row.user_id,
        enabled=bool(row.is_enabled),
        totp_secret=row.totp_secret,
        totp_algorithm=row.totp_algorithm,
        totp_digits=row.totp_digits,
        totp_period=row.totp_period,
        backup_codes_remaining=row.backup_codes_remaining or 0,
        backup_codes_generated_at=from_iso(row.backup_codes_generated_at),
        enabled_at=from_iso(row.enabled_at),
        disabled_at=from_iso(row.disabled_at),
        last_totp_verified_at=from_iso(row.last_totp_verified_at),
        last_backup_code_used_at=from_iso(row.last_backup_code_used_at),
        created_at=from_iso(row.created_at),
        updated_at=from_iso(row.updated_at),
    )


def _row_to_backup_code(row) -> BackupCode:
    return BackupCode(
        id=row.id,
        code_hash=row.code_hash,
        used=bool(row.used),
        used_at=from_iso(row.used_at),
    )


def _row_to_trusted_device(row) -> TrustedDevice:
    return TrustedDevice(
        fingerprint=row.fingerprint,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        trusted_until=from_iso(row.trusted_until),
        created_at=from_iso(row.created_at),
    )
