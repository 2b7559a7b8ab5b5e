"""
auth/backup_codes.py -- Single-use recovery codes.

Codes are 8 random characters from [A-Z0-9], displayed as XXXX-XXXX. Only
bcrypt digests are stored. The digest is taken over the normalized form
(separators stripped, uppercased) so "abcd-1234", "ABCD1234" and
"ABCD 1234" are the same code.

Consumption is the store's job: UserStore.consume_backup_code() flips the
used flag with a conditional UPDATE, which is what makes a code single-use
under concurrent retries. This module only finds the candidate.
"""

from __future__ import annotations

import re
import secrets
import string

from auth.models import BackupCode
from auth.passwords import PasswordHasher

_ALPHABET = string.ascii_uppercase + string.digits
_CODE_LENGTH = 8
_GROUP = 4
_SEPARATORS_RE = re.compile(r"[\s\-_]")


def normalize(code: str) -> str:
    return _SEPARATORS_RE.sub("", code or "").upper()


class BackupCodeManager:
    def __init__(self, count: int = 8, rounds: int = 10) -> None:
        if count < 1:
            raise ValueError("count must be >= 1")
        self.count = count
        self._hasher = PasswordHasher(rounds=rounds)

    def generate(self) -> list[str]:
        """Return `count` fresh codes formatted for display."""
        codes = []
        for _ in range(self.count):
            raw = "".join(secrets.choice(_ALPHABET) for _ in range(_CODE_LENGTH))
            codes.append(f"{raw[:_GROUP]}-{raw[_GROUP:]}")
        return codes

    def hash_codes(self, codes: list[str]) -> list[BackupCode]:
        return [BackupCode(code_hash=self._hasher.hash(normalize(code))) for code in codes]

    def match(self, code: str, entries: list[BackupCode]) -> BackupCode | None:
        """Return the unused entry whose digest matches code, if any.

        Used entries are skipped without hashing, so a spent code can never
        match again.
        """
        candidate = normalize(code)
        if len(candidate) != _CODE_LENGTH:
            return None
        for entry in entries:
            if entry.used:
                continue
            if self._hasher.verify(candidate, entry.code_hash):
                return entry
        return None
