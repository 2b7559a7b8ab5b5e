"""
auth/cipher.py -- Encryption of secrets that must be recoverable (TOTP seeds).

TOTP seeds cannot be hashed: the server has to recompute codes from them.
They are stored as AES-256-GCM ciphertext instead.

Key handling: the deployment ENCRYPTION_KEY is an arbitrary string of at
least 32 characters. HKDF-SHA256 stretches it into exactly 32 key bytes, so
operators do not need to supply raw binary key material.

Token format (all one ASCII string):
    v1.<urlsafe-base64(nonce[12] || ciphertext || tag[16])>

The version prefix leaves room for key rotation without guessing formats.
"""

from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from auth.errors import SecretCipherError

_VERSION = "v1"
_NONCE_BYTES = 12
_HKDF_INFO = b"sessionguard/secret-cipher/v1"


class SecretCipher:
    """Symmetric encrypt/decrypt under one deployment-wide key."""

    def __init__(self, key: str) -> None:
        if not key:
            raise ValueError("encryption key must not be empty")
        derived = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=_HKDF_INFO,
        ).derive(key.encode("utf-8"))
        self._aead = AESGCM(derived)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), _VERSION.encode())
        return f"{_VERSION}.{base64.urlsafe_b64encode(nonce + sealed).decode('ascii')}"

    def decrypt(self, token: str) -> str:
        """Return the plaintext. Raises SecretCipherError on any failure."""
        version, _, body = token.partition(".")
        if version != _VERSION or not body:
            raise SecretCipherError("Unsupported ciphertext format")
        try:
            raw = base64.urlsafe_b64decode(body.encode("ascii"))
        except ValueError as exc:
            raise SecretCipherError("Ciphertext is not valid base64") from exc
        if len(raw) <= _NONCE_BYTES:
            raise SecretCipherError("Ciphertext is truncated")
        nonce, sealed = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
        try:
            return self._aead.decrypt(nonce, sealed, _VERSION.encode()).decode("utf-8")
        except InvalidTag as exc:
            raise SecretCipherError("Ciphertext failed authentication") from exc
