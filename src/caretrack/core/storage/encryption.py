"""Fernet encryption for care log payloads at rest.

Log payloads (what was eaten, blood pressure readings, symptom notes) are
encrypted before they reach SQLite. The category and calendar day stay in
clear so that range queries never need to decrypt rows they skip.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts JSON-serializable payloads.

    ``key`` may hold several comma-separated Fernet keys. The first key
    encrypts; every key is tried on decrypt, which lets an old key stay
    readable while :meth:`rotate` re-encrypts tokens under the new one.

    Usage::

        encryptor = FieldEncryptor(key="new-key,old-key")
        token = encryptor.encrypt({"mood": 6})
        encryptor.decrypt(token)  # {"mood": 6}
    """

    def __init__(self, key: str) -> None:
        """Initialize with one or more Fernet keys.

        Raises:
            EncryptionError: If no key is given or any key is invalid.
        """
        keys = [part.strip() for part in (key or "").split(",") if part.strip()]
        if not keys:
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = MultiFernet([Fernet(part.encode()) for part in keys])
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc
        self._key_count = len(keys)

    @classmethod
    def ephemeral(cls) -> FieldEncryptor:
        """An encryptor with a throwaway key, for stores that never touch disk."""
        return cls(cls.generate_key())

    @property
    def key_count(self) -> int:
        return self._key_count

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token string.

        ``None`` encrypts to the empty string.

        Raises:
            EncryptionError: If serialization or encryption fails.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Payload is not JSON-serializable: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Decrypt a Fernet token string back to a Python object.

        Raises:
            EncryptionError: If the token is invalid or no key matches.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decrypted payload is not JSON: {exc}") from exc

    def rotate(self, token: str) -> str:
        """Re-encrypt ``token`` under the primary key."""
        if not token:
            return ""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded Fernet key."""
        return Fernet.generate_key().decode("utf-8")
