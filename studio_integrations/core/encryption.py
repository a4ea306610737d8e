"""
Token encryption at rest.

Uses AES-256-GCM. Ciphertexts are stored as ``iv:ciphertext:tag`` with each
part base64 encoded. The key is a base64-encoded 32 byte value, generate one
with ``openssl rand -base64 32``.
"""
import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import settings

logger = logging.getLogger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16


class EncryptionError(Exception):
    """Key missing/invalid or ciphertext tampered."""


def load_key(key_b64: Optional[str] = None) -> bytes:
    """
    Decode and validate the encryption key.

    Args:
        key_b64: Base64 key. Falls back to ``settings.encryption_key``.

    Raises:
        EncryptionError: If the key is missing or not 32 bytes
    """
    key_b64 = key_b64 or settings.encryption_key
    if not key_b64:
        raise EncryptionError(
            "Encryption key is not set. Set STUDIO_ENCRYPTION_KEY "
            "(generate one with: openssl rand -base64 32)"
        )
    try:
        key = base64.b64decode(key_b64, validate=True)
    except binascii.Error as e:
        raise EncryptionError(f"Encryption key is not valid base64: {e}") from e
    if len(key) != 32:
        raise EncryptionError(f"Encryption key must be 32 bytes, got {len(key)}")
    return key


class TokenCipher:
    """AES-256-GCM cipher for credential secrets."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise EncryptionError(f"Encryption key must be 32 bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls) -> "TokenCipher":
        return cls(load_key())

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (iv, ciphertext, tag)
        )

    def decrypt(self, token: str) -> str:
        parts = token.split(":")
        if len(parts) != 3:
            raise EncryptionError("Invalid encrypted data format, expected iv:ciphertext:tag")
        try:
            iv, ciphertext, tag = (base64.b64decode(p) for p in parts)
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except (binascii.Error, InvalidTag, ValueError) as e:
            raise EncryptionError("Decryption failed") from e
        return plaintext.decode("utf-8")

    def safe_decrypt(self, token: Optional[str]) -> Optional[str]:
        """Decrypt, returning None instead of raising on bad input."""
        if not token:
            return None
        try:
            return self.decrypt(token)
        except EncryptionError:
            logger.warning("Failed to decrypt stored secret")
            return None
