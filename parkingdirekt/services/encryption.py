"""Encryption utilities for secrets at rest using AES-256-GCM."""
import base64
import hashlib
import hmac
import json
import logging
import os
import secrets
import string
from typing import Any, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
MASK = "••••••••"


class EncryptionService:
    """Service for encrypting and decrypting sensitive data using AES-256-GCM."""

    def __init__(self, encryption_key: str):
        """Initialize encryption service.

        Args:
            encryption_key: Key material, expected to be exactly 32 bytes.
                Other lengths are padded with "0" or truncated to 32 bytes
                and a warning is logged.

        Raises:
            ValueError: If no key is provided.
        """
        if not encryption_key:
            raise ValueError(
                "ENCRYPTION_KEY is required. "
                "Generate one with EncryptionService.generate_key()"
            )

        key = encryption_key.encode("utf-8")
        if len(key) != KEY_LENGTH:
            logger.warning(
                "Encryption key should be exactly 32 bytes for AES-256; padding or truncating",
                extra={"key_length": len(key)},
            )
            key = key.ljust(KEY_LENGTH, b"0")[:KEY_LENGTH]

        self.key = key
        self.aesgcm = AESGCM(self.key)

    def encrypt(self, plaintext: str, additional_data: Optional[bytes] = None) -> str:
        """Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: String to encrypt.
            additional_data: Optional authenticated additional data (AAD).

        Returns:
            Base64-encoded encrypted string with nonce prepended.

        Raises:
            ValueError: If plaintext is empty.
        """
        if not plaintext:
            raise ValueError("Plaintext cannot be empty")

        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = self.aesgcm.encrypt(nonce, plaintext.encode("utf-8"), additional_data)

        # Format: [12-byte nonce][ciphertext]
        return base64.urlsafe_b64encode(nonce + ciphertext).decode("utf-8")

    def decrypt(self, encrypted_data: str, additional_data: Optional[bytes] = None) -> str:
        """Decrypt encrypted data using AES-256-GCM.

        Args:
            encrypted_data: Base64-encoded encrypted string with nonce.
            additional_data: Optional AAD, must match the one used to encrypt.

        Returns:
            Decrypted plaintext string.

        Raises:
            ValueError: If decryption fails, data is invalid, or AAD doesn't match.
        """
        if not encrypted_data:
            raise ValueError("Encrypted data cannot be empty")

        try:
            encrypted_bytes = base64.urlsafe_b64decode(encrypted_data.encode("utf-8"))
            if len(encrypted_bytes) <= NONCE_LENGTH:
                raise ValueError("Invalid encrypted data format: too short")

            nonce = encrypted_bytes[:NONCE_LENGTH]
            ciphertext = encrypted_bytes[NONCE_LENGTH:]
            plaintext = self.aesgcm.decrypt(nonce, ciphertext, additional_data)
            return plaintext.decode("utf-8")
        except Exception as e:
            # Don't expose details that might leak information
            raise ValueError("Decryption failed: Invalid key or corrupted data") from e

    def encrypt_object(self, value: Any) -> str:
        """Encrypt a JSON-serializable value."""
        return self.encrypt(json.dumps(value))

    def decrypt_object(self, encrypted_data: str) -> Any:
        """Decrypt a value written by encrypt_object."""
        return json.loads(self.decrypt(encrypted_data))

    def is_valid_encrypted(self, value: str) -> bool:
        try:
            self.decrypt(value)
        except ValueError:
            return False
        return True

    @staticmethod
    def generate_key() -> str:
        """Random 32-character alphanumeric key."""
        alphabet = string.ascii_letters + string.digits
        return "".join(secrets.choice(alphabet) for _ in range(KEY_LENGTH))


def mask_value(value: Optional[str], show_last: int = 4) -> str:
    """Mask a secret for display, keeping the last few characters."""
    if not value or len(value) <= show_last:
        return MASK
    start = len(value) - show_last
    return "•" * start + value[start:]


def hash_value(value: str) -> str:
    """SHA-256 hex digest (for verification and log-safe identifiers)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def verify_hash(value: str, digest: str) -> bool:
    return hmac.compare_digest(hash_value(value), digest)
