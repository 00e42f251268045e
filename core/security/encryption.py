"""Credential encryption using AES-GCM.

Provides encryption for cached provider tokens at rest.
Uses AES-256-GCM for authenticated encryption.
"""

import base64
import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


def generate_encryption_key() -> str:
    """Generate a new 256-bit encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for AES-256
    """
    return base64.b64encode(secrets.token_bytes(32)).decode('utf-8')


@dataclass
class EncryptedValue:
    """Ciphertext plus what is needed to open it again."""
    ciphertext: str  # Base64, GCM tag appended
    nonce: str       # Base64 96-bit nonce
    bound_to: str    # Associated data (store key)
    created_at: str
    key_version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "bound_to": self.bound_to,
            "created_at": self.created_at,
            "key_version": self.key_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedValue":
        return cls(
            ciphertext=data["ciphertext"],
            nonce=data["nonce"],
            bound_to=data["bound_to"],
            created_at=data.get("created_at", ""),
            key_version=data.get("key_version", 1),
        )


class TokenEncryption:
    """AES-256-GCM encryption for cached credentials.

    Each value is bound to its store key through the GCM associated data,
    so a ciphertext copied under another tenant's key fails to decrypt.

    Usage:
        enc = TokenEncryption(generate_encryption_key())
        sealed = enc.encrypt({"access_token": "..."}, bound_to="parasut:tenant-1:token")
        data = enc.decrypt(sealed)
    """

    def __init__(self, encryption_key: str):
        """Initialize with base64-encoded encryption key.

        Args:
            encryption_key: Base64-encoded 32-byte key (from generate_encryption_key())

        Raises:
            ValueError: If the key is not valid base64 or not 32 bytes
        """
        try:
            key = base64.b64decode(encryption_key, validate=True)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid encryption key: {e}")
        if len(key) != 32:
            raise ValueError("Invalid encryption key: must be 32 bytes (256 bits)")
        self._aesgcm = AESGCM(key)

    def encrypt(self, data: Dict[str, Any], bound_to: str, key_version: int = 1) -> EncryptedValue:
        """Encrypt a JSON-serializable dict."""
        plaintext = json.dumps(data, sort_keys=True).encode('utf-8')
        nonce = os.urandom(12)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext, bound_to.encode('utf-8'))
        return EncryptedValue(
            ciphertext=base64.b64encode(ciphertext).decode('utf-8'),
            nonce=base64.b64encode(nonce).decode('utf-8'),
            bound_to=bound_to,
            created_at=datetime.now(timezone.utc).isoformat(),
            key_version=key_version,
        )

    def decrypt(self, encrypted: EncryptedValue) -> Dict[str, Any]:
        """Decrypt a value produced by ``encrypt``.

        Raises:
            ValueError: Wrong key, tampered data or wrong associated key
        """
        try:
            plaintext = self._aesgcm.decrypt(
                base64.b64decode(encrypted.nonce),
                base64.b64decode(encrypted.ciphertext),
                encrypted.bound_to.encode('utf-8'),
            )
        except (InvalidTag, ValueError) as e:
            raise ValueError(f"Credential decryption failed: {e!r}")
        return json.loads(plaintext.decode('utf-8'))
