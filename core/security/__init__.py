"""Security module - credential encryption and tenant-scoped storage."""

from core.security.encryption import (
    TokenEncryption,
    EncryptedValue,
    generate_encryption_key,
)
from core.security.credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    FileCredentialStore,
    store_key,
)

__all__ = [
    "TokenEncryption",
    "EncryptedValue",
    "generate_encryption_key",
    "CredentialStore",
    "InMemoryCredentialStore",
    "FileCredentialStore",
    "store_key",
]
