"""Process-wide integration settings.

Reads configuration from environment variables (a ``.env`` file at the
repository root is loaded first if present):

- INTEGRATIONS_HTTP_TIMEOUT: REST call timeout in seconds (default 30)
- INTEGRATIONS_SOAP_TIMEOUT: SOAP call timeout in seconds (default 60)
- INTEGRATIONS_TOKEN_BUFFER_SECONDS: Safety margin subtracted from token lifetimes (default 60)
- INTEGRATIONS_LOG_LEVEL: Logging level name (default INFO)
- INTEGRATIONS_LOG_JSON: "true" for JSON log lines
- INTEGRATIONS_TOKEN_STORE_PATH: Directory for the encrypted file store
- TOKEN_ENCRYPTION_KEY: Base64 32-byte key (see generate_encryption_key())
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from core.observability.logging import configure_logging
from core.security.credential_store import (
    CredentialStore,
    FileCredentialStore,
    InMemoryCredentialStore,
)
from core.security.encryption import TokenEncryption

REPO_ROOT = Path(__file__).resolve().parents[1]


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class IntegrationSettings:
    """Settings shared by every driver in the process."""
    http_timeout_seconds: float = 30.0
    soap_timeout_seconds: float = 60.0
    token_buffer_seconds: float = 60.0
    log_level: str = "INFO"
    log_json: bool = False
    token_store_path: Optional[str] = None
    token_encryption_key: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "IntegrationSettings":
        """Build settings from the environment."""
        env_path = env_file or REPO_ROOT / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        return cls(
            http_timeout_seconds=_env_float("INTEGRATIONS_HTTP_TIMEOUT", 30.0),
            soap_timeout_seconds=_env_float("INTEGRATIONS_SOAP_TIMEOUT", 60.0),
            token_buffer_seconds=_env_float("INTEGRATIONS_TOKEN_BUFFER_SECONDS", 60.0),
            log_level=os.getenv("INTEGRATIONS_LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("INTEGRATIONS_LOG_JSON"),
            token_store_path=os.getenv("INTEGRATIONS_TOKEN_STORE_PATH") or None,
            token_encryption_key=os.getenv("TOKEN_ENCRYPTION_KEY") or None,
        )

    def apply_logging(self) -> None:
        configure_logging(
            level=getattr(logging, self.log_level, logging.INFO),
            json_format=self.log_json,
        )


def build_credential_store(settings: IntegrationSettings) -> CredentialStore:
    """Encrypted file store when a path is configured, in-memory otherwise.

    Raises:
        ValueError: A store path is set without an encryption key
    """
    if settings.token_store_path:
        if not settings.token_encryption_key:
            raise ValueError(
                "TOKEN_ENCRYPTION_KEY is required when INTEGRATIONS_TOKEN_STORE_PATH is set"
            )
        return FileCredentialStore(
            settings.token_store_path,
            TokenEncryption(settings.token_encryption_key),
        )
    return InMemoryCredentialStore()
