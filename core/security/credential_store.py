"""Tenant-scoped key/value storage for tokens and rate-limit counters.

Backends:
- InMemoryCredentialStore: single process, development and tests
- FileCredentialStore: encrypted JSON files, single-server deployments

Keys always start with ``provider:tenant:`` so tenants never share
entries. ``increment`` is atomic with respect to other calls on the same
store, which is what the rate limiter relies on.
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.security.encryption import EncryptedValue, TokenEncryption

logger = logging.getLogger(__name__)


def store_key(provider: str, tenant_id: str, *parts: str) -> str:
    """Build a tenant-scoped key: ``provider:tenant:part...``."""
    if not provider or not tenant_id:
        raise ValueError("provider and tenant_id are required for store keys")
    return ":".join([provider, tenant_id, *parts])


@dataclass
class _Entry:
    value: Dict[str, Any]
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class CredentialStore(ABC):
    """Abstract base class for credential/counter storage."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored value, or None if absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        """Store a value, optionally expiring after ``ttl_seconds``."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value. Returns True if something was removed."""
        pass

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: float, ceiling: int) -> Tuple[bool, int]:
        """Atomically add one to a counter unless it would exceed ``ceiling``.

        The counter is created with ``ttl_seconds`` on first use. A rejected
        increment leaves the count unchanged.

        Returns:
            (accepted, count after the call)
        """
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> List[str]:
        """List live keys starting with ``prefix``."""
        pass


class InMemoryCredentialStore(CredentialStore):
    """In-memory storage.

    WARNING: Tokens are lost on restart. Use only for development and tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._live(key)
            return dict(entry.value) if entry else None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
            self._entries[key] = _Entry(dict(value), expires_at)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def increment(self, key: str, ttl_seconds: float, ceiling: int) -> Tuple[bool, int]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                entry = _Entry({"count": 0}, self._clock() + ttl_seconds)
                self._entries[key] = entry
            count = entry.value["count"]
            if count >= ceiling:
                return False, count
            entry.value["count"] = count + 1
            return True, count + 1

    async def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k in list(self._entries) if k.startswith(prefix) and self._live(k)]


class FileCredentialStore(CredentialStore):
    """File-based storage with AES-GCM encryption.

    One JSON file per key. The value is encrypted with the key as associated
    data, so a file renamed to another tenant's key cannot be opened.

    Directory structure:
        {base_path}/
            {provider}/
                {sanitized key}.json
    """

    def __init__(
        self,
        base_path: str,
        encryption: TokenEncryption,
        clock: Callable[[], float] = time.time,
    ):
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._encryption = encryption
        self._clock = clock
        self._lock = threading.Lock()
        try:
            os.chmod(self._base_path, 0o700)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self._base_path)

    def _path(self, key: str) -> Path:
        provider = key.split(":", 1)[0]
        folder = self._base_path / provider
        folder.mkdir(parents=True, exist_ok=True)
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return folder / f"{safe}.json"

    def _read(self, key: str) -> Optional[_Entry]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                doc = json.load(f)
            value = self._encryption.decrypt(EncryptedValue.from_dict(doc["value"]))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Discarding unreadable credential file {path.name}: {e}")
            path.unlink(missing_ok=True)
            return None
        entry = _Entry(value, doc.get("expires_at"))
        if entry.expired(self._clock()):
            path.unlink(missing_ok=True)
            return None
        return entry

    def _write(self, key: str, entry: _Entry) -> None:
        path = self._path(key)
        doc = {
            "key": key,
            "expires_at": entry.expires_at,
            "value": self._encryption.encrypt(entry.value, bound_to=key).to_dict(),
        }
        tmp = path.with_suffix(".tmp")
        with open(tmp, 'w', encoding='utf-8') as f:
            json.dump(doc, f, indent=2)
        try:
            os.chmod(tmp, 0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", tmp)
        os.replace(tmp, path)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._read(key)
            return entry.value if entry else None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
            self._write(key, _Entry(dict(value), expires_at))

    async def delete(self, key: str) -> bool:
        with self._lock:
            path = self._path(key)
            if path.exists():
                path.unlink()
                return True
            return False

    async def increment(self, key: str, ttl_seconds: float, ceiling: int) -> Tuple[bool, int]:
        with self._lock:
            entry = self._read(key) or _Entry({"count": 0}, self._clock() + ttl_seconds)
            count = entry.value.get("count", 0)
            if count >= ceiling:
                return False, count
            entry.value["count"] = count + 1
            self._write(key, entry)
            return True, count + 1

    async def keys(self, prefix: str = "") -> List[str]:
        found = []
        with self._lock:
            for path in self._base_path.glob("*/*.json"):
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        key = json.load(f).get("key", "")
                except (json.JSONDecodeError, OSError):
                    continue
                if key.startswith(prefix) and self._read(key) is not None:
                    found.append(key)
        return found
