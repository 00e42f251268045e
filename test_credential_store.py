"""
Credential Store Tests

Validates token/counter storage:
1. TTL expiry on the in-memory store
2. Atomic increment with a ceiling (rate-limit counters)
3. Encrypted file store: values unreadable on disk, bound to their key
4. Settings-driven store selection
"""

import asyncio
import json

import pytest

from conftest import FakeClock
from core.config import IntegrationSettings, build_credential_store
from core.security.credential_store import FileCredentialStore, InMemoryCredentialStore, store_key
from core.security.encryption import TokenEncryption, generate_encryption_key


class TestStoreKey:
    """Key layout shared by tokens and counters."""

    def test_key_parts_joined(self):
        """provider:tenant:parts."""
        assert store_key("parasut", "eczane-42", "token") == "parasut:eczane-42:token"
        assert store_key("sentos", "t1", "rate", "get", "last") == "sentos:t1:rate:get:last"


class TestInMemoryStore:
    """In-memory store semantics."""

    def test_value_expires_after_ttl(self):
        """Entries vanish once their TTL has passed."""
        clock = FakeClock()
        store = InMemoryCredentialStore(clock=clock.time)

        async def run():
            await store.set("k", {"a": 1}, ttl_seconds=10)
            assert await store.get("k") == {"a": 1}
            clock.advance(11)
            return await store.get("k")

        assert asyncio.run(run()) is None

    def test_get_returns_copy(self):
        """Mutating a returned value does not change the stored one."""
        store = InMemoryCredentialStore()

        async def run():
            await store.set("k", {"a": 1})
            value = await store.get("k")
            value["a"] = 2
            return await store.get("k")

        assert asyncio.run(run()) == {"a": 1}

    def test_increment_stops_at_ceiling(self):
        """The call past the ceiling is rejected and leaves the count alone."""
        store = InMemoryCredentialStore()

        async def run():
            results = [await store.increment("c", ttl_seconds=60, ceiling=2) for _ in range(3)]
            return results, await store.get("c")

        results, stored = asyncio.run(run())
        assert results == [(True, 1), (True, 2), (False, 2)]
        assert stored == {"count": 2}

    def test_increment_window_resets_after_ttl(self):
        """A new counter starts once the window entry expires."""
        clock = FakeClock()
        store = InMemoryCredentialStore(clock=clock.time)

        async def run():
            await store.increment("c", ttl_seconds=60, ceiling=1)
            clock.advance(61)
            return await store.increment("c", ttl_seconds=60, ceiling=1)

        assert asyncio.run(run()) == (True, 1)

    def test_keys_by_prefix(self):
        """Only live keys under the prefix are listed."""
        store = InMemoryCredentialStore()

        async def run():
            await store.set("parasut:t1:token", {"x": 1})
            await store.set("entegra:t1:token", {"x": 1})
            return await store.keys("parasut:")

        assert asyncio.run(run()) == ["parasut:t1:token"]


class TestTokenEncryption:
    """AES-GCM sealing of cached credentials."""

    def test_roundtrip(self):
        """Decrypting returns the original dict."""
        enc = TokenEncryption(generate_encryption_key())
        sealed = enc.encrypt({"access_token": "secret"}, bound_to="parasut:t1:token")
        assert "secret" not in sealed.ciphertext
        assert enc.decrypt(sealed) == {"access_token": "secret"}

    def test_rebinding_fails(self):
        """A ciphertext moved to another key cannot be opened."""
        enc = TokenEncryption(generate_encryption_key())
        sealed = enc.encrypt({"access_token": "secret"}, bound_to="parasut:t1:token")
        sealed.bound_to = "parasut:t2:token"
        with pytest.raises(ValueError):
            enc.decrypt(sealed)

    def test_wrong_key_fails(self):
        """Another key cannot decrypt."""
        sealed = TokenEncryption(generate_encryption_key()).encrypt({"a": 1}, bound_to="k")
        with pytest.raises(ValueError):
            TokenEncryption(generate_encryption_key()).decrypt(sealed)

    def test_short_key_rejected(self):
        """Keys must be 32 bytes."""
        with pytest.raises(ValueError):
            TokenEncryption("c2hvcnQ=")


class TestFileStore:
    """Encrypted file-backed store."""

    def test_persists_encrypted(self, tmp_path):
        """Values survive a new store instance and are not plaintext on disk."""
        key = generate_encryption_key()
        first = FileCredentialStore(str(tmp_path), TokenEncryption(key))
        asyncio.run(first.set("parasut:t1:token", {"access_token": "abc123"}, ttl_seconds=3600))

        files = list((tmp_path / "parasut").glob("*.json"))
        assert len(files) == 1
        assert "abc123" not in files[0].read_text()

        second = FileCredentialStore(str(tmp_path), TokenEncryption(key))
        assert asyncio.run(second.get("parasut:t1:token")) == {"access_token": "abc123"}

    def test_tampered_file_discarded(self, tmp_path):
        """An unreadable file is treated as missing."""
        store = FileCredentialStore(str(tmp_path), TokenEncryption(generate_encryption_key()))
        asyncio.run(store.set("sentos:t1:token", {"a": 1}))
        path = next((tmp_path / "sentos").glob("*.json"))
        doc = json.loads(path.read_text())
        doc["value"]["ciphertext"] = doc["value"]["ciphertext"][::-1]
        path.write_text(json.dumps(doc))

        assert asyncio.run(store.get("sentos:t1:token")) is None

    def test_increment_persists(self, tmp_path):
        """Counters are stored through the same encrypted path."""
        store = FileCredentialStore(str(tmp_path), TokenEncryption(generate_encryption_key()))

        async def run():
            await store.increment("entegra:t1:rate:all:x", ttl_seconds=60, ceiling=5)
            return await store.increment("entegra:t1:rate:all:x", ttl_seconds=60, ceiling=5)

        assert asyncio.run(run()) == (True, 2)


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self):
        """Timeouts and buffer have sensible defaults."""
        settings = IntegrationSettings()
        assert settings.http_timeout_seconds == 30.0
        assert settings.soap_timeout_seconds == 60.0
        assert settings.token_buffer_seconds == 60.0

    def test_from_env(self, monkeypatch, tmp_path):
        """Environment variables override defaults."""
        monkeypatch.setenv("INTEGRATIONS_HTTP_TIMEOUT", "12")
        monkeypatch.setenv("INTEGRATIONS_LOG_JSON", "true")
        settings = IntegrationSettings.from_env(env_file=tmp_path / "missing.env")
        assert settings.http_timeout_seconds == 12.0
        assert settings.log_json is True

    def test_bad_number_rejected(self, monkeypatch, tmp_path):
        """Non-numeric timeouts fail loudly."""
        monkeypatch.setenv("INTEGRATIONS_SOAP_TIMEOUT", "soon")
        with pytest.raises(ValueError):
            IntegrationSettings.from_env(env_file=tmp_path / "missing.env")

    def test_store_selection(self, tmp_path):
        """A path selects the file store, which then needs a key."""
        assert isinstance(build_credential_store(IntegrationSettings()), InMemoryCredentialStore)
        with pytest.raises(ValueError):
            build_credential_store(IntegrationSettings(token_store_path=str(tmp_path)))
        store = build_credential_store(
            IntegrationSettings(token_store_path=str(tmp_path), token_encryption_key=generate_encryption_key())
        )
        assert isinstance(store, FileCredentialStore)
