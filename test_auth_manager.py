"""
Auth Manager Tests

Covers the token lifecycle shared by every driver:
1. Cached tokens are reused until they expire
2. A 401 triggers exactly one renewal and one retry
3. A second 401 is terminal and drops the cached token
4. Concurrent callers share a single login
5. Static credentials are never retried
"""

import asyncio

import pytest

from conftest import FakeClock, FakeTransport, json_response
from core.security.credential_store import InMemoryCredentialStore
from drivers.auth.manager import AuthManager, AuthState
from drivers.auth.strategies import BasicStatic, OAuth2PasswordRefresh, SessionToken
from drivers.auth.tokens import TokenRecord
from drivers.credentials import ProviderCredential
from drivers.errors import AuthenticationError
from drivers.transport import TransportRequest

TOKEN_URL = "https://auth.example/oauth/token"


def oauth_credential() -> ProviderCredential:
    return ProviderCredential(
        provider="parasut",
        tenant_id="eczane-42",
        username="user@example.com",
        password="pw",
        client_id="cid",
        client_secret="csecret",
    )


def token_reply(access: str, refresh: str = "r-1", expires_in: int = 7200):
    return json_response({"access_token": access, "refresh_token": refresh, "expires_in": expires_in})


def make_manager(transport, strategy=None, credential=None, clock=None):
    clock = clock or FakeClock()
    store = InMemoryCredentialStore(clock=clock.time)
    manager = AuthManager(
        strategy or OAuth2PasswordRefresh(TOKEN_URL),
        credential or oauth_credential(),
        store,
        sender=transport.send,
        clock=clock.utcnow,
    )
    return manager, store, clock


class Operation:
    """Business call stub that fails with 401 a given number of times."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.tokens = []

    async def __call__(self, token):
        self.tokens.append(token.access_token if token else None)
        if self.failures > 0:
            self.failures -= 1
            raise AuthenticationError("Authentication failed: token expired", 401)
        return "done"


class TestTokenRecord:
    """Expiry arithmetic."""

    def test_buffer_subtracted(self):
        """The record expires buffer seconds before the provider's deadline."""
        clock = FakeClock()
        record = TokenRecord.issue("parasut", "t1", "a", 7200, buffer_seconds=60, now=clock.utcnow())
        assert not record.is_expired(clock.utcnow())
        clock.advance(7139)
        assert not record.is_expired(clock.utcnow())
        clock.advance(1)
        assert record.is_expired(clock.utcnow())

    def test_dict_roundtrip(self):
        """Records survive serialization into the store."""
        record = TokenRecord.issue("parasut", "t1", "a", 100, refresh_token="r", extras={"company": "1"})
        assert TokenRecord.from_dict(record.to_dict()) == record


class TestTokenReuse:
    """Cached tokens."""

    def test_login_once_for_many_calls(self):
        """Two calls share one login."""
        transport = FakeTransport(token_reply("a-1"))
        manager, store, _ = make_manager(transport)
        op = Operation()

        async def run():
            await manager.call(op)
            await manager.call(op)

        asyncio.run(run())
        assert len(transport.requests) == 1
        assert transport.requests[0].form["grant_type"] == "password"
        assert op.tokens == ["a-1", "a-1"]
        assert manager.state == AuthState.AUTHENTICATED

    def test_token_cached_under_tenant_key(self):
        """The token lives at provider:tenant:token."""
        transport = FakeTransport(token_reply("a-1"))
        manager, store, _ = make_manager(transport)
        asyncio.run(manager.ensure_token())
        assert asyncio.run(store.get("parasut:eczane-42:token"))["access_token"] == "a-1"

    def test_expired_token_refreshed(self):
        """Past expiry the refresh grant is used, not a new login."""
        transport = FakeTransport(token_reply("a-1"), token_reply("a-2", refresh="r-2"))
        manager, _, clock = make_manager(transport)

        async def run():
            await manager.ensure_token()
            clock.advance(7200)
            return await manager.ensure_token()

        record = asyncio.run(run())
        assert record.access_token == "a-2"
        assert transport.requests[1].form["grant_type"] == "refresh_token"
        assert transport.requests[1].form["refresh_token"] == "r-1"


class TestRetryOn401:
    """Single renewal on rejection."""

    def test_one_retry_then_success(self):
        """A 401 renews once and the retry succeeds."""
        transport = FakeTransport(token_reply("a-1"), token_reply("a-2"))
        manager, _, _ = make_manager(transport)
        op = Operation(failures=1)

        assert asyncio.run(manager.call(op)) == "done"
        assert op.tokens == ["a-1", "a-2"]
        assert len(transport.requests) == 2

    def test_second_401_is_terminal(self):
        """Two rejections raise and the cached token is dropped."""
        transport = FakeTransport(token_reply("a-1"), token_reply("a-2"))
        manager, store, _ = make_manager(transport)
        op = Operation(failures=5)

        with pytest.raises(AuthenticationError) as excinfo:
            asyncio.run(manager.call(op))

        assert "after renewing" in excinfo.value.message
        assert len(op.tokens) == 2
        assert len(transport.requests) == 2
        assert asyncio.run(store.get(manager.key)) is None
        assert manager.state == AuthState.UNAUTHENTICATED

    def test_failed_refresh_falls_back_to_login(self):
        """A refused refresh grant leads to a password login."""
        transport = FakeTransport(
            token_reply("a-1"),
            json_response({"error": "invalid_grant"}, status=400),
            token_reply("a-3"),
        )
        manager, _, _ = make_manager(transport)
        op = Operation(failures=1)

        asyncio.run(manager.call(op))
        grants = [r.form["grant_type"] for r in transport.requests]
        assert grants == ["password", "refresh_token", "password"]
        assert op.tokens == ["a-1", "a-3"]

    def test_login_failure_raises(self):
        """Bad credentials surface as AuthenticationError and nothing is cached."""
        transport = FakeTransport(json_response({"error": "invalid_grant"}, status=400))
        manager, store, _ = make_manager(transport)

        with pytest.raises(AuthenticationError):
            asyncio.run(manager.call(Operation()))
        assert asyncio.run(store.get(manager.key)) is None


class TestConcurrentRenewal:
    """Renewal is serialized per tenant."""

    def test_parallel_callers_share_login(self):
        """Five concurrent calls trigger one login."""
        transport = FakeTransport(token_reply("a-1"))
        manager, _, _ = make_manager(transport)

        async def run():
            return await asyncio.gather(*(manager.ensure_token() for _ in range(5)))

        records = asyncio.run(run())
        assert {r.access_token for r in records} == {"a-1"}
        assert len(transport.requests) == 1

    def test_stale_token_reused_if_renewed_elsewhere(self):
        """A forced renewal is skipped when another caller already renewed."""
        transport = FakeTransport(token_reply("a-1"), token_reply("a-2"))
        manager, _, _ = make_manager(transport)

        async def run():
            stale = await manager.ensure_token()
            fresh = await manager.ensure_token(force=True, stale=stale)
            again = await manager.ensure_token(force=True, stale=stale)
            return fresh, again

        fresh, again = asyncio.run(run())
        assert fresh.access_token == "a-2"
        assert again.access_token == "a-2"
        assert len(transport.requests) == 2


class TestStaticCredentials:
    """Strategies without tokens."""

    def test_basic_auth_not_retried(self):
        """A 401 with static credentials is returned immediately."""
        transport = FakeTransport()
        credential = ProviderCredential(provider="sentos", tenant_id="t1", username="u", password="p")
        manager, _, _ = make_manager(transport, strategy=BasicStatic(), credential=credential)
        op = Operation(failures=1)

        with pytest.raises(AuthenticationError):
            asyncio.run(manager.call(op))
        assert op.tokens == [None]
        assert transport.requests == []

    def test_basic_header(self):
        """Basic auth is built from username and password."""
        credential = ProviderCredential(provider="sentos", tenant_id="t1", username="u", password="p")
        request = TransportRequest("GET", "https://x")
        BasicStatic().apply(request, credential, None)
        assert request.headers["Authorization"] == "Basic dTpw"


class TestSessionToken:
    """Opaque session tokens."""

    def test_token_placed_in_body(self):
        """Body placement prepends the token field."""
        strategy = SessionToken(
            "https://x/login",
            lambda c: {"Username": c.username},
            placement="body",
            body_field="ApiCode",
        )
        record = TokenRecord.issue("stockmount", "t1", "code-1", 3600)
        request = TransportRequest("POST", "https://x/api", json={"StoreId": 1})
        strategy.apply(request, None, record)
        assert request.json == {"ApiCode": "code-1", "StoreId": 1}

    def test_rejected_login_message(self):
        """A success flag of false is an authentication failure."""
        transport = FakeTransport(json_response({"Result": False, "ErrorMessage": "Hatalı giriş"}))
        credential = ProviderCredential(provider="stockmount", tenant_id="t1", username="u", password="p")
        strategy = SessionToken(
            "https://x/login",
            lambda c: {"Username": c.username, "Password": c.password},
            token_path=("Response.ApiCode",),
            success_path="Result",
        )
        manager, _, _ = make_manager(transport, strategy=strategy, credential=credential)

        with pytest.raises(AuthenticationError) as excinfo:
            asyncio.run(manager.ensure_token())
        assert "Hatalı giriş" in excinfo.value.message
