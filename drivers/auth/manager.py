"""Per provider+tenant authentication state machine.

    UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED
    AUTHENTICATED -> EXPIRED -> REFRESHING_TOKEN -> AUTHENTICATED
    AUTHENTICATED -> EXPIRED -> REAUTHENTICATING -> AUTHENTICATED

Tokens are cached in the CredentialStore under ``provider:tenant:token``.
A business call gets at most one renewal: a 401 triggers a refresh (or a
re-login when the strategy cannot refresh) and one retry; a second 401 is
terminal and drops the cached token.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from core.security.credential_store import CredentialStore, store_key
from drivers.auth.strategies import AuthContext, AuthStrategy, Sender
from drivers.auth.tokens import TokenRecord, utcnow
from drivers.credentials import ProviderCredential
from drivers.errors import AuthenticationError, ProviderRejectedError, SchemaMismatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESHING_TOKEN = "refreshing_token"
    REAUTHENTICATING = "reauthenticating"


class AuthManager:
    """Keeps one tenant's provider token valid.

    Usage:
        manager = AuthManager(strategy, credential, store, sender)
        result = await manager.call(lambda token: do_request(token))
    """

    def __init__(
        self,
        strategy: AuthStrategy,
        credential: ProviderCredential,
        store: CredentialStore,
        sender: Sender,
        clock: Callable[[], datetime] = utcnow,
        buffer_seconds: float = 60,
        timeout: Optional[float] = None,
    ):
        self.strategy = strategy
        self.credential = credential
        self.store = store
        self.clock = clock
        self.state = AuthState.UNAUTHENTICATED
        self.key = store_key(credential.provider, credential.tenant_id, "token")
        self._ctx = AuthContext(
            provider=credential.provider,
            tenant_id=credential.tenant_id,
            credential=credential,
            send=sender,
            now=clock,
            buffer_seconds=buffer_seconds,
            timeout=timeout,
        )
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _renewal_lock(self) -> asyncio.Lock:
        """Lock owned by the running event loop; a new loop gets a new lock."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    # ------------------------------------------------------------------
    # Token cache
    # ------------------------------------------------------------------

    async def cached_token(self) -> Optional[TokenRecord]:
        data = await self.store.get(self.key)
        if not data:
            return None
        try:
            return TokenRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping unreadable cached token for {self.key}: {e!r}")
            await self.store.delete(self.key)
            return None

    async def save_token(self, record: TokenRecord) -> None:
        await self.store.set(self.key, record.to_dict(), ttl_seconds=record.remaining_seconds(self.clock()))

    async def invalidate(self) -> None:
        """Forget the cached token; the next call logs in again."""
        await self.store.delete(self.key)
        self.state = AuthState.UNAUTHENTICATED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_token(self, force: bool = False, stale: Optional[TokenRecord] = None) -> Optional[TokenRecord]:
        """Return a usable token, renewing it if needed.

        Args:
            force: Renew even if the cached token looks valid (after a 401)
            stale: The token that was rejected; if the cache already holds a
                different one, another caller renewed it and it is reused
        """
        if not self.strategy.issues_tokens:
            self.state = AuthState.AUTHENTICATED
            return None

        record = await self.cached_token()
        if record is not None and not force and not record.is_expired(self.clock()):
            self.state = AuthState.AUTHENTICATED
            return record

        async with self._renewal_lock():
            record = await self.cached_token()
            if record is not None and not record.is_expired(self.clock()):
                renewed_elsewhere = stale is not None and record.access_token != stale.access_token
                if not force or renewed_elsewhere:
                    self.state = AuthState.AUTHENTICATED
                    return record
            return await self._renew(record)

    async def _renew(self, record: Optional[TokenRecord]) -> TokenRecord:
        now = self.clock()
        if record is not None:
            self.state = AuthState.EXPIRED

        if record is not None and self.strategy.supports_refresh and record.can_refresh(now):
            self.state = AuthState.REFRESHING_TOKEN
            try:
                renewed = await self.strategy.refresh(self._ctx, record)
            except (AuthenticationError, ProviderRejectedError, SchemaMismatchError) as e:
                logger.warning(f"Token refresh failed for {self.key}, logging in again: {e}")
            else:
                await self.save_token(renewed)
                self.state = AuthState.AUTHENTICATED
                logger.info(f"Token refreshed for {self.key}")
                return renewed

        self.state = AuthState.REAUTHENTICATING if record is not None else AuthState.AUTHENTICATING
        try:
            renewed = await self.strategy.login(self._ctx)
        except Exception:
            await self.store.delete(self.key)
            self.state = AuthState.UNAUTHENTICATED
            raise
        await self.save_token(renewed)
        self.state = AuthState.AUTHENTICATED
        logger.info(f"Authenticated {self.key}")
        return renewed

    async def call(self, operation: Callable[[Optional[TokenRecord]], Awaitable[T]]) -> T:
        """Run ``operation`` with a valid token, renewing at most once on 401."""
        token = await self.ensure_token()
        try:
            return await operation(token)
        except AuthenticationError as first:
            if not self.strategy.retry_on_unauthorized:
                self.state = AuthState.UNAUTHENTICATED
                raise
            logger.warning(f"Provider rejected token for {self.key}, renewing once: {first.message}")
            self.state = AuthState.EXPIRED

        token = await self.ensure_token(force=True, stale=token)
        try:
            return await operation(token)
        except AuthenticationError as second:
            await self.invalidate()
            raise AuthenticationError(
                f"Authentication failed after renewing credentials: {second.message}",
                second.status_code,
                second.response_body,
            )
