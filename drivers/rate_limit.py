"""Fixed-window rate limiting per provider+tenant.

Each rule owns a counter keyed by provider, tenant, operation class and
window bucket, e.g. ``entegra:eczane-42:rate:all:2026-10-19-14`` for an
hourly window. The counter is bumped with the store's atomic
increment-with-ceiling before a request is dispatched; when the budget is
spent the call fails locally and nothing goes over the wire.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional

from core.security.credential_store import CredentialStore, store_key
from drivers.errors import RateLimitExceededError

logger = logging.getLogger(__name__)

READ_METHODS = ("GET", "HEAD")


def operation_class(method: str) -> str:
    return "get" if method.upper() in READ_METHODS else "post"


@dataclass(frozen=True)
class RateLimitRule:
    """``limit`` calls per ``period_seconds``, optionally spaced apart.

    ``operation_class`` is "get" (reads), "post" (writes), "all", or a
    class a driver names explicitly when sending (e.g. "lookup").
    A rule with ``limit=0`` only enforces spacing.
    """
    limit: int
    period_seconds: int
    operation_class: str = "all"
    min_interval_seconds: float = 0.0

    def applies_to(self, op_class: str) -> bool:
        return self.operation_class in ("all", op_class)


@dataclass(frozen=True)
class RateLimitWindow:
    """Snapshot of one counter."""
    key: str
    window_start: float
    length_seconds: int
    count: int
    cap: int

    @property
    def remaining(self) -> int:
        return max(self.cap - self.count, 0)


def _bucket_label(window_start: float, period: int) -> str:
    moment = datetime.fromtimestamp(window_start, tz=timezone.utc)
    if period % 86400 == 0:
        return moment.strftime("%Y-%m-%d")
    if period % 3600 == 0:
        return moment.strftime("%Y-%m-%d-%H")
    if period % 60 == 0:
        return moment.strftime("%Y-%m-%d-%H-%M")
    return moment.strftime("%Y-%m-%d-%H-%M-%S")


class RateLimiter:
    """Gate that every outbound request of one driver passes through.

    Usage:
        limiter = RateLimiter("sentos", "eczane-42", store, [RateLimitRule(2, 60, "get")])
        await limiter.acquire("GET")   # raises RateLimitExceededError when spent
    """

    def __init__(
        self,
        provider: str,
        tenant_id: str,
        store: CredentialStore,
        rules: Iterable[RateLimitRule] = (),
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.tenant_id = tenant_id
        self.store = store
        self.rules: List[RateLimitRule] = list(rules)
        self.clock = clock
        self.sleep = sleep
        self._spacing_lock: Optional[asyncio.Lock] = None
        self._spacing_loop: Optional[asyncio.AbstractEventLoop] = None

    def _lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._spacing_lock is None or self._spacing_loop is not loop:
            self._spacing_lock = asyncio.Lock()
            self._spacing_loop = loop
        return self._spacing_lock

    def _window(self, rule: RateLimitRule, now: float):
        start = math.floor(now / rule.period_seconds) * rule.period_seconds
        key = store_key(
            self.provider,
            self.tenant_id,
            "rate",
            rule.operation_class,
            _bucket_label(start, rule.period_seconds),
        )
        return key, start, start + rule.period_seconds

    async def acquire(self, method: str, op_class: Optional[str] = None) -> None:
        """Reserve one call for ``method`` or raise.

        ``op_class`` overrides the class derived from the method, so a
        driver can meter secondary lookups on a budget of their own.

        Raises:
            RateLimitExceededError: Window budget spent (no request was sent)
        """
        op_class = op_class or operation_class(method)
        for rule in self.rules:
            if not rule.applies_to(op_class):
                continue
            if rule.limit > 0:
                await self._count(rule)
            if rule.min_interval_seconds > 0:
                await self._space(rule, op_class)

    async def _count(self, rule: RateLimitRule) -> None:
        now = self.clock()
        key, _, end = self._window(rule, now)
        accepted, count = await self.store.increment(key, ttl_seconds=end - now, ceiling=rule.limit)
        if not accepted:
            retry_after = max(int(math.ceil(end - now)), 1)
            logger.warning(f"Rate limit reached for {key}: {count}/{rule.limit}")
            raise RateLimitExceededError(
                f"{self.provider} allows {rule.limit} {rule.operation_class} requests per "
                f"{rule.period_seconds}s; retry in {retry_after}s",
                retry_after=retry_after,
            )

    async def _space(self, rule: RateLimitRule, op_class: str) -> None:
        key = store_key(self.provider, self.tenant_id, "rate", rule.operation_class, "last")
        async with self._lock():
            last = await self.store.get(key)
            now = self.clock()
            wait = 0.0
            if last is not None:
                wait = last.get("at", 0.0) + rule.min_interval_seconds - now
            if wait > 0:
                logger.debug(f"Spacing {op_class} call to {self.provider} by {wait:.2f}s")
                await self.sleep(wait)
            await self.store.set(
                key,
                {"at": now + max(wait, 0.0)},
                ttl_seconds=max(rule.min_interval_seconds * 2, 1.0),
            )

    async def windows(self, op_class: Optional[str] = None) -> List[RateLimitWindow]:
        """Current counters, for diagnostics."""
        now = self.clock()
        snapshots = []
        for rule in self.rules:
            if rule.limit <= 0 or (op_class and not rule.applies_to(op_class)):
                continue
            key, start, _ = self._window(rule, now)
            data = await self.store.get(key) or {}
            snapshots.append(RateLimitWindow(key, start, rule.period_seconds, data.get("count", 0), rule.limit))
        return snapshots
