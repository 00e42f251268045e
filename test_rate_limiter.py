"""
Rate Limiter Tests

Budgets are enforced before anything goes over the wire:
1. The call past the window budget fails locally with retry_after
2. Windows reset when the clock moves into the next bucket
3. Read and write budgets are counted separately
4. Minimum spacing sleeps instead of failing
"""

import asyncio

import pytest

from conftest import FakeClock, json_response
from core.models.results import ResultKind
from core.security.credential_store import InMemoryCredentialStore
from drivers.errors import RateLimitExceededError
from drivers.rate_limit import RateLimiter, RateLimitRule, operation_class


def make_limiter(rules, clock=None):
    clock = clock or FakeClock(start=1_760_000_000.0)
    store = InMemoryCredentialStore(clock=clock.time)
    return RateLimiter("entegra", "eczane-42", store, rules, clock=clock.time, sleep=clock.sleep), clock


class TestOperationClass:
    """Method classification."""

    def test_reads_and_writes(self):
        assert operation_class("GET") == "get"
        assert operation_class("head") == "get"
        assert operation_class("POST") == "post"
        assert operation_class("DELETE") == "post"


class TestWindowBudget:
    """Fixed-window counting."""

    def test_call_past_budget_rejected(self):
        """The N+1th call raises with the time left in the window."""
        limiter, clock = make_limiter([RateLimitRule(limit=3, period_seconds=60)])

        async def run():
            for _ in range(3):
                await limiter.acquire("GET")
            await limiter.acquire("POST")

        with pytest.raises(RateLimitExceededError) as excinfo:
            asyncio.run(run())
        assert 1 <= excinfo.value.retry_after <= 60

    def test_window_resets(self):
        """A new window starts with a fresh budget."""
        limiter, clock = make_limiter([RateLimitRule(limit=1, period_seconds=60)])

        async def run():
            await limiter.acquire("GET")
            clock.advance(60)
            await limiter.acquire("GET")
            return await limiter.windows()

        windows = asyncio.run(run())
        assert windows[0].count == 1
        assert windows[0].remaining == 0

    def test_hourly_bucket_key(self):
        """Hourly windows are keyed by hour."""
        limiter, _ = make_limiter([RateLimitRule(limit=5000, period_seconds=3600)])

        async def run():
            await limiter.acquire("GET")
            return await limiter.windows()

        window = asyncio.run(run())[0]
        assert window.key.startswith("entegra:eczane-42:rate:all:")
        assert len(window.key.rsplit(":", 1)[1]) == len("2025-10-09-19")

    def test_get_and_post_counted_separately(self):
        """Spending the read budget leaves writes available."""
        limiter, _ = make_limiter([
            RateLimitRule(limit=1, period_seconds=60, operation_class="get"),
            RateLimitRule(limit=1, period_seconds=60, operation_class="post"),
        ])

        async def run():
            await limiter.acquire("GET")
            await limiter.acquire("POST")
            await limiter.acquire("GET")

        with pytest.raises(RateLimitExceededError):
            asyncio.run(run())

    def test_tenants_isolated(self):
        """Another tenant's budget is untouched."""
        clock = FakeClock()
        store = InMemoryCredentialStore(clock=clock.time)
        rules = [RateLimitRule(limit=1, period_seconds=60)]
        first = RateLimiter("entegra", "t1", store, rules, clock=clock.time)
        second = RateLimiter("entegra", "t2", store, rules, clock=clock.time)

        async def run():
            await first.acquire("GET")
            await second.acquire("GET")

        asyncio.run(run())


class TestSpacing:
    """Minimum interval between calls."""

    def test_second_call_waits(self):
        """Back-to-back calls are spaced by sleeping."""
        limiter, clock = make_limiter([RateLimitRule(limit=0, period_seconds=60, min_interval_seconds=0.5)])

        async def run():
            await limiter.acquire("GET")
            await limiter.acquire("GET")
            clock.advance(2)
            await limiter.acquire("GET")

        asyncio.run(run())
        assert clock.sleeps == [pytest.approx(0.5)]

    def test_contended_spacing_across_event_loops(self):
        """A limiter reused by a later asyncio.run still serializes spacing."""
        clock = FakeClock()
        store = InMemoryCredentialStore(clock=clock.time)

        async def yielding_sleep(seconds):
            clock.sleeps.append(seconds)
            clock.advance(seconds)
            await asyncio.sleep(0)

        limiter = RateLimiter(
            "dopigo", "eczane-42", store,
            [RateLimitRule(limit=0, period_seconds=60, min_interval_seconds=0.5)],
            clock=clock.time, sleep=yielding_sleep,
        )

        async def burst():
            await asyncio.gather(*(limiter.acquire("GET") for _ in range(3)))

        asyncio.run(burst())
        clock.advance(10)
        asyncio.run(burst())

        assert len(clock.sleeps) == 4


class TestDriverRateLimits:
    """Budgets enforced inside driver operations."""

    def test_sentos_third_read_rejected_without_request(self, make_driver):
        """Sentos allows two reads per minute; the third never reaches the transport."""
        driver = make_driver("sentos", username="u", password="p")
        driver.transport.queue(json_response([{"id": 1}]), json_response([{"id": 1}]))

        async def run():
            return [await driver.test_connection() for _ in range(3)]

        results = asyncio.run(run())
        assert [r.kind for r in results] == [
            ResultKind.SUCCESS,
            ResultKind.SUCCESS,
            ResultKind.RATE_LIMIT_EXCEEDED,
        ]
        assert results[2].retry_after is not None
        assert len(driver.transport.requests) == 2

    def test_dopigo_requests_spaced(self, make_driver, clock):
        """Dopigo calls are at least half a second apart."""
        driver = make_driver("dopigo", username="u", password="p")
        driver.transport.queue(
            json_response({"token": "tok"}),
            json_response({"count": 0, "results": []}),
        )

        result = asyncio.run(driver.test_connection())

        assert result.success
        assert clock.sleeps == [pytest.approx(0.5)]
        assert driver.transport.requests[1].headers["Authorization"] == "Token tok"
