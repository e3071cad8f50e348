"""Tests for sliding-window rate limiting.

Security: credential endpoints are throttled per IP or per email so tokens,
passcodes, and one-time codes cannot be brute forced.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st
from starlette.requests import Request as StarletteRequest

from guestgate.core.errors import RateLimitedError
from guestgate.core.rate_limiting import (
    INVITE_OTP_SEND_POLICY,
    MAGIC_LINK_POLICY,
    RESEND_MAGIC_LINK_POLICY,
    LimitsRateLimitStore,
    MemoryRateLimitStore,
    RateLimiter,
    RateLimitPolicy,
    create_rate_limit_store,
    rate_limit_exceeded_handler,
)
from tests.conftest import FakeClock

_POLICY = RateLimitPolicy("test:policy", 3, 60)


# ===================================================================
# Policies
# ===================================================================


class TestPolicies:
    """Tests for policy constants and key building."""

    def test_key_joins_prefix_and_identifier(self):
        assert MAGIC_LINK_POLICY.key_for("10.0.0.1") == "auth:magiclink:10.0.0.1"

    def test_policy_values(self):
        """Limits match the documented budgets."""
        assert (MAGIC_LINK_POLICY.max_requests, MAGIC_LINK_POLICY.window_seconds) == (
            5,
            600,
        )
        assert RESEND_MAGIC_LINK_POLICY.window_seconds == 3600
        assert INVITE_OTP_SEND_POLICY.max_requests == 3


# ===================================================================
# MemoryRateLimitStore
# ===================================================================


class TestMemoryRateLimitStore:
    """Tests for the in-process sliding window."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def store(self, clock: FakeClock) -> MemoryRateLimitStore:
        return MemoryRateLimitStore(clock=clock)

    async def _hit(self, store: MemoryRateLimitStore, key: str = "k"):
        return await store.increment(key, window_seconds=60, max_requests=3)

    @pytest.mark.asyncio
    async def test_allows_up_to_max_requests(self, store):
        states = [await self._hit(store) for _ in range(3)]
        assert [s.allowed for s in states] == [True, True, True]
        assert [s.count for s in states] == [1, 2, 3]
        assert all(s.retry_after == 0 for s in states)

    @pytest.mark.asyncio
    async def test_rejects_when_window_full(self, store):
        for _ in range(3):
            await self._hit(store)
        state = await self._hit(store)
        assert state.allowed is False
        assert state.count == 3

    @pytest.mark.asyncio
    async def test_retry_after_counts_down_to_oldest_expiry(self, store, clock):
        """retry_after = seconds until the oldest request leaves the window."""
        await self._hit(store)
        clock.advance(10)
        await self._hit(store)
        await self._hit(store)
        clock.advance(5)

        state = await self._hit(store)
        # Oldest at t=0 leaves at t=60; now t=15
        assert state.retry_after == 45

    @pytest.mark.asyncio
    async def test_retry_after_is_at_least_one(self, store, clock):
        for _ in range(3):
            await self._hit(store)
        clock.advance(59.9)
        state = await self._hit(store)
        assert state.allowed is False
        assert state.retry_after == 1

    @pytest.mark.asyncio
    async def test_slot_frees_exactly_at_window_boundary(self, store, clock):
        """A timestamp exactly ``window`` old no longer counts."""
        for _ in range(3):
            await self._hit(store)
        clock.advance(60)
        state = await self._hit(store)
        assert state.allowed is True
        assert state.count == 1

    @pytest.mark.asyncio
    async def test_window_slides_instead_of_resetting(self, store, clock):
        """Old requests leave one at a time, unlike a fixed window."""
        await self._hit(store)  # t=0
        clock.advance(30)
        await self._hit(store)  # t=30
        await self._hit(store)  # t=30
        clock.advance(31)  # t=61: only the t=0 entry has expired

        assert (await self._hit(store)).allowed is True
        assert (await self._hit(store)).allowed is False

    @pytest.mark.asyncio
    async def test_rejected_requests_are_not_recorded(self, store, clock):
        """Hammering while blocked does not extend the block."""
        for _ in range(3):
            await self._hit(store)
        for _ in range(10):
            await self._hit(store)
        clock.advance(60)
        assert (await self._hit(store)).allowed is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, store):
        for _ in range(3):
            await self._hit(store, "a")
        assert (await self._hit(store, "a")).allowed is False
        assert (await self._hit(store, "b")).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_increments_never_exceed_max(self, store):
        """The per-key check-and-append is atomic under concurrency."""
        states = await asyncio.gather(*(self._hit(store) for _ in range(20)))
        assert sum(s.allowed for s in states) == 3

    @pytest.mark.asyncio
    async def test_clear_drops_all_windows(self, store):
        for _ in range(3):
            await self._hit(store)
        store.clear()
        assert (await self._hit(store)).allowed is True

    @pytest.mark.asyncio
    async def test_idle_keys_are_evicted_after_their_window(self, store, clock):
        """Caller-chosen keys cannot grow the store without bound."""
        for i in range(10_000):
            await store.increment(
                INVITE_OTP_SEND_POLICY.key_for(f"hash-{i}"),
                window_seconds=INVITE_OTP_SEND_POLICY.window_seconds,
                max_requests=INVITE_OTP_SEND_POLICY.max_requests,
            )
        assert len(store) == 10_000

        clock.advance(10_000)
        await self._hit(store, "fresh")

        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_active_keys_survive_a_sweep(self, store, clock):
        await self._hit(store, "idle")
        clock.advance(50)
        for _ in range(3):
            await self._hit(store, "busy")
        clock.advance(15)  # t=65: sweep due, "idle" expired at t=60

        state = await self._hit(store, "busy")

        assert len(store) == 1
        assert state.allowed is False
        assert state.retry_after == 45


@hypothesis_settings(max_examples=100, deadline=None)
@given(
    gaps=st.lists(st.floats(min_value=0, max_value=40), min_size=1, max_size=60),
)
def test_no_window_ever_admits_more_than_max(gaps):
    """For any arrival pattern, no 60s span contains more than 3 admissions."""
    clock = FakeClock(start=0.0)
    store = MemoryRateLimitStore(clock=clock)
    admitted: list[float] = []

    async def run() -> None:
        for gap in gaps:
            clock.advance(gap)
            state = await store.increment("k", window_seconds=60, max_requests=3)
            if state.allowed:
                admitted.append(clock.now)

    asyncio.run(run())

    for i, start in enumerate(admitted):
        in_window = [t for t in admitted[i:] if t < start + 60]
        assert len(in_window) <= 3


# ===================================================================
# LimitsRateLimitStore
# ===================================================================


class TestLimitsRateLimitStore:
    """Tests for the limits-backed shared store (async memory backend)."""

    @pytest.mark.asyncio
    async def test_allows_then_rejects(self):
        store = LimitsRateLimitStore("async+memory://")
        states = [
            await store.increment("k", window_seconds=60, max_requests=2)
            for _ in range(3)
        ]
        assert [s.allowed for s in states] == [True, True, False]
        assert 1 <= states[2].retry_after <= 60

    def test_factory_picks_store_by_uri(self):
        assert type(create_rate_limit_store("memory://")) is MemoryRateLimitStore
        assert (
            type(create_rate_limit_store("async+memory://")) is LimitsRateLimitStore
        )


# ===================================================================
# RateLimiter
# ===================================================================


class TestRateLimiter:
    """Tests for policy enforcement."""

    @pytest.mark.asyncio
    async def test_raises_rate_limited_with_retry_after(self):
        limiter = RateLimiter(MemoryRateLimitStore(clock=FakeClock()))
        for _ in range(3):
            await limiter.check(_POLICY, "1.2.3.4")

        with pytest.raises(RateLimitedError) as exc_info:
            await limiter.check(_POLICY, "1.2.3.4")

        error = exc_info.value
        assert error.status_code == 429
        assert error.code == "RATE_LIMITED"
        assert error.details == [{"retry_after": 60}]
        assert error.headers == {"Retry-After": "60"}

    @pytest.mark.asyncio
    async def test_policies_do_not_share_counters(self):
        limiter = RateLimiter(MemoryRateLimitStore(clock=FakeClock()))
        other = RateLimitPolicy("test:other", 3, 60)
        for _ in range(3):
            await limiter.check(_POLICY, "id")
        state = await limiter.check(other, "id")
        assert state.allowed is True

    @pytest.mark.asyncio
    async def test_disabled_limiter_never_counts(self):
        store = MemoryRateLimitStore(clock=FakeClock())
        limiter = RateLimiter(store, enabled=False)
        for _ in range(10):
            await limiter.check(_POLICY, "id")
        limiter.enabled = True
        assert (await limiter.check(_POLICY, "id")).count == 1

    @pytest.mark.asyncio
    async def test_rejection_log_omits_identifier(self, caplog):
        """Identifiers can be emails; only the policy prefix is logged."""
        limiter = RateLimiter(MemoryRateLimitStore(clock=FakeClock()))
        for _ in range(3):
            await limiter.check(_POLICY, "someone@example.com")

        with pytest.raises(RateLimitedError):
            await limiter.check(_POLICY, "someone@example.com")

        assert "test:policy" in caplog.text
        assert "someone@example.com" not in caplog.text


# ===================================================================
# Global slowapi handler
# ===================================================================


def _request() -> StarletteRequest:
    return StarletteRequest({"type": "http", "method": "POST", "path": "/test"})


class TestRateLimitExceededHandler:
    """Tests for the slowapi 429 response."""

    def test_returns_429_error_envelope(self):
        exc = MagicMock()
        exc.detail = "300 per 1 minute"
        exc.limit.limit.get_expiry.return_value = 60

        response = rate_limit_exceeded_handler(_request(), exc)
        body = json.loads(response.body.decode())

        assert response.status_code == 429
        assert body["error"]["code"] == "RATE_LIMITED"
        assert "Rate limit exceeded" in body["error"]["message"]
        assert body["error"]["details"] == [{"retry_after": 60}]

    def test_retry_after_from_limit_window(self):
        exc = MagicMock()
        exc.detail = "5 per 10 minute"
        exc.limit.limit.get_expiry.return_value = 600

        response = rate_limit_exceeded_handler(_request(), exc)

        assert response.headers.get("Retry-After") == "600"

    def test_retry_after_falls_back_to_60(self):
        exc = MagicMock()
        exc.detail = None
        exc.limit = None

        response = rate_limit_exceeded_handler(_request(), exc)

        assert response.headers.get("Retry-After") == "60"
