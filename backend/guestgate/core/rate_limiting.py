"""Rate limiting for credential and invite endpoints.

Two layers:
- ``limiter`` (slowapi): coarse per-IP cap on every route
  (RATE_LIMIT_DEFAULT), the first line against floods.
- ``RateLimiter``: sliding-window policies on the endpoints that accept or
  issue credentials. Keys have the form ``prefix:identifier`` where the
  identifier is the client IP, or the normalized email for flows where an
  IP key would let one address be mail-bombed from many hosts.

Sliding window algorithm (per key):
    1. Drop timestamps older than ``now - window``
    2. If ``count >= max_requests`` reject, with ``retry_after`` = seconds
       until the oldest remaining timestamp leaves the window
    3. Otherwise record ``now`` and allow

Usage in routers:
    @router.post(
        "/login",
        dependencies=[Depends(limit_by_client_ip(MAGIC_LINK_POLICY))],
    )
    async def login(...):
        ...
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request, Response
from limits import RateLimitItemPerSecond
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from guestgate.core.config import settings
from guestgate.core.errors import RateLimitedError

logger = logging.getLogger(__name__)

_MEMORY_STORAGE_URI = "memory://"

_SWEEP_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named sliding-window limit.

    Attributes:
        prefix: Key namespace (e.g., "auth:magiclink").
        max_requests: Requests allowed inside one window.
        window_seconds: Window length in seconds.
    """

    prefix: str
    max_requests: int
    window_seconds: int

    def key_for(self, identifier: str) -> str:
        """Build the store key for one caller."""
        return f"{self.prefix}:{identifier}"


# Magic link issuance (register, login): per IP
MAGIC_LINK_POLICY = RateLimitPolicy("auth:magiclink", 5, 600)
# Code/token verification (magic link verify, invite OTP verify): per IP
OTP_VERIFY_POLICY = RateLimitPolicy("auth:otpverify", 10, 600)
# Resend magic link: per email, counted whether or not the account exists
RESEND_MAGIC_LINK_POLICY = RateLimitPolicy("auth:resend", 3, 3600)
# Invite validation (passcode guessing): per IP
INVITE_VALIDATE_POLICY = RateLimitPolicy("invite:validate", 20, 600)
# Invite OTP issuance (email cost, inbox flooding): per invite
INVITE_OTP_SEND_POLICY = RateLimitPolicy("invite:otpsend", 3, 600)


@dataclass(frozen=True)
class WindowState:
    """Outcome of one counted request.

    Attributes:
        allowed: Whether the request fits in the window.
        count: Requests in the window after this one was counted
            (or the full count when rejected).
        retry_after: Seconds until a slot frees up. 0 when allowed.
    """

    allowed: bool
    count: int
    retry_after: int


class RateLimitStore(ABC):
    """Storage backend for sliding-window counters.

    Implementations must make the prune-check-append sequence atomic per key.
    """

    @abstractmethod
    async def increment(
        self,
        key: str,
        *,
        window_seconds: int,
        max_requests: int,
    ) -> WindowState:
        """Count one request against ``key`` if it fits in the window."""


class MemoryRateLimitStore(RateLimitStore):
    """Process-local store: one deque of timestamps per key.

    Single-process only; every worker keeps its own windows. Use
    LimitsRateLimitStore with a shared backend when running more than one
    instance.

    Identifiers come from callers (emails, token hashes), so keys whose
    newest timestamp has left its window are swept out, at most once every
    ``sweep_interval`` seconds.

    Args:
        clock: Monotonic seconds source. Injectable for tests.
        sweep_interval: Minimum seconds between sweeps of idle keys.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = _SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._windows: dict[str, deque[float]] = {}
        self._expires_at: dict[str, float] = {}
        self._next_sweep = clock() + sweep_interval
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        idle = [key for key, expires in self._expires_at.items() if expires <= now]
        for key in idle:
            del self._windows[key]
            del self._expires_at[key]
        self._next_sweep = now + self._sweep_interval

    async def increment(
        self,
        key: str,
        *,
        window_seconds: int,
        max_requests: int,
    ) -> WindowState:
        async with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)

            window = self._windows.setdefault(key, deque())
            cutoff = now - window_seconds
            while window and window[0] <= cutoff:
                window.popleft()

            if len(window) >= max_requests:
                retry_after = math.ceil(window[0] + window_seconds - now)
                return WindowState(
                    allowed=False,
                    count=len(window),
                    retry_after=max(1, retry_after),
                )

            window.append(now)
            self._expires_at[key] = now + window_seconds
            return WindowState(allowed=True, count=len(window), retry_after=0)

    def clear(self) -> None:
        """Drop every window."""
        self._windows.clear()
        self._expires_at.clear()


class LimitsRateLimitStore(RateLimitStore):
    """Shared store backed by the ``limits`` moving-window strategy.

    Args:
        storage_uri: Async limits storage URI, e.g. "async+redis://host:6379"
            or "async+memory://".
    """

    def __init__(self, storage_uri: str) -> None:
        self._strategy = MovingWindowRateLimiter(storage_from_string(storage_uri))

    async def increment(
        self,
        key: str,
        *,
        window_seconds: int,
        max_requests: int,
    ) -> WindowState:
        item = RateLimitItemPerSecond(max_requests, window_seconds)
        allowed = await self._strategy.hit(item, key)
        stats = await self._strategy.get_window_stats(item, key)
        if allowed:
            return WindowState(
                allowed=True,
                count=max_requests - stats.remaining,
                retry_after=0,
            )
        retry_after = math.ceil(stats.reset_time - time.time())
        return WindowState(
            allowed=False,
            count=max_requests,
            retry_after=min(window_seconds, max(1, retry_after)),
        )


def create_rate_limit_store(storage_uri: str) -> RateLimitStore:
    """Pick the store implementation for a storage URI."""
    if storage_uri == _MEMORY_STORAGE_URI:
        return MemoryRateLimitStore()
    return LimitsRateLimitStore(storage_uri)


class RateLimiter:
    """Applies RateLimitPolicy objects against a RateLimitStore.

    Args:
        store: Counter backend.
        enabled: When False every check passes without counting.
    """

    def __init__(self, store: RateLimitStore, *, enabled: bool = True) -> None:
        self.store = store
        self.enabled = enabled

    async def check(self, policy: RateLimitPolicy, identifier: str) -> WindowState:
        """Count one request for ``identifier`` under ``policy``.

        Args:
            policy: Limit to apply.
            identifier: Caller key (client IP, normalized email, invite id).

        Returns:
            WindowState for the counted request.

        Raises:
            RateLimitedError: If the window is full.
        """
        if not self.enabled:
            return WindowState(allowed=True, count=0, retry_after=0)

        state = await self.store.increment(
            policy.key_for(identifier),
            window_seconds=policy.window_seconds,
            max_requests=policy.max_requests,
        )
        if not state.allowed:
            # Identifier may be an email; log the policy only
            logger.warning(
                "Rate limit exceeded for %s (retry after %ss)",
                policy.prefix,
                state.retry_after,
            )
            raise RateLimitedError(state.retry_after)
        return state


rate_limiter = RateLimiter(
    create_rate_limit_store(settings.rate_limit_storage_uri),
    enabled=settings.rate_limit_enabled,
)


def get_rate_limiter() -> RateLimiter:
    """Dependency that provides the process-wide RateLimiter."""
    return rate_limiter


def limit_by_client_ip(
    policy: RateLimitPolicy,
) -> Callable[..., Awaitable[None]]:
    """Build a route dependency that counts the request per client IP.

    Args:
        policy: Limit to apply.

    Returns:
        Async dependency raising RateLimitedError when the window is full.
    """

    async def _check_client_ip(
        request: Request,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        await limiter.check(policy, get_remote_address(request))

    return _check_client_ip


# =============================================================================
# Global per-IP cap (slowapi)
# =============================================================================

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle global rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Window length of the exceeded limit; fallback to 60 seconds
    try:
        retry_after = int(exc.limit.limit.get_expiry())
    except (AttributeError, TypeError, ValueError):
        retry_after = 60

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
                "details": [{"retry_after": retry_after}],
            }
        },
        headers={"Retry-After": str(retry_after)},
    )
