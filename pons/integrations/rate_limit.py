"""
Rate Limiting for provider adapters.

Process-wide, provider-keyed fixed-window quota tracking shared by every
outbound call site. Each key gets a counter that resets entirely when its
window elapses.
"""

from __future__ import annotations

import asyncio
import functools
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, NamedTuple, TypeVar

import structlog

from pons.kernel.errors import RateLimitExceededError
from pons.kernel.time import from_timestamp
from pons.monitoring.metrics import Metrics, get_metrics

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


class RateLimitPolicy(NamedTuple):
    """A provider quota: `max_requests` per `window_seconds`."""

    max_requests: int
    window_seconds: float


class RateLimitStatus(NamedTuple):
    """Read-only projection of a key's current window."""

    remaining: int
    reset_at: float  # Unix timestamp
    is_limited: bool

    @property
    def reset_time(self) -> datetime:
        return from_timestamp(self.reset_at)


@dataclass
class RateLimitRecord:
    count: int
    reset_at: float


# Documented provider quotas
RATE_LIMITS: dict[str, RateLimitPolicy] = {
    # Twitter API v2 (per app, per 15 minutes)
    "twitter_read": RateLimitPolicy(450, 15 * 60),
    "twitter_write": RateLimitPolicy(50, 15 * 60),
    # Instagram Graph API (per user, per hour)
    "instagram": RateLimitPolicy(200, 60 * 60),
    # LinkedIn API (per member, per day)
    "linkedin": RateLimitPolicy(100, 24 * 60 * 60),
    # Facebook Graph API (per app, per hour)
    "facebook": RateLimitPolicy(200, 60 * 60),
    # Plaid API (per item, per day)
    "plaid": RateLimitPolicy(100, 24 * 60 * 60),
    "openai": RateLimitPolicy(60, 60),
    "default": RateLimitPolicy(30, 60),
}

DEFAULT_RATE_LIMIT = RATE_LIMITS["default"]


class RateLimiter:
    """
    Fixed-window rate limiter keyed by provider.

    - `check_and_consume` is atomic across call sites: all record mutations
      happen under a single lock, so event-loop tasks and worker threads can
      share one instance.
    - Records are created lazily and removed by `cleanup()`, which a
      background sweep task runs every `cleanup_interval_seconds` once
      `start()` has been called.

    Example usage:
        limiter = RateLimiter()
        limiter.start()

        if limiter.check_and_consume("twitter", 450, 15 * 60):
            ...

        await limiter.close()
    """

    def __init__(
        self,
        *,
        cleanup_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        metrics: Metrics | None = None,
    ):
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._metrics = metrics or get_metrics()
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._cleanup_task: asyncio.Task | None = None

    def check_and_consume(self, key: str, max_requests: int, window_seconds: float) -> bool:
        """
        Consume one request from `key`'s window if the quota allows it.

        Returns:
            True if the request is allowed, False if the window is exhausted
        """
        now = self._clock()
        with self._lock:
            record = self._records.get(key)

            if record is None or now >= record.reset_at:
                self._records[key] = RateLimitRecord(count=1, reset_at=now + window_seconds)
                return True

            if record.count < max_requests:
                record.count += 1
                return True

        logger.debug("Rate limit denied", key=key, max_requests=max_requests)
        return False

    def status(self, key: str, max_requests: int, window_seconds: float) -> RateLimitStatus:
        """Current window state for `key`. Does not consume."""
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None or now >= record.reset_at:
                return RateLimitStatus(
                    remaining=max_requests,
                    reset_at=now + window_seconds,
                    is_limited=False,
                )
            remaining = max(0, max_requests - record.count)
            return RateLimitStatus(
                remaining=remaining,
                reset_at=record.reset_at,
                is_limited=remaining == 0,
            )

    async def wait_for_reset(self, key: str, max_requests: int, window_seconds: float) -> None:
        """Suspend the calling task until `key`'s window resets. No-op if not limited."""
        status = self.status(key, max_requests, window_seconds)
        if not status.is_limited:
            return

        wait_seconds = status.reset_at - self._clock()
        if wait_seconds > 0:
            logger.info("Rate limited, waiting for reset", key=key, wait_seconds=round(wait_seconds, 3))
            await asyncio.sleep(wait_seconds)

    async def acquire(self, key: str, policy: RateLimitPolicy, *, wait: bool = False) -> None:
        """
        Consult the limiter for one outbound call.

        Args:
            key: Rate limit key (usually the provider type)
            policy: Quota to enforce
            wait: Wait for the window to reset instead of failing fast

        Raises:
            RateLimitExceededError: If denied and `wait` is False
        """
        while not self.check_and_consume(key, policy.max_requests, policy.window_seconds):
            if not wait:
                status = self.status(key, policy.max_requests, policy.window_seconds)
                self._metrics.track_rate_limit_denial(key)
                raise RateLimitExceededError(key=key, reset_at=status.reset_at)
            await self.wait_for_reset(key, policy.max_requests, policy.window_seconds)

    def reset(self, key: str) -> None:
        """Reset rate limit for a key (admin function)."""
        with self._lock:
            self._records.pop(key, None)
        logger.info("Rate limit reset", key=key)

    def reset_all(self) -> None:
        with self._lock:
            self._records.clear()

    def cleanup(self) -> int:
        """Remove records whose window has fully elapsed. Returns the count removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, record in self._records.items() if now >= record.reset_at]
            for key in expired:
                del self._records[key]
        if expired:
            logger.debug("Rate limit records cleaned up", removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)

    def start(self) -> None:
        """Start the periodic cleanup sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def close(self) -> None:
        """Stop the sweep and drop all records."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self.reset_all()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            try:
                self.cleanup()
            except Exception as e:
                logger.error("Rate limit cleanup failed", error=str(e))


def rate_limited(
    policy: RateLimitPolicy,
    *,
    key: str | None = None,
    wait: bool = False,
) -> Callable[[F], F]:
    """
    Decorator adding rate limiting to async adapter methods.

    The decorated method's instance must expose `rate_limiter` and
    `provider_type`; the key defaults to the provider type so every call site
    of one provider shares a single quota.

    Usage:
        class TwitterAdapter(BaseAdapter):
            @rate_limited(RATE_LIMITS["twitter_read"])
            async def fetch_timeline(self): ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            limiter: RateLimiter = self.rate_limiter
            await limiter.acquire(key or self.provider_type, policy, wait=wait)
            return await func(self, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
