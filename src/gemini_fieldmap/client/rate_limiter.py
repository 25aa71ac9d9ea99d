"""Admission control for remote classification calls.

Three rules apply at once:

- rate ceiling: at most ``requests_per_minute`` admissions in any rolling
  ``window_seconds`` window;
- concurrency ceiling: at most ``concurrent_requests`` tokens in flight;
- batch spacing: a release that happens while callers are queued (or while
  the concurrency ceiling was reached) holds the next admission back for
  ``batch_delay_ms``.

The limiter lives on a single event loop. Admission and release are
synchronous sections with no await inside, so counters change atomically
with respect to other coroutines. A pending ``acquire`` mutates nothing
until the moment it is admitted, which makes abandoning it safe.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
import itertools
import logging
import time

from gemini_fieldmap.core.exceptions import RateLimitTimeout
from gemini_fieldmap.core.models import (
    DEFAULT_BATCH_DELAY_MS,
    DEFAULT_CONCURRENT_REQUESTS,
    DEFAULT_REQUESTS_PER_MINUTE,
    RATE_LIMIT_WINDOW_SECONDS,
)

log = logging.getLogger(__name__)

_token_ids = itertools.count(1)


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting parameters for remote classification calls."""

    requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE
    concurrent_requests: int = DEFAULT_CONCURRENT_REQUESTS
    batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS
    window_seconds: float = RATE_LIMIT_WINDOW_SECONDS

    def __post_init__(self) -> None:
        """Reject limits that could never admit a call."""
        if self.requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        if self.concurrent_requests < 1:
            raise ValueError("concurrent_requests must be >= 1")
        if self.batch_delay_ms < 0:
            raise ValueError("batch_delay_ms must be >= 0")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

    @property
    def batch_delay_seconds(self) -> float:
        """Batch spacing expressed in seconds."""
        return self.batch_delay_ms / 1000.0


@dataclass(eq=False)
class RateLimiterToken:
    """Permit for one in-flight call, owned by whoever acquired it."""

    acquired_at: float
    id: int = field(default_factory=lambda: next(_token_ids))
    released: bool = False


class RateLimiter:
    """Async limiter enforcing rate, concurrency and spacing rules."""

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a limiter.

        Args:
            config: Limits to enforce; defaults match the extension settings.
            clock: Monotonic clock in seconds.
        """
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._admissions: deque[float] = deque()
        self._in_flight = 0
        self._waiting = 0
        self._next_admit_at = 0.0
        self._changed = asyncio.Event()

    @property
    def in_flight(self) -> int:
        """Number of tokens currently held."""
        return self._in_flight

    async def acquire(self, timeout: float | None = None) -> RateLimiterToken:
        """Wait for a permit under all three rules.

        Args:
            timeout: Optional upper bound in seconds on the wait.

        Raises:
            RateLimitTimeout: If ``timeout`` elapses before admission.
        """
        if timeout is None:
            return await self._acquire()
        try:
            async with asyncio.timeout(max(timeout, 0.0)):
                return await self._acquire()
        except TimeoutError as e:
            raise RateLimitTimeout(
                f"no rate-limit permit within {timeout:.3f}s"
            ) from e

    def release(self, token: RateLimiterToken) -> None:
        """Return a permit; releasing the same token twice is a no-op."""
        if token.released:
            return
        token.released = True
        saturated = self._in_flight >= self.config.concurrent_requests
        self._in_flight -= 1
        if self._waiting or saturated:
            # Smooth bursts: the next queued caller waits out the batch delay.
            self._next_admit_at = max(
                self._next_admit_at,
                self._clock() + self.config.batch_delay_seconds,
            )
        self._changed.set()

    @asynccontextmanager
    async def slot(self, timeout: float | None = None) -> AsyncIterator[RateLimiterToken]:
        """Context manager pairing ``acquire`` with exactly one ``release``."""
        token = await self.acquire(timeout)
        try:
            yield token
        finally:
            self.release(token)

    def status(self) -> dict[str, float | int]:
        """Snapshot of the limiter state for diagnostics."""
        self._evict(self._clock())
        return {
            "queue_length": self._waiting,
            "in_flight": self._in_flight,
            "requests_in_window": len(self._admissions),
            "requests_per_minute": self.config.requests_per_minute,
            "concurrent_requests": self.config.concurrent_requests,
            "batch_delay_ms": self.config.batch_delay_ms,
        }

    # --- Internal helpers ---

    async def _acquire(self) -> RateLimiterToken:
        self._waiting += 1
        try:
            while True:
                admitted = self._try_admit()
                if isinstance(admitted, RateLimiterToken):
                    return admitted
                self._changed.clear()
                if admitted is None:
                    # Concurrency ceiling: only a release can help.
                    await self._changed.wait()
                    continue
                log.debug("Rate limiter holding caller for %.3fs", admitted)
                with suppress(TimeoutError):
                    async with asyncio.timeout(admitted):
                        await self._changed.wait()
        finally:
            self._waiting -= 1

    def _try_admit(self) -> RateLimiterToken | float | None:
        """Admit now, or report why not.

        Returns a token on admission, None when the concurrency ceiling is
        reached, or the number of seconds until the rate/spacing rules can be
        satisfied.
        """
        now = self._clock()
        self._evict(now)
        if self._in_flight >= self.config.concurrent_requests:
            return None
        wait = 0.0
        if len(self._admissions) >= self.config.requests_per_minute:
            wait = self._admissions[0] + self.config.window_seconds - now
        wait = max(wait, self._next_admit_at - now)
        if wait > 0:
            return wait
        self._admissions.append(now)
        self._in_flight += 1
        return RateLimiterToken(acquired_at=now)

    def _evict(self, now: float) -> None:
        window = self.config.window_seconds
        while self._admissions and now - self._admissions[0] >= window:
            self._admissions.popleft()
