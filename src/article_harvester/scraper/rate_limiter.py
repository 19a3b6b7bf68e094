"""In-process sliding window rate limiter keyed by domain.

Keeps a deque of request timestamps per domain and enforces optional
per-second and per-minute caps.  Waiters for the same domain are serialised
by a per-domain ``asyncio.Lock`` so two workers never claim the same slot;
different domains never block each other.

Typical usage::

    limiter = DomainRateLimiter(RateLimitConfig(requests_per_second=1))
    await limiter.wait_for_slot("example.com")
    response = await client.get(url)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

_SECOND: float = 1.0
_MINUTE: float = 60.0


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-domain request caps.  ``None`` disables a window.

    Attributes:
        requests_per_second: Maximum requests per domain in any 1-second window.
        requests_per_minute: Maximum requests per domain in any 60-second window.
    """

    requests_per_second: int | None = None
    requests_per_minute: int | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.requests_per_second or self.requests_per_minute)


class DomainRateLimiter:
    """Sliding window limiter shared by every worker of a batch.

    Args:
        config: Caps to enforce.
        clock: Monotonic time source (seconds).  Injected in tests.
        sleep: Coroutine used to wait.  Injected in tests.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._history: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _required_wait(self, key: str, now: float) -> float:
        """Return seconds to wait before *key* may issue another request."""
        history = self._history.get(key)
        if not history:
            return 0.0

        while history and history[0] <= now - _MINUTE:
            history.popleft()

        wait = 0.0
        per_minute = self.config.requests_per_minute
        if per_minute and len(history) >= per_minute:
            wait = max(wait, history[-per_minute] + _MINUTE - now)

        per_second = self.config.requests_per_second
        if per_second:
            recent = [t for t in history if t > now - _SECOND]
            if len(recent) >= per_second:
                wait = max(wait, recent[-per_second] + _SECOND - now)
        return wait

    async def wait_for_slot(self, domain: str) -> None:
        """Suspend until *domain* may issue a request, then record it."""
        if not self.config.enabled:
            return

        key = domain.lower()
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            while True:
                wait = self._required_wait(key, self._clock())
                if wait <= 0:
                    break
                logger.debug("harvester: rate limiting %s for %.2fs", key, wait)
                await self._sleep(wait)
            self._history.setdefault(key, deque()).append(self._clock())

    def request_count(self, domain: str) -> tuple[int, int]:
        """Return ``(last_second, last_minute)`` request counts for *domain*."""
        now = self._clock()
        history = self._history.get(domain.lower(), ())
        per_second = sum(1 for t in history if t > now - _SECOND)
        per_minute = sum(1 for t in history if t > now - _MINUTE)
        return per_second, per_minute

    def reset(self, domain: str | None = None) -> None:
        """Forget history for *domain*, or for every domain when ``None``."""
        if domain is None:
            self._history.clear()
        else:
            self._history.pop(domain.lower(), None)
