"""Per-domain politeness for page loads.

Every browser session of a crawl shares one limiter, so concurrent category
explorations against the same storefront are spaced out rather than burst.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Awaitable, Callable

from ..observability.logger import get_logger
from .validators import domain_of

logger = get_logger(__name__)


class DomainRateLimiter:
    """Spaces page loads against one domain at least ``1 / requests_per_second`` apart.

    Args:
        requests_per_second: Allowed page loads per second per domain. If <= 0, no limiting is applied.
        clock: Monotonic seconds source.
        sleep: Coroutine used to wait; replaced in tests.
    """

    def __init__(
        self,
        requests_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._next_slot: dict[str, float] = {}
        self.waited_s: dict[str, float] = defaultdict(float)

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    async def wait_for_slot(self, url: str) -> float:
        """Block until ``url``'s domain may be loaded again. Returns seconds waited."""
        domain = domain_of(url)
        if not self.enabled or not domain:
            return 0.0

        async with self._locks[domain]:
            delay = max(0.0, self._next_slot.get(domain, 0.0) - self._clock())
            if delay > 0:
                logger.debug("rate_limit_wait", domain=domain, delay_s=round(delay, 3))
                await self._sleep(delay)
                self.waited_s[domain] += delay
            self._next_slot[domain] = self._clock() + self._interval
        return delay
