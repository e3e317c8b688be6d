from __future__ import annotations

import asyncio
import logging
import random
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit

from ..errors import RetryBudgetExceeded

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class PolitenessGovernor:
    """
    Paces the crawl.

    - At most ``threads`` fetches in flight (one shared semaphore).
    - Before each dispatch the worker sleeps ``delay`` plus a random jitter
      in ``[0, jitter]``.
    - Failed URLs back off exponentially, ``base ** attempt`` capped at
      ``cap``; a URL failing more than ``max_retries`` times aborts the crawl,
      since repeated failure on one URL usually means the whole site is down.
    """

    def __init__(
        self,
        threads: int = 1,
        *,
        delay: float = 0.0,
        jitter: float = 0.0,
        max_retries: int = 5,
        backoff_base: float = 2.0,
        backoff_cap: float = 300.0,
        sleep: Optional[Sleeper] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if threads <= 0:
            raise ValueError("threads must be > 0")
        self.threads = threads
        self.delay = delay
        self.jitter = jitter
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._sleep: Sleeper = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._lock = threading.Lock()
        self._retries: Dict[str, int] = {}

    # ---- Pacing ----

    def dispatch_delay(self) -> float:
        if self.jitter > 0:
            return self.delay + self._rng.uniform(0, self.jitter)
        return self.delay

    @asynccontextmanager
    async def slot(self, url: str) -> AsyncIterator[None]:
        """Hold a fetch permit for ``url``. The politeness sleep happens before acquiring it."""
        wait = self.dispatch_delay()
        if wait > 0:
            logger.debug("Waiting %.2fs before %s (%s)", wait, url, urlsplit(url).netloc)
            await self._sleep(wait)
        if self._semaphore is None:
            # Created lazily so it binds to the running event loop.
            self._semaphore = asyncio.Semaphore(self.threads)
        async with self._semaphore:
            yield

    # ---- Backoff ----

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_base ** attempt, self.backoff_cap)

    def record_failure(self, url: str) -> float:
        """
        Count a failed attempt at ``url`` and return how long to wait before
        the next one. Raises RetryBudgetExceeded once the budget is spent.
        """
        with self._lock:
            attempts = self._retries.get(url, 0) + 1
            self._retries[url] = attempts
        if attempts > self.max_retries:
            raise RetryBudgetExceeded(
                f"max retries ({self.max_retries}) exceeded for {url}", url=url, attempts=attempts
            )
        return self.backoff_delay(attempts)

    def attempts(self, url: str) -> int:
        with self._lock:
            return self._retries.get(url, 0)

    async def backoff(self, delay: float) -> None:
        await self._sleep(delay)
