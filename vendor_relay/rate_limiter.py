"""Per-vendor fixed-window rate limiting.

Each vendor owns one counter that lives for ``window`` seconds from its first
use. ``try_acquire`` increments and compares in one atomic step, so two
dispatchers sharing the counter store can never both slip past the threshold.
``await_acquire`` polls ``try_acquire`` until a slot frees up or the wait
bound is exhausted.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from vendor_relay.errors import RateLimiterError, RateLimitTimeout

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, max_requests: int, window: int):
        self.max_requests = max_requests
        self.window = window

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def try_acquire(self, vendor: str) -> bool:
        raise NotImplementedError

    async def current_count(self, vendor: str) -> int:
        raise NotImplementedError

    async def await_acquire(self, vendor: str, max_wait: float = 60.0, poll_interval: float = 1.0) -> None:
        """Block until a slot for ``vendor`` is acquired.

        Raises RateLimitTimeout once ``max_wait`` seconds have passed without a slot.
        """
        waited = 0.0
        while waited < max_wait:
            if await self.try_acquire(vendor):
                return
            logger.info(f"Rate limit reached for {vendor}, waiting...")
            await asyncio.sleep(poll_interval)
            waited += poll_interval

        raise RateLimitTimeout("rate limit wait timeout")

    async def get_stats(self, vendor: str) -> dict:
        return {
            "vendor": vendor,
            "current_count": await self.current_count(vendor),
            "limit": self.max_requests,
            "window_seconds": self.window,
        }


class RedisRateLimiter(RateLimiter):
    def __init__(
        self, url: str, key_prefix: str, max_requests: int, window: int, client: Optional[redis.Redis] = None
    ):
        super().__init__(max_requests, window)
        self.url = url
        self.key_prefix = key_prefix
        self.client = client

    def _key(self, vendor: str) -> str:
        return f"{self.key_prefix}:{vendor}"

    async def connect(self):
        if self.client is None:
            self.client = redis.from_url(self.url, decode_responses=True)

    async def disconnect(self):
        if self.client is not None:
            await self.client.aclose()

    async def try_acquire(self, vendor: str) -> bool:
        key = self._key(vendor)
        try:
            # MULTI/EXEC: the window is created with its TTL only if absent, then counted
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=self.window, nx=True)
                pipe.incr(key)
                _, count = await pipe.execute()
        except RedisError as e:
            logger.error(f"Error checking rate limit for {vendor}: {e}")
            raise RateLimiterError("Rate limit store unavailable") from e

        if int(count) > self.max_requests:
            logger.warning(f"Rate limit exceeded for vendor: {vendor}")
            return False
        return True

    async def current_count(self, vendor: str) -> int:
        try:
            value = await self.client.get(self._key(vendor))
        except RedisError as e:
            logger.error(f"Error reading rate limit for {vendor}: {e}")
            raise RateLimiterError("Rate limit store unavailable") from e
        return min(int(value or 0), self.max_requests)


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, max_requests: int, window: int, clock: Callable[[], float] = time.monotonic):
        super().__init__(max_requests, window)
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}  # vendor -> (expires_at, count)
        self._lock = asyncio.Lock()

    def _live_window(self, vendor: str, now: float) -> Optional[Tuple[float, int]]:
        window = self._windows.get(vendor)
        if window is None or window[0] <= now:
            return None
        return window

    async def try_acquire(self, vendor: str) -> bool:
        async with self._lock:
            now = self._clock()
            window = self._live_window(vendor, now)
            if window is None:
                self._windows[vendor] = (now + self.window, 1)
                return True

            expires_at, count = window
            if count >= self.max_requests:
                logger.warning(f"Rate limit exceeded for vendor: {vendor}")
                return False

            self._windows[vendor] = (expires_at, count + 1)
            return True

    async def current_count(self, vendor: str) -> int:
        window = self._live_window(vendor, self._clock())
        return window[1] if window else 0
