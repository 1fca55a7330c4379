"""Fixed-window request limiter backed by the keyed store"""

import logging
import time
from collections.abc import Callable

from core.store import KeyedStore

logger = logging.getLogger(__name__)

# Counter outlives its window a little so the bucket clears itself
EXPIRY_GRACE_SECONDS = 10


class RateLimiter:
    """Per-channel counter scoped to the current window (UTC minute by default).

    The counter is only ever incremented and is reset by key expiry. The
    increment and the expiry are separate calls; if the expiry is lost the
    bucket key still changes with the next window, so enforcement can only
    undercount.
    """

    def __init__(
        self,
        store: KeyedStore,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.window_seconds = window_seconds
        self._clock = clock

    def _bucket_key(self, channel_id: str) -> tuple[str, int]:
        now = self._clock()
        window = int(now // self.window_seconds)
        remaining = self.window_seconds - int(now % self.window_seconds)
        return f"rate:{channel_id}:{window}", remaining

    async def try_acquire(self, channel_id: str, limit_per_window: int) -> bool:
        """Count one request; False once the window's limit is exceeded"""
        allowed, _ = await self.acquire(channel_id, limit_per_window)
        return allowed

    async def acquire(self, channel_id: str, limit_per_window: int) -> tuple[bool, int]:
        """Like ``try_acquire`` but also return seconds until the window resets"""
        key, remaining = self._bucket_key(channel_id)
        count = await self.store.incr(key)
        if count == 1:
            await self.store.expire(key, self.window_seconds + EXPIRY_GRACE_SECONDS)

        if count > limit_per_window:
            logger.debug(f"Rate limit hit for {channel_id[:24]}: {count}/{limit_per_window}")
            return False, max(1, remaining)
        return True, 0
