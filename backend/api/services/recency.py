"""Per-channel window of recently shown task lines"""

import logging

from core.store import KeyedStore

logger = logging.getLogger(__name__)

DEFAULT_KEEP = 24
DEFAULT_TTL = 12 * 60 * 60


class RecencyWindow:
    """Bounded, most-recent-first list of lines used for duplicate avoidance.

    Lines are stored exactly as shown; normalization only happens when
    scoring similarity.
    """

    def __init__(self, store: KeyedStore, ttl_seconds: int = DEFAULT_TTL):
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(channel_id: str) -> str:
        return f"recent:{channel_id}"

    async def record(self, channel_id: str, line: str, keep: int = DEFAULT_KEEP) -> None:
        key = self._key(channel_id)
        await self.store.lpush(key, line)
        await self.store.ltrim(key, 0, keep - 1)
        await self.store.expire(key, self.ttl_seconds)

    async def recent(self, channel_id: str, limit: int = 12) -> list[str]:
        if limit <= 0:
            return []
        return await self.store.lrange(self._key(channel_id), 0, limit - 1)
