"""In-process keyed store with per-key expiry.

Uses cachetools.TLRUCache for zero-infrastructure storage of channel
state (recency buffers, rate counters, event logs, overlay settings).
The operation set mirrors the Redis primitives the services rely on:
single-key get/set/incr/expire plus list prepend/trim/range. Every
operation touches exactly one key, so a network-backed implementation of
``KeyedStore`` can replace ``MemoryStore`` without changing callers.

Like Redis, ``incr`` and ``lpush`` create keys without an expiry and
keep an existing expiry untouched; only ``set(ex=...)`` and ``expire``
change it.
"""

import logging
import math
import time
from collections.abc import Callable
from typing import Any, Protocol

from cachetools import TLRUCache  # type: ignore[import-untyped]

from core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


class KeyedStore(Protocol):
    """Async single-key operations shared by all channel state."""

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, ex: int | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, seconds: float) -> bool: ...

    async def ttl(self, key: str) -> int: ...

    async def lpush(self, key: str, *values: str) -> int: ...

    async def ltrim(self, key: str, start: int, stop: int) -> None: ...

    async def lrange(self, key: str, start: int, stop: int) -> list[str]: ...


class _Entry:
    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float = math.inf):
        self.value = value
        self.expires_at = expires_at


def _entry_ttu(_key: str, entry: _Entry, _now: float) -> float:
    return entry.expires_at


def _redis_slice(start: int, stop: int) -> slice:
    """Translate an inclusive Redis range into a Python slice."""
    return slice(start, None if stop == -1 else stop + 1)


class MemoryStore:
    """Async-facing keyed store held in a single process.

    ``timer`` is the clock used for expiry; tests pass a fake one to move
    time forward without sleeping.
    """

    def __init__(self, maxsize: int = 100_000, timer: Callable[[], float] = time.monotonic):
        self._timer = timer
        self._data: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_entry_ttu, timer=timer)

    # --- internals ---

    def _entry(self, key: str) -> _Entry | None:
        return self._data.get(key)

    def _list_entry(self, key: str, create: bool = False) -> _Entry | None:
        entry = self._entry(key)
        if entry is None:
            if not create:
                return None
            entry = _Entry([])
            self._data[key] = entry
        if not isinstance(entry.value, list):
            raise StoreUnavailable("WRONGTYPE operation against a non-list key", key=key)
        return entry

    # --- strings / counters ---

    async def get(self, key: str) -> Any:
        entry = self._entry(key)
        return None if entry is None else entry.value

    async def set(self, key: str, value: Any, ex: int | None = None) -> None:
        expires_at = self._timer() + ex if ex and ex > 0 else math.inf
        self._data[key] = _Entry(value, expires_at)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def incr(self, key: str) -> int:
        entry = self._entry(key)
        if entry is None:
            entry = _Entry(0)
            self._data[key] = entry
        if not isinstance(entry.value, int):
            raise StoreUnavailable("value is not an integer", key=key)
        entry.value += 1
        return entry.value

    # --- expiry ---

    async def expire(self, key: str, seconds: float) -> bool:
        entry = self._entry(key)
        if entry is None:
            return False
        if seconds <= 0:
            self._data.pop(key, None)
            return True
        entry.expires_at = self._timer() + seconds
        # TLRUCache computes expiry on insert, so re-insert to apply it
        self._data[key] = entry
        return True

    async def ttl(self, key: str) -> int:
        """Seconds left, -1 for no expiry, -2 for a missing key."""
        entry = self._entry(key)
        if entry is None:
            return -2
        if entry.expires_at == math.inf:
            return -1
        return max(0, math.ceil(entry.expires_at - self._timer()))

    # --- lists ---

    async def lpush(self, key: str, *values: str) -> int:
        entry = self._list_entry(key, create=True)
        assert entry is not None
        for value in values:
            entry.value.insert(0, value)
        return len(entry.value)

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        entry = self._list_entry(key)
        if entry is None:
            return
        entry.value[:] = entry.value[_redis_slice(start, stop)]
        if not entry.value:
            self._data.pop(key, None)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        entry = self._list_entry(key)
        if entry is None:
            return []
        return list(entry.value[_redis_slice(start, stop)])

    @property
    def size(self) -> int:
        return len(self._data)
