"""Token-scoped overlay event bus.

Every overlay token maps to one channel. A channel has a bounded event
log in the keyed store (replayed to new subscribers) and, inside this
process, a set of live subscriber queues that receive every event
published after they opened.
"""

import asyncio
import hashlib
import logging
from collections import deque
from dataclasses import dataclass
from enum import StrEnum

from core.store import KeyedStore

from .events import AudienceEvent, MessageEvent, TaskEvent, dump_event, load_event

logger = logging.getLogger(__name__)

Event = TaskEvent | AudienceEvent | MessageEvent

DEFAULT_LOG_SIZE = 200
DEFAULT_TTL = 24 * 60 * 60
DEFAULT_REPLAY = 2
DEFAULT_KEEP_ALIVE = 15.0
DEFAULT_QUEUE_SIZE = 256


def channel_for_token(token: str) -> str:
    """Channel id derived from the raw token string; no decoding needed"""
    return "overlay:" + hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class KeepAlive:
    """Marker yielded when a subscription has been idle for a while"""


KEEP_ALIVE = KeepAlive()
_CLOSED = object()


class SubscriptionState(StrEnum):
    OPENING = "opening"
    STREAMING = "streaming"
    CLOSED = "closed"


class EventBus:
    """Publish events to a channel and fan them out to its subscribers."""

    def __init__(
        self,
        store: KeyedStore,
        log_size: int = DEFAULT_LOG_SIZE,
        ttl_seconds: int = DEFAULT_TTL,
        replay_count: int = DEFAULT_REPLAY,
        keep_alive: float = DEFAULT_KEEP_ALIVE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.store = store
        self.log_size = log_size
        self.ttl_seconds = ttl_seconds
        self.replay_count = replay_count
        self.keep_alive = keep_alive
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self._last_ts = 0

    @staticmethod
    def _log_key(channel_id: str) -> str:
        return f"bus:{channel_id}"

    # ==================== Publish ====================

    async def publish(self, channel_id: str, event: Event) -> Event:
        """Deliver to live subscribers, then append to the channel log.

        Returns the event as published (its ``ts`` may have been raised so
        timestamps never go backwards).
        """
        if event.ts < self._last_ts:
            event = event.model_copy(update={"ts": self._last_ts})
        self._last_ts = event.ts

        self._fan_out(channel_id, event)

        key = self._log_key(channel_id)
        await self.store.lpush(key, dump_event(event))
        await self.store.ltrim(key, 0, self.log_size - 1)
        await self.store.expire(key, self.ttl_seconds)

        logger.debug(f"Published {event.type} to {channel_id[:24]}")
        return event

    def _fan_out(self, channel_id: str, event: Event) -> None:
        for queue in self._subscribers.get(channel_id, ()):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Slow consumer: drop its oldest event rather than block the publisher
                queue.get_nowait()
                queue.put_nowait(event)
                logger.warning(f"Subscriber queue full on {channel_id[:24]}, dropped oldest event")

    # ==================== Log ====================

    async def recent(self, channel_id: str, count: int) -> list[Event]:
        """Up to ``count`` most recent logged events, oldest first"""
        if count <= 0:
            return []
        raw = await self.store.lrange(self._log_key(channel_id), 0, count - 1)
        events: list[Event] = []
        for item in reversed(raw):
            try:
                events.append(load_event(item))
            except ValueError as e:
                logger.warning(f"Skipping unreadable event on {channel_id[:24]}: {e}")
        return events

    # ==================== Subscribe ====================

    def subscribe(self, channel_id: str) -> "Subscription":
        """Create a subscription; use it as ``async with`` to open and close it"""
        return Subscription(self, channel_id)

    def subscriber_count(self, channel_id: str | None = None) -> int:
        if channel_id is not None:
            return len(self._subscribers.get(channel_id, ()))
        return sum(len(queues) for queues in self._subscribers.values())

    def _register(self, channel_id: str, queue: asyncio.Queue) -> None:
        self._subscribers.setdefault(channel_id, set()).add(queue)

    def _unregister(self, channel_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(channel_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[channel_id]


class Subscription:
    """One consumer's view of a channel: replay, then live events.

    Iterating yields events in publish order, with ``KEEP_ALIVE`` markers
    whenever nothing arrived for ``bus.keep_alive`` seconds. Iteration ends
    after ``close()``.
    """

    def __init__(self, bus: EventBus, channel_id: str):
        self.bus = bus
        self.channel_id = channel_id
        self.state = SubscriptionState.OPENING
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=bus.queue_size)
        self._replay: deque[Event] = deque()
        self._replayed_ids: set[str] = set()
        self._opened = False

    async def open(self) -> "Subscription":
        if self._opened:
            return self
        self._opened = True

        # Register before reading the log so nothing published meanwhile is lost
        self.bus._register(self.channel_id, self._queue)
        try:
            replay = await self.bus.recent(self.channel_id, self.bus.replay_count)
        except Exception as e:
            logger.warning(f"Replay unavailable for {self.channel_id[:24]}: {type(e).__name__}: {e}")
            replay = []

        self._replay.extend(replay)
        self._replayed_ids = {event.id for event in replay}
        if not self._replay:
            self.state = SubscriptionState.STREAMING
        return self

    def close(self) -> None:
        if self.state is SubscriptionState.CLOSED:
            return
        self.state = SubscriptionState.CLOSED
        self.bus._unregister(self.channel_id, self._queue)
        self._replay.clear()
        # Wake a consumer blocked on the queue
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event | KeepAlive:
        if not self._opened:
            await self.open()
        if self.state is SubscriptionState.CLOSED:
            raise StopAsyncIteration

        if self._replay:
            return self._replay.popleft()
        self.state = SubscriptionState.STREAMING

        while True:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=self.bus.keep_alive)
            except TimeoutError:
                return KEEP_ALIVE

            if item is _CLOSED or self.state is SubscriptionState.CLOSED:
                raise StopAsyncIteration
            if item.id in self._replayed_ids:
                # Already delivered through the replay
                self._replayed_ids.discard(item.id)
                continue
            return item
