"""Overlay task pipeline: authorize, rate-limit, generate, de-duplicate, publish.

Only token and rate-limit failures reach the caller. Provider trouble
degrades to the static fallback lines and keyed-store trouble skips the
bookkeeping, so an overlay with a valid token always gets a line.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import StrEnum

from core.exceptions import RateLimited, TokenMissing

from .event_bus import EventBus, channel_for_token
from .events import TaskEvent
from .generator import LineGenerator
from .options import TaskOptions
from .prompts import FALLBACK_LINES, build_prompt
from .rate_limiter import RateLimiter
from .recency import RecencyWindow
from .similarity import pick_dissimilar
from .token_codec import TokenClaims, TokenCodec

logger = logging.getLogger(__name__)

FALLBACK_SAMPLE = 5
PING_RECENT_LIMIT = 10


class Via(StrEnum):
    GENERATED = "generated"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class TaskResult:
    line: str
    via: Via
    options: TaskOptions
    name: str = ""


@dataclass(frozen=True)
class PingResult:
    name: str
    recent: list[str] = field(default_factory=list)


class TaskService:
    """Runs the "next task" and "ping" requests for one overlay token."""

    def __init__(
        self,
        codec: TokenCodec,
        limiter: RateLimiter,
        recency: RecencyWindow,
        bus: EventBus,
        generator: LineGenerator | None = None,
        *,
        rate_limit: int = 20,
        recent_limit: int = 12,
        recent_keep: int = 24,
        attempts: int = 3,
        fallback_lines: list[str] | None = None,
        rng: random.Random | None = None,
    ):
        self.codec = codec
        self.limiter = limiter
        self.recency = recency
        self.bus = bus
        self.generator = generator
        self.rate_limit = rate_limit
        self.recent_limit = recent_limit
        self.recent_keep = recent_keep
        self.attempts = attempts
        self.fallback_lines = fallback_lines or FALLBACK_LINES
        self._rng = rng or random.Random()

    # ==================== Guards ====================

    def authorize(self, token: str | None) -> tuple[TokenClaims, str]:
        """Verify the token and derive its channel; raises ``Unauthorized``"""
        if not token:
            raise TokenMissing("Token missing")
        claims = self.codec.verify(token)
        return claims, channel_for_token(token)

    async def _enforce_rate_limit(self, channel_id: str) -> None:
        try:
            allowed, retry_after = await self.limiter.acquire(channel_id, self.rate_limit)
        except Exception as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {type(e).__name__}: {e}")
            return
        if not allowed:
            raise RateLimited(retry_after)

    async def _recent(self, channel_id: str, limit: int) -> list[str]:
        try:
            return await self.recency.recent(channel_id, limit)
        except Exception as e:
            logger.warning(f"Recency window unavailable: {type(e).__name__}: {e}")
            return []

    # ==================== Requests ====================

    async def ping(self, token: str | None) -> PingResult:
        claims, channel_id = self.authorize(token)
        await self._enforce_rate_limit(channel_id)
        recent = await self._recent(channel_id, PING_RECENT_LIMIT)
        return PingResult(name=claims.subject, recent=recent)

    async def next_task(self, token: str | None, options: TaskOptions) -> TaskResult:
        claims, channel_id = self.authorize(token)
        await self._enforce_rate_limit(channel_id)

        recent = await self._recent(channel_id, self.recent_limit)
        candidates = await self._generate_candidates(options, recent, claims.subject)

        line = pick_dissimilar(candidates, recent)
        via = Via.GENERATED
        if not line:
            line = self._pick_fallback(recent)
            via = Via.FALLBACK

        try:
            await self.recency.record(channel_id, line, keep=self.recent_keep)
        except Exception as e:
            logger.warning(f"Could not record recent line: {type(e).__name__}: {e}")

        event = TaskEvent(
            line=line,
            mode=options.mode.value,
            task_type=options.task_type.value,
            stream_kind=options.stream_kind.value,
            name=claims.subject or None,
        )
        try:
            await self.bus.publish(channel_id, event)
        except Exception as e:
            logger.warning(f"Could not publish task event: {type(e).__name__}: {e}")

        logger.info(f"Task for {claims.subject or '?'} via {via} ({options.mode}/{options.task_type})")
        return TaskResult(line=line, via=via, options=options, name=claims.subject)

    # ==================== Generation ====================

    async def _generate_candidates(
        self, options: TaskOptions, recent: list[str], name: str
    ) -> list[str]:
        if self.generator is None:
            return []

        prompt = build_prompt(
            options.mode,
            options.task_type,
            options.stream_kind,
            options.lang,
            recent=recent,
            name=name,
        )

        candidates: list[str] = []
        for attempt in range(1, self.attempts + 1):
            try:
                line = await self.generator.generate_line(prompt)
            except Exception as e:
                # First hard failure ends the run; the fallback pool takes over
                logger.warning(
                    f"Generation attempt {attempt}/{self.attempts} failed: {type(e).__name__}: {e}"
                )
                break
            if line:
                candidates.append(line)
        return candidates

    def _pick_fallback(self, recent: list[str]) -> str:
        shuffled = list(self.fallback_lines)
        self._rng.shuffle(shuffled)
        return pick_dissimilar(shuffled[:FALLBACK_SAMPLE], recent) or shuffled[0]
