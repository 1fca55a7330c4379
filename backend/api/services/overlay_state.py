"""Per-token overlay settings persisted in the keyed store"""

import json
import logging
from typing import Any

from core.store import KeyedStore

from .options import clamp_seconds, normalize_mode, normalize_stream_kind

logger = logging.getLogger(__name__)

DEFAULT_TTL = 24 * 60 * 60

_BOOL_FIELDS = ("auto", "voice", "friend")


def sanitize_patch(patch: Any) -> dict[str, Any]:
    """Keep only known fields with usable values"""
    if not isinstance(patch, dict):
        return {}

    clean: dict[str, Any] = {}
    if patch.get("mode"):
        clean["mode"] = normalize_mode(patch["mode"]).value
    seconds = clamp_seconds(patch.get("seconds"))
    if seconds is not None:
        clean["seconds"] = seconds
    for field in _BOOL_FIELDS:
        if isinstance(patch.get(field), bool):
            clean[field] = patch[field]
    if patch.get("streamKind"):
        clean["streamKind"] = normalize_stream_kind(patch["streamKind"]).value
    return clean


class OverlayStateService:
    """Shallow-merged settings blob per channel."""

    def __init__(self, store: KeyedStore, ttl_seconds: int = DEFAULT_TTL):
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(channel_id: str) -> str:
        return f"state:{channel_id}"

    async def get_state(self, channel_id: str) -> dict[str, Any]:
        raw = await self.store.get(self._key(channel_id))
        if not raw:
            return {}
        try:
            state = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding unreadable overlay state for {channel_id[:24]}")
            return {}
        return state if isinstance(state, dict) else {}

    async def update_state(self, channel_id: str, patch: Any) -> dict[str, Any]:
        state = await self.get_state(channel_id)
        state.update(sanitize_patch(patch))
        await self.store.set(self._key(channel_id), json.dumps(state), ex=self.ttl_seconds)
        return state
