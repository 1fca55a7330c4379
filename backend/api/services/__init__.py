"""Services layer

Overlay tokens, task generation and the per-token event bus. Services take
their collaborators in the constructor; ``core.dependencies`` wires them.
"""

from .event_bus import EventBus, Subscription, channel_for_token
from .generator import LineGenerator, OpenAILineGenerator
from .overlay_state import OverlayStateService
from .rate_limiter import RateLimiter
from .recency import RecencyWindow
from .task_service import PingResult, TaskResult, TaskService, Via
from .token_codec import TokenClaims, TokenCodec

__all__ = [
    "EventBus",
    "LineGenerator",
    "OpenAILineGenerator",
    "OverlayStateService",
    "PingResult",
    "RateLimiter",
    "RecencyWindow",
    "Subscription",
    "TaskResult",
    "TaskService",
    "TokenClaims",
    "TokenCodec",
    "Via",
    "channel_for_token",
]
