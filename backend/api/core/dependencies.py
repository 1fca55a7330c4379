"""Dependency injection utilities for FastAPI

Services are built once per application by ``build_services`` and kept on
``app.state.services``; route dependencies read them from the request.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from core.config import Settings
from core.exceptions import TokenMissing, Unauthorized
from core.store import KeyedStore, MemoryStore
from services import (
    EventBus,
    LineGenerator,
    OpenAILineGenerator,
    OverlayStateService,
    RateLimiter,
    RecencyWindow,
    TaskService,
    TokenClaims,
    TokenCodec,
    channel_for_token,
)

logger = logging.getLogger(__name__)


# ============================================
# Service Container
# ============================================


@dataclass
class ServiceContainer:
    """Everything a request handler may need, owned by the app lifespan."""

    settings: Settings
    store: KeyedStore
    codec: TokenCodec
    bus: EventBus
    tasks: TaskService
    state: OverlayStateService
    generator: LineGenerator | None = None

    async def close(self) -> None:
        close = getattr(self.generator, "close", None)
        if close is not None:
            await close()


def build_services(
    settings: Settings,
    store: KeyedStore | None = None,
    generator: LineGenerator | None = None,
) -> ServiceContainer:
    """Construct the service graph; pass ``store``/``generator`` to override"""
    if store is None:
        store = MemoryStore(maxsize=settings.store_max_keys)

    if generator is None and settings.generation_enabled:
        generator = OpenAILineGenerator(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.generation_timeout,
        )
    if generator is None:
        logger.warning("No generation provider configured, overlay will use fallback lines")

    codec = TokenCodec(secret_key=settings.overlay_secret)
    bus = EventBus(
        store,
        log_size=settings.bus_log_size,
        ttl_seconds=settings.bus_ttl_seconds,
        replay_count=settings.bus_replay_count,
        keep_alive=settings.stream_keep_alive,
    )
    tasks = TaskService(
        codec,
        RateLimiter(store),
        RecencyWindow(store, ttl_seconds=settings.recent_ttl_seconds),
        bus,
        generator,
        rate_limit=settings.rate_limit_per_minute,
        recent_limit=settings.recent_limit,
        recent_keep=settings.recent_keep,
        attempts=settings.generation_attempts,
    )
    state = OverlayStateService(store, ttl_seconds=settings.state_ttl_seconds)

    return ServiceContainer(
        settings=settings,
        store=store,
        codec=codec,
        bus=bus,
        tasks=tasks,
        state=state,
        generator=generator,
    )


# ============================================
# Service Dependencies
# ============================================


def get_services(request: Request) -> ServiceContainer:
    services: ServiceContainer | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services


def get_token_codec(request: Request) -> TokenCodec:
    return get_services(request).codec


def get_event_bus(request: Request) -> EventBus:
    return get_services(request).bus


def get_task_service(request: Request) -> TaskService:
    return get_services(request).tasks


def get_state_service(request: Request) -> OverlayStateService:
    return get_services(request).state


# ============================================
# Token Helpers
# ============================================


def bearer_token(authorization: str | None) -> str:
    """Token from an ``Authorization: Bearer`` header, or empty"""
    if not authorization:
        return ""
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return value.strip()


def resolve_token(request: Request, *fallbacks: object) -> str:
    """Bearer header first, then the first non-empty string fallback"""
    token = bearer_token(request.headers.get("authorization"))
    if token:
        return token
    for value in fallbacks:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


async def read_json_body(request: Request) -> dict:
    """Parsed JSON object body; anything unparseable counts as ``{}``"""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def request_token(request: Request) -> str:
    """Token from the Bearer header, the JSON body ``token`` or the ``t``/``token`` query"""
    body = await read_json_body(request) if request.method == "POST" else {}
    return resolve_token(
        request,
        body.get("token"),
        request.query_params.get("t"),
        request.query_params.get("token"),
    )


# ============================================
# Authentication Dependencies
# ============================================


@dataclass(frozen=True)
class OverlayAuth:
    """A verified overlay token and the channel it addresses"""

    token: str
    claims: TokenClaims
    channel_id: str


async def require_overlay_token(
    request: Request,
    codec: TokenCodec = Depends(get_token_codec),
) -> OverlayAuth:
    """Verify the request's overlay token; raises ``Unauthorized`` (mapped to 401 by the app)"""
    token = await request_token(request)
    if not token:
        logger.warning("No overlay token provided")
        raise TokenMissing("Token missing")

    try:
        claims = codec.verify(token)
    except Unauthorized as e:
        logger.warning(f"Rejected overlay token ({e.reason})")
        raise

    return OverlayAuth(token=token, claims=claims, channel_id=channel_for_token(token))
