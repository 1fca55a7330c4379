"""Overlay event publish / subscribe routes"""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from core.dependencies import OverlayAuth, get_event_bus, read_json_body, require_overlay_token
from services import EventBus
from services.event_bus import KeepAlive
from services.events import AudienceEvent, MessageEvent, TaskEvent, dump_event
from services.options import normalize_mode, normalize_stream_kind, normalize_task_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ============================================
# Helpers
# ============================================


def _event_from_body(body: dict) -> TaskEvent | AudienceEvent | MessageEvent:
    """Build the event a control panel asked for; unknown types become messages"""
    event_type = body.get("type")
    if event_type == "task":
        name = body.get("name")
        return TaskEvent(
            line=str(body.get("line") or ""),
            mode=normalize_mode(body.get("mode")).value,
            task_type=normalize_task_type(body.get("taskType")).value,
            stream_kind=normalize_stream_kind(body.get("streamKind")).value,
            name=name if isinstance(name, str) and name else None,
        )
    if event_type == "audience":
        return AudienceEvent(audience=str(body.get("audience") or "all"))

    payload = body.get("payload")
    return MessageEvent(payload=payload if isinstance(payload, dict) else {})


# ============================================
# Publish Endpoints
# ============================================


@router.post("")
async def publish_event(
    request: Request,
    auth: OverlayAuth = Depends(require_overlay_token),
    bus: EventBus = Depends(get_event_bus),
) -> JSONResponse:
    """Publish a task / audience / message event to the token's overlay."""
    body = await read_json_body(request)

    try:
        event = await bus.publish(auth.channel_id, _event_from_body(body))
        return JSONResponse({"ok": True, "id": event.id, "ts": event.ts})
    except Exception as e:
        logger.exception(f"Failed to publish overlay event: {e}")
        return JSONResponse({"ok": False, "error": "server_error"}, status_code=500)


@router.post("/toggle")
async def toggle_audience(
    request: Request,
    auth: OverlayAuth = Depends(require_overlay_token),
    bus: EventBus = Depends(get_event_bus),
) -> JSONResponse:
    """Switch who the overlay addresses and notify subscribers."""
    body = await read_json_body(request)

    audience = str(body.get("audience") or "all")
    try:
        await bus.publish(auth.channel_id, AudienceEvent(audience=audience))
        return JSONResponse({"ok": True, "audience": audience})
    except Exception as e:
        logger.exception(f"Failed to publish audience toggle: {e}")
        return JSONResponse({"ok": False, "error": "server_error"}, status_code=500)


# ============================================
# Stream Endpoint
# ============================================


@router.get("/stream")
async def stream_events(
    auth: OverlayAuth = Depends(require_overlay_token),
    bus: EventBus = Depends(get_event_bus),
) -> StreamingResponse:
    """Server-sent events for one overlay channel."""
    channel_id = auth.channel_id

    async def event_generator() -> AsyncIterator[str]:
        async with bus.subscribe(channel_id) as subscription:
            logger.debug(f"Overlay subscribed to {channel_id[:24]}")
            try:
                async for item in subscription:
                    if isinstance(item, KeepAlive):
                        yield ": keep-alive\n\n"
                    else:
                        yield f"data: {dump_event(item)}\n\n"
            finally:
                logger.debug(f"Overlay unsubscribed from {channel_id[:24]}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
