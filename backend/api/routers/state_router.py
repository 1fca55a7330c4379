"""Overlay settings routes"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.dependencies import OverlayAuth, get_state_service, read_json_body, require_overlay_token
from services import OverlayStateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/state", tags=["state"])


@router.get("")
async def get_state(
    auth: OverlayAuth = Depends(require_overlay_token),
    service: OverlayStateService = Depends(get_state_service),
) -> JSONResponse:
    """Get saved overlay settings for a token."""
    try:
        state = await service.get_state(auth.channel_id)
        return JSONResponse({"ok": True, "state": state})
    except Exception as e:
        logger.exception(f"Failed to get overlay state: {e}")
        return JSONResponse({"ok": False, "error": "server_error"}, status_code=500)


@router.post("")
async def update_state(
    request: Request,
    auth: OverlayAuth = Depends(require_overlay_token),
    service: OverlayStateService = Depends(get_state_service),
) -> JSONResponse:
    """Merge a settings patch into the token's overlay state."""
    body = await read_json_body(request)

    try:
        state = await service.update_state(auth.channel_id, body.get("patch"))
        return JSONResponse({"ok": True, "state": state})
    except Exception as e:
        logger.exception(f"Failed to update overlay state: {e}")
        return JSONResponse({"ok": False, "error": "server_error"}, status_code=500)
