"""Overlay task routes (poll for the next line, or ping)"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.dependencies import OverlayAuth, get_task_service, read_json_body, require_overlay_token
from core.exceptions import RateLimited, Unauthorized
from services import TaskService
from services.options import TaskOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["task"])


@router.post("/task")
async def next_task(
    request: Request,
    auth: OverlayAuth = Depends(require_overlay_token),
    tasks: TaskService = Depends(get_task_service),
) -> JSONResponse:
    """Return a fresh overlay line (``kind=next``) or the token's name and recent lines (``kind=ping``)."""
    body = await read_json_body(request)
    options = TaskOptions.from_raw(
        mode=body.get("mode"),
        task_type=body.get("taskType"),
        stream_kind=body.get("streamKind"),
        lang=body.get("lang"),
    )

    try:
        if body.get("kind") == "ping":
            ping = await tasks.ping(auth.token)
            return JSONResponse(
                {"ok": True, "name": ping.name, "recent": ping.recent, **options.as_dict()}
            )

        result = await tasks.next_task(auth.token, options)
        return JSONResponse(
            {
                "ok": True,
                "task": result.line,
                "name": result.name or None,
                "via": result.via.value,
                **options.as_dict(),
            }
        )
    except Unauthorized:
        # Token expired after the dependency checked it; the app handler answers 401
        raise
    except RateLimited as e:
        return JSONResponse(
            {"ok": False, "error": "rate_limited", "retryAfter": e.retry_after},
            status_code=429,
            headers={"Retry-After": str(e.retry_after)},
        )
    except Exception as e:
        logger.exception(f"Task request failed: {e}")
        return JSONResponse({"ok": False, "error": "server_error"}, status_code=500)
