"""Overlay token issue / verify routes"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.dependencies import get_services, get_token_codec, read_json_body, request_token
from core.exceptions import Unauthorized
from services import TokenCodec
from services.token_codec import MIN_TTL_SECONDS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["token"])


def _ttl_from(value: object, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return default
    try:
        ttl = int(float(value))
    except (ValueError, OverflowError):
        # Unparseable or non-finite values keep the default lifetime
        return default
    return max(MIN_TTL_SECONDS, ttl)


@router.post("/token")
async def issue_token(request: Request) -> JSONResponse:
    """Issue an overlay token for a streamer name."""
    body = await read_json_body(request)
    services = get_services(request)

    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        return JSONResponse({"ok": False, "error": "bad_name"}, status_code=400)

    ttl = _ttl_from(body.get("ttlSec"), services.settings.token_ttl_seconds)
    try:
        token = services.codec.issue(name.strip(), ttl)
    except Exception as e:
        logger.exception(f"Failed to issue overlay token: {e}")
        return JSONResponse({"ok": False, "error": "token_error"}, status_code=500)

    logger.info(f"Overlay token issued for {name.strip()} (ttl={ttl}s)")
    return JSONResponse({"ok": True, "token": token})


@router.get("/overlay/verify")
async def verify_overlay_token(
    request: Request,
    codec: TokenCodec = Depends(get_token_codec),
) -> JSONResponse:
    """Check an overlay link's token and return its claims."""
    token = await request_token(request)
    if not token:
        return JSONResponse({"ok": False, "error": "no_token"}, status_code=401)

    try:
        claims = codec.verify(token)
    except Unauthorized as e:
        logger.warning(f"Overlay verify rejected ({e.reason})")
        return JSONResponse({"ok": False, "error": e.reason}, status_code=401)

    return JSONResponse(
        {
            "ok": True,
            "payload": {
                "sub": claims.subject,
                "iat": claims.issued_at,
                "exp": claims.expires_at,
            },
        }
    )
