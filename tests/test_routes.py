import asyncio

import pytest

from app import create_app
from core.dependencies import build_services
from services import TokenCodec, channel_for_token
from services.events import MessageEvent, dump_event

from .conftest import ScriptedGenerator


@pytest.fixture
def token(client):
    response = client.post("/api/token", json={"name": "streamer_jane", "ttlSec": 3600})
    assert response.status_code == 200
    return response.json()["token"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ==================== Service endpoints ====================


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_status(client):
    body = client.get("/status").json()
    assert body["ready"] is True
    assert body["generation_enabled"] is True
    assert body["subscribers"] == 0


def test_ping(client):
    assert client.get("/ping").text == "pong"


# ==================== Token ====================


def test_issue_and_verify_token(client, token):
    response = client.get("/api/overlay/verify", params={"t": token})
    assert response.status_code == 200
    payload = response.json()["payload"]
    assert payload["sub"] == "streamer_jane"
    assert payload["exp"] - payload["iat"] == 3600


def test_issue_token_requires_name(client):
    response = client.post("/api/token", json={"name": "  "})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "bad_name"}


def test_short_ttl_raised_to_minimum(client):
    token = client.post("/api/token", json={"name": "jane", "ttlSec": 5}).json()["token"]
    payload = client.get("/api/overlay/verify", params={"t": token}).json()["payload"]
    assert payload["exp"] - payload["iat"] == 60


def test_verify_without_token(client):
    response = client.get("/api/overlay/verify")
    assert response.status_code == 401
    assert response.json()["error"] == "no_token"


def test_verify_tampered_token(client, token):
    response = client.get("/api/overlay/verify", params={"t": token[:-2] + "xx"})
    assert response.status_code == 401
    assert response.json()["error"] == "signature"


# ==================== Task ====================


def test_next_task_generated(client, generator, token):
    generator.outputs = ["Tell chat about your first stream"]
    response = client.post("/api/task", json={"token": token, "mode": "street", "taskType": "joke"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["task"] == "Tell chat about your first stream"
    assert body["via"] == "generated"
    assert body["name"] == "streamer_jane"
    assert body["mode"] == "urban"
    assert body["taskType"] == "banter"
    assert body["streamKind"] == "other"
    assert body["lang"] == "en"


def test_next_task_fallback(client, generator, token):
    generator.outputs = [RuntimeError("provider down")]
    body = client.post("/api/task", json={"token": token}).json()

    assert body["ok"] is True
    assert body["via"] == "fallback"
    assert body["task"]
    assert generator.calls == 1


def test_task_ping(client, token):
    response = client.post("/api/task", json={"token": token, "kind": "ping"})
    body = response.json()
    assert body["ok"] is True
    assert body["name"] == "streamer_jane"
    assert body["recent"] == []


def test_task_token_missing(client):
    response = client.post("/api/task", json={})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "token_missing"}


def test_task_invalid_token(client):
    response = client.post("/api/task", json={"token": "a.b.c"})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "invalid_token"}


def test_task_non_json_body(client):
    response = client.post("/api/task", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 401
    assert response.json()["error"] == "token_missing"


def test_bearer_header_wins_over_body(client, token):
    response = client.post("/api/task", json={"token": "a.b.c", "kind": "ping"}, headers=_auth(token))
    assert response.status_code == 200

    response = client.post("/api/task", json={"token": token, "kind": "ping"}, headers=_auth("a.b.c"))
    assert response.status_code == 401


def test_task_rate_limited(client, token):
    # 41 requests span at most two windows, so one of them exceeds 20
    responses = [client.post("/api/task", json={"token": token, "kind": "ping"}) for _ in range(41)]
    limited = [r for r in responses if r.status_code == 429]

    assert limited
    assert limited[0].json() == {"ok": False, "error": "rate_limited", "retryAfter": int(limited[0].headers["Retry-After"])}
    assert int(limited[0].headers["Retry-After"]) >= 1


def test_task_published_to_overlay(client, services, generator, token):
    generator.outputs = ["Read the last donation in a pirate voice"]
    client.post("/api/task", json={"token": token, "streamKind": "irl"})

    [event] = asyncio.run(services.bus.recent(channel_for_token(token), 2))
    assert event.type == "task"
    assert event.line == "Read the last donation in a pirate voice"
    assert event.stream_kind == "irl"


# ==================== Events ====================


def test_publish_requires_token(client):
    response = client.post("/api/events", json={"type": "message", "payload": {"x": 1}})
    assert response.status_code == 401
    assert response.json()["error"] == "token_missing"


def test_publish_rejects_invalid_token(client):
    response = client.post("/api/events", json={"token": "a.b.c", "type": "message"})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"


def test_publish_message_logged(client, services, token):
    response = client.post(
        "/api/events",
        json={"token": token, "type": "message", "payload": {"text": "hi chat"}},
    )
    body = response.json()
    assert response.status_code == 200
    assert body["ok"] is True

    [event] = asyncio.run(services.bus.recent(channel_for_token(token), 2))
    assert event.id == body["id"]
    assert event.payload == {"text": "hi chat"}


def test_toggle_audience(client, services, token):
    response = client.post("/api/events/toggle", json={"audience": "chat"}, headers=_auth(token))
    assert response.json() == {"ok": True, "audience": "chat"}

    [event] = asyncio.run(services.bus.recent(channel_for_token(token), 2))
    assert event.type == "audience"
    assert event.audience == "chat"


def test_stream_requires_token(client):
    response = client.get("/api/events/stream")
    assert response.status_code == 401
    assert response.json()["error"] == "token_missing"

    response = client.get("/api/events/stream", params={"t": "a.b.c"})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"


# ==================== State ====================


def test_state_round_trip(client, token):
    assert client.get("/api/state", params={"token": token}).json() == {"ok": True, "state": {}}

    response = client.post(
        "/api/state",
        json={
            "token": token,
            "patch": {"mode": "street", "seconds": 300, "auto": True, "streamKind": "gaming", "junk": 1},
        },
    )
    assert response.json()["state"] == {"mode": "urban", "seconds": 60, "auto": True, "streamKind": "other"}

    client.post("/api/state", json={"token": token, "patch": {"seconds": 1, "voice": False}})
    state = client.get("/api/state", headers=_auth(token)).json()["state"]
    assert state == {"mode": "urban", "seconds": 5, "auto": True, "voice": False, "streamKind": "other"}


def test_state_requires_valid_token(client):
    assert client.get("/api/state").status_code == 401
    assert client.post("/api/state", json={"token": "a.b.c", "patch": {}}).status_code == 401


def test_state_ignores_non_finite_seconds(client, token):
    response = client.post(
        "/api/state",
        content=b'{"token": "%s", "patch": {"seconds": 1e999, "auto": true}}' % token.encode(),
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 200
    assert response.json()["state"] == {"auto": True}


def test_non_finite_ttl_uses_default(client, settings):
    response = client.post(
        "/api/token",
        content=b'{"name": "jane", "ttlSec": 1e999}',
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 200

    token = response.json()["token"]
    payload = client.get("/api/overlay/verify", params={"t": token}).json()["payload"]
    assert payload["exp"] - payload["iat"] == settings.token_ttl_seconds


# ==================== Token dependency ====================

FOREIGN_TOKEN = TokenCodec("some-other-deployment-secret-0123456789").issue("mallory", 3600)

PROTECTED = [
    ("POST", "/api/task"),
    ("POST", "/api/events"),
    ("POST", "/api/events/toggle"),
    ("GET", "/api/events/stream"),
    ("GET", "/api/state"),
    ("POST", "/api/state"),
]


@pytest.mark.parametrize(("method", "path"), PROTECTED)
def test_protected_routes_reject_foreign_token(client, method, path):
    response = client.request(method, path, headers=_auth(FOREIGN_TOKEN), json={} if method == "POST" else None)
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "invalid_token"}


@pytest.mark.parametrize(("method", "path"), PROTECTED)
def test_protected_routes_require_token(client, method, path):
    response = client.request(method, path, json={} if method == "POST" else None)
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "token_missing"}


def test_query_token_accepted_on_post(client, token):
    response = client.post("/api/events/toggle", params={"t": token}, json={"audience": "streamer"})
    assert response.json() == {"ok": True, "audience": "streamer"}


# ==================== Event stream ====================


def _stream_scope(token: str) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/api/events/stream",
        "raw_path": b"/api/events/stream",
        "root_path": "",
        "query_string": f"t={token}".encode(),
        "headers": [(b"host", b"testserver")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }


@pytest.mark.asyncio
async def test_stream_replays_then_pushes_live_events(settings):
    """Drive the SSE response at the ASGI level: the body never ends on its own."""
    settings = settings.model_copy(update={"stream_keep_alive": 0.05})
    services = build_services(settings, generator=ScriptedGenerator())
    app = create_app(services=services)

    token = services.codec.issue("streamer_jane", 3600)
    channel_id = channel_for_token(token)
    replayed = await services.bus.publish(channel_id, MessageEvent(payload={"n": 1}))

    sent: asyncio.Queue = asyncio.Queue()
    disconnected = asyncio.Event()
    request_read = False

    async def receive():
        nonlocal request_read
        if not request_read:
            request_read = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await disconnected.wait()
        return {"type": "http.disconnect"}

    async def next_chunk() -> str:
        message = await asyncio.wait_for(sent.get(), timeout=2)
        assert message["type"] == "http.response.body"
        return message["body"].decode("utf-8")

    server = asyncio.create_task(app(_stream_scope(token), receive, sent.put))

    start = await asyncio.wait_for(sent.get(), timeout=2)
    headers = {k.decode(): v.decode() for k, v in start["headers"]}
    assert start["status"] == 200
    assert headers["content-type"].startswith("text/event-stream")
    assert headers["cache-control"] == "no-cache, no-transform"
    assert headers["x-accel-buffering"] == "no"

    assert await next_chunk() == f"data: {dump_event(replayed)}\n\n"
    assert services.bus.subscriber_count(channel_id) == 1

    live = await services.bus.publish(channel_id, MessageEvent(payload={"n": 2}))
    chunks = []
    while ": keep-alive\n\n" not in chunks or f"data: {dump_event(live)}\n\n" not in chunks:
        assert len(chunks) < 10
        chunks.append(await next_chunk())
    assert f"data: {dump_event(replayed)}\n\n" not in chunks

    disconnected.set()
    await asyncio.wait_for(server, timeout=2)
    assert services.bus.subscriber_count() == 0
