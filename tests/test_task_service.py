import random

import pytest

from core.exceptions import GenerationUnavailable, RateLimited, Unauthorized
from services import EventBus, RateLimiter, RecencyWindow, TaskService, Via, channel_for_token
from services.events import TaskEvent
from services.options import TaskOptions
from services.prompts import FALLBACK_LINES

from .conftest import BrokenStore, ScriptedGenerator


@pytest.fixture
def options():
    return TaskOptions.from_raw(mode="funny", task_type="question", stream_kind="irl", lang="en")


@pytest.mark.asyncio
async def test_generated_line_returned(make_task_service, token, options):
    generator = ScriptedGenerator(["Ask chat for their worst haircut story"])
    service = make_task_service(generator, attempts=1)

    result = await service.next_task(token, options)

    assert result.line == "Ask chat for their worst haircut story"
    assert result.via is Via.GENERATED
    assert result.name == "streamer_jane"
    assert generator.calls == 1
    assert "Streamer name: streamer_jane." in generator.prompts[0]


@pytest.mark.asyncio
async def test_picks_candidate_least_like_recent(make_task_service, store, token, options):
    await RecencyWindow(store).record(channel_for_token(token), "What is your favorite food?")
    generator = ScriptedGenerator(
        ["What's your favorite food, chat?", "Do ten squats on camera", "What food is your favorite?"]
    )
    service = make_task_service(generator)

    result = await service.next_task(token, options)

    assert result.line == "Do ten squats on camera"
    assert generator.calls == 3
    assert "What is your favorite food?" in generator.prompts[0]


@pytest.mark.asyncio
async def test_first_failure_abandons_generation(make_task_service, token, options):
    generator = ScriptedGenerator([GenerationUnavailable("timeout"), "never reached line"])
    service = make_task_service(generator)

    result = await service.next_task(token, options)

    assert generator.calls == 1
    assert result.via is Via.FALLBACK
    assert result.line in FALLBACK_LINES


@pytest.mark.asyncio
async def test_fallback_without_generator(make_task_service, token, options):
    service = make_task_service(None, rng=random.Random(7))
    result = await service.next_task(token, options)

    assert result.via is Via.FALLBACK
    assert result.line in FALLBACK_LINES


@pytest.mark.asyncio
async def test_unusable_candidates_fall_back(make_task_service, token, options):
    service = make_task_service(ScriptedGenerator(["", "ok", "  "]))
    result = await service.next_task(token, options)

    assert result.via is Via.FALLBACK
    assert result.line in FALLBACK_LINES


@pytest.mark.asyncio
async def test_always_returns_a_line(make_task_service, token, options):
    service = make_task_service(None)
    for _ in range(15):
        result = await service.next_task(token, options)
        assert result.line


@pytest.mark.asyncio
async def test_line_recorded_and_published(make_task_service, store, bus, token, options):
    service = make_task_service(ScriptedGenerator(["Show chat your desk setup"]), attempts=1)
    channel_id = channel_for_token(token)

    await service.next_task(token, options)

    assert await RecencyWindow(store).recent(channel_id) == ["Show chat your desk setup"]
    [event] = await bus.recent(channel_id, 5)
    assert isinstance(event, TaskEvent)
    assert event.line == "Show chat your desk setup"
    assert event.mode == "funny"
    assert event.task_type == "question"
    assert event.stream_kind == "irl"
    assert event.name == "streamer_jane"


@pytest.mark.asyncio
async def test_missing_token(make_task_service, options):
    with pytest.raises(Unauthorized):
        await make_task_service().next_task("", options)


@pytest.mark.asyncio
async def test_invalid_token(make_task_service, token, options):
    with pytest.raises(Unauthorized):
        await make_task_service().next_task(token + "x", options)


@pytest.mark.asyncio
async def test_rate_limited_after_limit(make_task_service, token, options):
    service = make_task_service(None, rate_limit=2)
    await service.next_task(token, options)
    await service.ping(token)

    with pytest.raises(RateLimited) as exc_info:
        await service.next_task(token, options)
    assert exc_info.value.retry_after >= 1


@pytest.mark.asyncio
async def test_ping_returns_name_and_recent(make_task_service, store, token):
    window = RecencyWindow(store)
    for i in range(12):
        await window.record(channel_for_token(token), f"line {i}")

    ping = await make_task_service().ping(token)

    assert ping.name == "streamer_jane"
    assert ping.recent == [f"line {i}" for i in range(11, 1, -1)]


@pytest.mark.asyncio
async def test_store_failure_degrades(codec, clock, token, options):
    broken = BrokenStore()
    service = TaskService(
        codec,
        RateLimiter(broken, clock=clock),
        RecencyWindow(broken),
        EventBus(broken),
        ScriptedGenerator(["Freestyle eight bars about chat"]),
        attempts=1,
    )

    result = await service.next_task(token, options)
    assert result.line == "Freestyle eight bars about chat"

    ping = await service.ping(token)
    assert ping.recent == []
