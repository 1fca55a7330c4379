"""
Overlay API test fixtures
Shared fakes for the clock, the text generation provider and the keyed store
"""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from core.config import Settings
from core.dependencies import build_services
from core.exceptions import StoreUnavailable
from core.store import MemoryStore
from services import EventBus, RateLimiter, RecencyWindow, TaskService, TokenCodec

T0 = 1_700_000_000.0

# HS256 keys shorter than 32 bytes trigger PyJWT's InsecureKeyLengthWarning
SECRET = "overlay-test-secret-0123456789abcdef"


class FakeClock:
    """Manually advanced clock usable as both wall clock and store timer"""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedGenerator:
    """Returns (or raises) the scripted outputs in order, then empty lines"""

    def __init__(self, outputs=()):
        self.outputs = list(outputs)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate_line(self, prompt: str) -> str:
        self.prompts.append(prompt)
        item = self.outputs.pop(0) if self.outputs else ""
        if isinstance(item, Exception):
            raise item
        return item


class BrokenStore:
    """Keyed store whose every operation fails"""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise StoreUnavailable(f"store down ({name})")

        return fail


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(timer=clock)


@pytest.fixture
def codec(clock):
    return TokenCodec(SECRET, clock=clock)


@pytest.fixture
def token(codec):
    return codec.issue("streamer_jane", 3600)


@pytest.fixture
def bus(store):
    return EventBus(store, keep_alive=5.0)


@pytest.fixture
def make_task_service(codec, store, bus, clock):
    """Factory: TaskService over the shared fakes with a given generator"""

    def _make(generator=None, **kwargs):
        return TaskService(
            codec,
            RateLimiter(store, clock=clock),
            RecencyWindow(store),
            bus,
            generator,
            **kwargs,
        )

    return _make


@pytest.fixture
def settings():
    return Settings(
        overlay_secret=SECRET,
        openai_api_key="",
        environment="test",
        _env_file=None,
    )


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def services(settings, generator):
    return build_services(settings, generator=generator)


@pytest.fixture
def client(services):
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client
