import asyncio

import pytest
from starlette.testclient import TestClient

from audiosync.engine import PlayerEngine
from audiosync.player import AudioState, AudioStateStore
from audiosync.web.server import create_app
from audiosync.web.state import Broadcaster, Subscriber, SubscriberRegistry


class FakeChannel:
    """Stand-in for a WebSocket: records frames, can fail or hang on send."""

    def __init__(self, fail: bool = False, hang: bool = False):
        self.frames: list[dict] = []
        self.closed = False
        self.fail = fail
        self.hang = hang

    async def send_json(self, data):
        if self.fail:
            raise ConnectionResetError("peer went away")
        if self.hang:
            await asyncio.Event().wait()
        self.frames.append(data)

    async def close(self, code: int = 1000):
        self.closed = True


def make_engine(duration: int = 180, send_timeout: float = 1.0, heartbeat: bool = True) -> PlayerEngine:
    registry = SubscriberRegistry()
    return PlayerEngine(
        store=AudioStateStore(AudioState(duration=duration)),
        registry=registry,
        broadcaster=Broadcaster(registry, send_timeout=send_timeout),
        # Ticks are driven by hand in tests
        tick_interval=3600,
        heartbeat=heartbeat,
    )


def subscribe(engine: PlayerEngine, name: str, **channel_kwargs) -> tuple[Subscriber, FakeChannel]:
    channel = FakeChannel(**channel_kwargs)
    sub = Subscriber(name, channel)
    engine.connect(sub)
    return sub, channel


@pytest.fixture
def engine():
    return make_engine()


@pytest.fixture
async def running_engine():
    eng = make_engine(send_timeout=0.05)
    await eng.run()
    yield eng
    await eng.stop()


@pytest.fixture
def client():
    app = create_app(engine=make_engine(), static_dir=None)
    with TestClient(app) as c:
        yield c
