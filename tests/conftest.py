import base64
import json
import time

import httpx
import pytest

from client import HttpClient
from hooks.cache import ResponseCache
from utils.storage import MemoryTokenStorage

BASE_URL = "https://api.test/api"


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_jwt(**claims):
    """Unsigned JWT carrying ``claims``; only the payload is ever decoded"""
    def encode(part):
        raw = json.dumps(part).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()
    return f"{encode({'alg': 'none'})}.{encode(claims)}.sig"


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSleep:
    """Records requested delays without waiting"""

    def __init__(self, clock=None):
        self.calls = []
        self.clock = clock

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def storage():
    return MemoryTokenStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(clock=clock)


@pytest.fixture
def make_client(storage, clock):
    """Build an HttpClient on a MockTransport around ``handler``"""
    def factory(handler, **kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", RecordingSleep(clock))
        return HttpClient(
            base_url=BASE_URL,
            storage=storage,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )
    return factory


def envelope(data, **extra):
    body = {"success": True, "status": "success", "message": "OK", "data": data}
    body.update(extra)
    return body


@pytest.fixture
def now():
    return int(time.time())
