import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis
from fakeredis import FakeServer

from tracker.config import clear_settings_cache
from tracker.models.visits import AgentInfo, RequestContext


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


def make_city(latitude=52.52, longitude=13.405, city="Berlin", region="BE",
              postal="10117", country="DE"):
    """Build an object shaped like ``geoip2.models.City``."""
    return SimpleNamespace(
        location=SimpleNamespace(latitude=latitude, longitude=longitude),
        subdivisions=SimpleNamespace(most_specific=SimpleNamespace(iso_code=region)),
        city=SimpleNamespace(name=city),
        postal=SimpleNamespace(code=postal),
        country=SimpleNamespace(iso_code=country),
    )


class FakeReader:
    """GeoIP reader returning a fixed response, or raising ``error``."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else make_city()
        self.error = error
        self.calls = []

    def city(self, ip_address):
        self.calls.append(ip_address)
        if self.error is not None:
            raise self.error
        return self.response


class FakeClassifier:
    def __init__(self, agent=None):
        self.agent = agent or AgentInfo(browser_name="Firefox", device_kind="desktop")

    def classify(self, user_agent, headers=None):
        return self.agent


class ListRecorder:
    def __init__(self):
        self.records = []

    async def persist(self, record):
        self.records.append(record)


def make_context(**overrides) -> RequestContext:
    values = {
        "client_ip": "203.0.113.7",
        "method": "GET",
        "path": "menus",
        "route_name": "menus.index",
        "user_agent": "Mozilla/5.0",
        "session_id": "sess-1",
        "headers": {"user-agent": ["Mozilla/5.0"]},
    }
    values.update(overrides)
    return RequestContext(**values)


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(server=FakeServer(), decode_responses=True)


@pytest.fixture
def client(monkeypatch):
    import tracker.lifespan as lifespan
    import tracker.main as main

    server = FakeServer()

    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.FakeRedis(server=server, decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)
    monkeypatch.setattr(lifespan, "init_geoip", lambda: None)

    with TestClient(main.app) as c:
        yield c
