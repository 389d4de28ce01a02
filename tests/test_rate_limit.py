import pytest

from vidrelay.config.settings import config
from vidrelay.core.state import state
from vidrelay.infra.concurrency import COUNTER_KEY
from vidrelay.infra.rate_limit import client_address

YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class FakeRedis:
    """Answers the two limiter scripts by their key count"""

    def __init__(self, allow_rate=True, allow_slot=True, ttl=42):
        self.allow_rate = allow_rate
        self.allow_slot = allow_slot
        self.ttl = ttl
        self.rate_keys = []
        self.counter = 0
        self.slots = set()

    async def eval(self, script, numkeys, *args):
        if numkeys == 1:
            self.rate_keys.append(args[0])
            return [1, 0] if self.allow_rate else [0, self.ttl]
        if not self.allow_slot:
            return 0
        self.counter += 1
        self.slots.add(args[1])
        return 1

    async def delete(self, key):
        self.slots.discard(key)

    async def decr(self, key):
        assert key == COUNTER_KEY
        self.counter -= 1

    async def get(self, key):
        return str(self.counter)

    async def ping(self):
        return True


@pytest.mark.asyncio
async def test_rate_limit_exceeded(client, monkeypatch, fake_provider):
    monkeypatch.setattr(state, "redis", FakeRedis(allow_rate=False))
    response = await client.post("/api/detect", json={"url": YOUTUBE_URL})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "42"
    assert response.json()["error"] is True
    assert fake_provider.probe_calls == []


@pytest.mark.asyncio
async def test_rate_limit_disabled(client, monkeypatch):
    monkeypatch.setattr(state, "redis", FakeRedis(allow_rate=False))
    monkeypatch.setattr(config.rate_limit, "enabled", False)
    response = await client.post("/api/detect", json={"url": YOUTUBE_URL})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_download_slot_denied(client, monkeypatch, fake_provider, storage):
    monkeypatch.setattr(state, "redis", FakeRedis(allow_slot=False))
    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "22"})

    assert response.status_code == 503
    assert fake_provider.fetch_calls == []
    assert list(storage.iterdir()) == []


@pytest.mark.asyncio
async def test_download_slot_released(client, monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(state, "redis", redis)
    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "22"})

    assert response.status_code == 200
    assert redis.counter == 0
    assert redis.slots == set()


@pytest.mark.asyncio
async def test_download_slot_released_on_failure(client, monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(state, "redis", redis)
    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "nope"})

    assert response.status_code == 400
    assert redis.counter == 0


@pytest.mark.asyncio
async def test_rate_limit_keys_on_forwarded_address(client, monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(state, "redis", redis)
    monkeypatch.setattr(config.api, "trust_proxy", True)
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    await client.post("/api/detect", json={"url": YOUTUBE_URL}, headers=headers)

    monkeypatch.setattr(config.api, "trust_proxy", False)
    await client.post("/api/detect", json={"url": YOUTUBE_URL}, headers=headers)

    assert redis.rate_keys[0] == "rate:203.0.113.7"
    assert redis.rate_keys[1] != "rate:203.0.113.7"


def test_client_address_without_client(monkeypatch):
    class Bare:
        headers = {}
        client = None

    monkeypatch.setattr(config.api, "trust_proxy", False)
    assert client_address(Bare()) == "unknown"
