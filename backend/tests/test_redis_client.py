import pytest
import redis

import models
import redis_client as redis_module
from redis_client import RedisClient


class StubRedis:
    """Минимальная замена redis.Redis для incr/expire/get/setex/delete."""

    def __init__(self):
        self.store = {}
        self.ttl = {}

    def ping(self):
        return True

    def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    def expire(self, key, seconds):
        self.ttl[key] = seconds
        return True

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttl[key] = ttl
        return True

    def get(self, key):
        return self.store.get(key)

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)
        return len(keys)

    def exists(self, key):
        return int(key in self.store)

    def keys(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in self.store if k.startswith(prefix)]


class DeadRedis(StubRedis):
    def ping(self):
        raise redis.ConnectionError("connection refused")


@pytest.fixture
def stub_redis(monkeypatch):
    stub = StubRedis()
    monkeypatch.setattr(redis_module.redis_client, "client", stub)
    return stub


def test_rate_limit_window():
    stub = StubRedis()
    client = RedisClient(client=stub)

    results = [client.check_rate_limit("rl:test", max_requests=3, window=60) for _ in range(4)]

    assert results == [(True, 2), (True, 1), (True, 0), (False, 0)]
    assert stub.ttl["rl:test"] == 60


def test_rate_limit_allows_requests_when_redis_is_down():
    client = RedisClient(client=DeadRedis())
    assert client.is_available() is False
    assert client.check_rate_limit("rl:test", max_requests=1) == (True, 1)
    assert client.get_cache_info() == {"status": "unavailable"}


def test_disabled_when_host_is_empty(monkeypatch):
    monkeypatch.setenv("REDIS_HOST", "")
    assert RedisClient().client is None


def test_login_is_rate_limited(client, customer, stub_redis):
    for _ in range(10):
        resp = client.post("/auth/login", json={"email": customer.email, "password": "wrong-pass"})
        assert resp.status_code == 401

    blocked = client.post("/auth/login", json={"email": customer.email, "password": "secret123"})
    assert blocked.status_code == 429
    assert blocked.json()["success"] is False


def test_rooms_list_is_cached_until_a_write(client, db_session, room, admin_headers, stub_redis):
    first = client.get("/rooms").json()["data"]["rooms"]
    assert [r["roomNumber"] for r in first] == ["301"]
    assert redis_module.ROOMS_KEY in stub_redis.store

    # Запись мимо API кеш не сбрасывает
    db_session.add(models.Room(name="Suite", type="suite", price=250, capacity=4, floor=5, room_number="501"))
    db_session.commit()
    assert len(client.get("/rooms").json()["data"]["rooms"]) == 1

    created = client.post("/rooms", headers=admin_headers, json={
        "name": "Standard", "type": "standard", "price": 80, "capacity": 2, "floor": 1, "roomNumber": 101,
    })
    assert created.status_code == 201
    assert redis_module.ROOMS_KEY not in stub_redis.store
    assert len(client.get("/rooms").json()["data"]["rooms"]) == 3


def test_cache_info_endpoint(client, stub_redis):
    info = client.get("/cache/info").json()
    assert info["status"] == "available"
    assert info["rooms_cached"] is False
