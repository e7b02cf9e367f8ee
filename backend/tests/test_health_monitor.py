import logging

import psycopg2
import redis
import requests

import health_monitor


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload or {}

    def json(self):
        return self._payload


def test_http_check_ok_and_fail(monkeypatch):
    monkeypatch.setattr(health_monitor.requests, "get", lambda url, timeout: FakeResponse(200))
    assert health_monitor.check_backend_api() == (True, "backend-api /health: OK (200)")

    monkeypatch.setattr(health_monitor.requests, "get", lambda url, timeout: FakeResponse(503))
    ok, message = health_monitor.check_backend_api()
    assert not ok and "FAIL (503)" in message


def test_http_check_connection_error(monkeypatch):
    def boom(url, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(health_monitor.requests, "get", boom)
    ok, message = health_monitor.check_backend_api()
    assert not ok and "ERROR" in message


def test_cache_check_requires_available_cache(monkeypatch):
    monkeypatch.setattr(health_monitor.requests, "get",
                        lambda url, timeout: FakeResponse(200, {"status": "unavailable"}))
    ok, message = health_monitor.check_cache_via_api()
    assert not ok and "cache unavailable" in message

    monkeypatch.setattr(health_monitor.requests, "get",
                        lambda url, timeout: FakeResponse(200, {"status": "available"}))
    assert health_monitor.check_cache_via_api()[0] is True


def test_database_check_reports_errors(monkeypatch):
    def refuse(dsn):
        raise psycopg2.OperationalError("could not connect")

    monkeypatch.setattr(health_monitor.psycopg2, "connect", refuse)
    ok, message = health_monitor.check_database()
    assert not ok and message.startswith("postgres: ERROR")


def test_redis_check(monkeypatch):
    class Pong:
        def __init__(self, **kwargs):
            pass

        def ping(self):
            return True

    class Refused(Pong):
        def ping(self):
            raise redis.ConnectionError("refused")

    monkeypatch.setattr(health_monitor, "REDIS_HOST", "redis")
    monkeypatch.setattr(health_monitor.redis, "Redis", Pong)
    assert health_monitor.check_redis() == (True, "redis: OK")

    monkeypatch.setattr(health_monitor.redis, "Redis", Refused)
    assert health_monitor.check_redis()[0] is False


def test_monitor_logs_each_check(monkeypatch, caplog):
    monkeypatch.setattr(health_monitor, "CHECKS", {
        "up": lambda: (True, "up: OK"),
        "down": lambda: (False, "down: ERROR (boom)"),
    })

    with caplog.at_level(logging.INFO, logger="HealthMonitor"):
        results = health_monitor.monitor_all_services()

    assert results == {"up": True, "down": False}
    assert "[OK ] up: OK" in caplog.text
    assert "[FAIL] down: ERROR (boom)" in caplog.text
