"""
tests/test_rate_limit.py -- Integration tests for the slowapi fixed-window limiter.

The rest of the suite runs with RATE_LIMIT_ENABLED=false. These tests switch
the shared limiter back on and clear its in-memory counters around each test.

Covers:
  - the 11th request inside one 6-second window gets 429 with Retry-After
    and the rate_limited envelope
  - GET /health is exempt
"""

from __future__ import annotations

import pytest

from api.limiter import limiter


@pytest.fixture
def limited(monkeypatch):
    monkeypatch.setattr(limiter, "enabled", True)
    limiter.reset()
    yield limiter
    limiter.reset()


def test_eleventh_request_in_window_is_429(api, limited):
    statuses = [api.client.get("/auth/profile").status_code for _ in range(10)]
    assert statuses == [401] * 10

    resp = api.client.get("/auth/profile")
    assert resp.status_code == 429
    body = resp.json()
    assert body["error"]["code"] == "rate_limited"
    assert body["error"]["message"] == "Too many requests."
    assert int(resp.headers["retry-after"]) > 0
    assert resp.headers["x-request-id"]


def test_health_is_exempt(api, limited):
    for _ in range(15):
        assert api.client.get("/health").status_code == 200


def test_limit_is_per_route(api, limited):
    for _ in range(11):
        api.client.get("/auth/profile")
    assert api.client.get("/auth/profile").status_code == 429
    resp = api.client.post("/auth/login", json={"email": "nobody@example.com", "password": "secret1"})
    assert resp.status_code == 401
