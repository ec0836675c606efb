"""Tests for the in-memory and Redis-backed login throttles."""

from __future__ import annotations

import fakeredis
import pytest
from redis.exceptions import ResponseError

from app.config import Settings
from app.security.rate_limiter import SlidingWindowRateLimiter, build_rate_limiter
from app.security.redis_rate_limiter import RedisSlidingWindowRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_memory_limiter_blocks_after_threshold_until_window_passes():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)

    assert limiter.allow("login:alice@x.com")
    assert limiter.allow("login:alice@x.com")
    assert not limiter.allow("login:alice@x.com")
    assert limiter.allow("login:bob@x.com")

    clock.now += 61
    assert limiter.allow("login:alice@x.com")


def test_memory_limiter_reset_clears_attempts():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

    assert limiter.allow("login:alice@x.com")
    assert not limiter.allow("login:alice@x.com")
    limiter.reset("login:alice@x.com")
    assert limiter.allow("login:alice@x.com")
    limiter.reset("login:unknown@x.com")


def test_build_rate_limiter_defaults_to_memory():
    limiter = build_rate_limiter(Settings(rate_limit_backend="memory"))

    assert isinstance(limiter, SlidingWindowRateLimiter)


def test_redis_rate_limiter_allows_within_threshold(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=3, window_seconds=1, key_prefix="test"
    )
    key = "login:alice@x.com"
    assert limiter.allow(key)
    assert limiter.allow(key)
    assert limiter.allow(key)


def test_redis_rate_limiter_blocks_excess(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=1, key_prefix="test"
    )
    key = "login:alice@x.com"
    assert limiter.allow(key)
    assert limiter.allow(key)
    assert not limiter.allow(key)


def test_redis_rate_limiter_reset_clears_window(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=60, key_prefix="test"
    )
    key = "login:alice@x.com"
    assert limiter.allow(key)
    assert not limiter.allow(key)
    limiter.reset(key)
    assert limiter.allow(key)


def test_redis_rate_limiter_window_slides_with_clock(redis_client):
    clock = FakeClock()
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=60, key_prefix="test", clock=clock
    )
    key = "login:alice@x.com"
    assert limiter.allow(key)
    clock.now += 30
    assert not limiter.allow(key)
    clock.now += 31
    assert limiter.allow(key)


def test_redis_rate_limiter_without_scripting_uses_plain_commands(redis_client, monkeypatch):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=60, key_prefix="test", clock=FakeClock()
    )

    def no_scripting(**kwargs):
        raise ResponseError("unknown command 'evalsha'")

    monkeypatch.setattr(limiter, "_record_attempt", no_scripting)
    key = "login:alice@x.com"
    assert limiter.allow(key)
    assert limiter.allow(key)
    assert not limiter.allow(key)
    assert redis_client.zcard(f"test:{key}") == 2


def test_redis_rate_limiter_propagates_other_errors(redis_client, monkeypatch):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=60, key_prefix="test"
    )

    def broken(**kwargs):
        raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")

    monkeypatch.setattr(limiter, "_record_attempt", broken)
    with pytest.raises(ResponseError):
        limiter.allow("login:alice@x.com")
