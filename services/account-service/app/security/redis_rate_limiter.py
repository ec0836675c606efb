"""Redis-backed login throttle shared by every service replica."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Final

from redis import Redis
from redis.exceptions import ResponseError

logger = logging.getLogger(__name__)


class RedisSlidingWindowRateLimiter:
    """Count login attempts per key in a Redis sorted set scored by attempt time."""

    # KEYS[1]: attempt set; ARGV: now_ms, window_ms, max_requests, attempt id.
    # Returns the attempt count including this one, or -1 when the window is full.
    _RECORD_ATTEMPT: Final[str] = """
    local now_ms = tonumber(ARGV[1])
    local window_ms = tonumber(ARGV[2])
    redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', now_ms - window_ms)
    local attempts = redis.call('ZCARD', KEYS[1])
    if attempts >= tonumber(ARGV[3]) then
        return -1
    end
    redis.call('ZADD', KEYS[1], now_ms, ARGV[4])
    redis.call('PEXPIRE', KEYS[1], window_ms)
    return attempts + 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "login-attempts",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._clock = clock
        self._record_attempt = client.register_script(self._RECORD_ATTEMPT)

    def allow(self, key: str) -> bool:
        """Record an attempt; ``False`` once ``key`` has exhausted its window."""
        redis_key = f"{self._key_prefix}:{key}"
        now_ms = int(self._clock() * 1000)
        attempt_id = uuid.uuid4().hex
        try:
            attempts = self._record_attempt(
                keys=[redis_key],
                args=[now_ms, self._window_ms, self._max_requests, attempt_id],
            )
        except ResponseError as exc:
            if "unknown command" not in str(exc).lower():
                raise
            logger.debug("redis scripting unavailable, recording attempt with plain commands")
            attempts = self._record_attempt_without_script(redis_key, now_ms, attempt_id)
        return int(attempts) > 0

    def reset(self, key: str) -> None:
        """Forget every attempt recorded for ``key``."""
        self._client.delete(f"{self._key_prefix}:{key}")

    def _record_attempt_without_script(self, redis_key: str, now_ms: int, attempt_id: str) -> int:
        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, "-inf", now_ms - self._window_ms)
        pipe.zcard(redis_key)
        attempts = pipe.execute()[1]
        if attempts >= self._max_requests:
            return -1
        pipe = self._client.pipeline(transaction=True)
        pipe.zadd(redis_key, {attempt_id: now_ms})
        pipe.pexpire(redis_key, self._window_ms)
        pipe.execute()
        return attempts + 1
