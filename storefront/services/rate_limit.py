from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol

import redis

from storefront.core.config import settings

_LOG = logging.getLogger("storefront.rate_limit")


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    current_value: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current_value)


class RateLimiter(Protocol):
    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        ...


class InMemoryRateLimiter:
    def __init__(self, max_keys: int = 10_000):
        self._data: dict[str, tuple[int, datetime]] = {}
        self._lock = Lock()
        self._max_keys = max_keys

    def _prune(self, now: datetime) -> None:
        # Per-client keys accumulate; drop finished windows once the table grows.
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)
        with self._lock:
            if len(self._data) >= self._max_keys:
                self._prune(now)
            count, expires_at = self._data.get(key, (0, now))
            if expires_at <= now:
                count = 0
                expires_at = now + timedelta(seconds=max(int(window_seconds), 1))
            count += 1
            self._data[key] = (count, expires_at)
            retry_after = max(0, int((expires_at - now).total_seconds()))
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=retry_after, current_value=count, limit=limit)


class RedisRateLimiter:
    def __init__(self, client: redis.Redis):
        self.client = client

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        try:
            count = int(self.client.incr(key))
            if count == 1:
                self.client.expire(key, int(max(window_seconds, 1)))
            ttl = int(self.client.ttl(key))
        except redis.RedisError:
            # Redis went away after startup; let the request through.
            _LOG.warning("Redis limiter unavailable; request not counted key=%s", key)
            return RateLimitResult(allowed=True, retry_after_seconds=0, current_value=0, limit=limit)
        if ttl < 0:
            ttl = int(max(window_seconds, 1))
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=ttl, current_value=count, limit=limit)


_cached_limiter: RateLimiter | None = None


def _build_limiter() -> RateLimiter:
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisRateLimiter(client)
    except redis.RedisError:
        _LOG.warning("Redis limiter unavailable; fallback to in-memory limiter")
        return InMemoryRateLimiter()


def get_rate_limiter() -> RateLimiter:
    global _cached_limiter
    if _cached_limiter is None:
        _cached_limiter = _build_limiter()
    return _cached_limiter


def reset_rate_limiter_for_tests() -> None:
    global _cached_limiter
    _cached_limiter = None


def client_rate_limit_key(ip: str | None) -> str:
    return f"storefront:rl:{ip or 'unknown'}"
