"""Fixed-window request limits per user tier and per client IP."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Mapping

from redis.asyncio import Redis
from redis.exceptions import RedisError

from manuscript_observability import record_rate_limited
from manuscript_schemas import UserTier

from .errors import RateLimitError, ServiceUnavailable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
IP_LIMIT = 300
TIER_LIMITS: Mapping[UserTier, int | None] = {
    UserTier.FREE: 60,
    UserTier.PRO: 600,
    UserTier.ENTERPRISE: 6000,
    UserTier.ADMIN: None,
}
EXEMPT_PREFIXES = ("/webhooks/", "/assets/")


class CounterStore(ABC):
    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and return the new value; the first hit sets the TTL."""


class InMemoryCounterStore(CounterStore):
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            now = self._clock()
            value, expires_at = self._counters.get(key, (0, now + ttl_seconds))
            if expires_at <= now:
                value, expires_at = 0, now + ttl_seconds
            value += 1
            self._counters[key] = (value, expires_at)
            return value


class RedisCounterStore(CounterStore):
    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def incr(self, key: str, ttl_seconds: int) -> int:
        try:
            value = await self._redis.incr(key)
            if value == 1:
                await self._redis.expire(key, ttl_seconds)
        except RedisError as err:
            raise ServiceUnavailable(f"Rate limit store unavailable: {err}") from err
        return int(value)


@dataclass(slots=True)
class RateLimitDecision:
    allowed: bool
    scope: str
    limit: int | None
    remaining: int | None
    reset_at: int
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        if self.limit is None:
            return {}
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(self.remaining or 0, 0)),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """The IP window applies to every request; the tier window to signed-in users.

    Admins skip the tier window only.
    """

    def __init__(
        self,
        counters: CounterStore,
        *,
        tier_limits: Mapping[UserTier, int | None] = TIER_LIMITS,
        ip_limit: int = IP_LIMIT,
        window_seconds: int = WINDOW_SECONDS,
        exempt_prefixes: tuple[str, ...] = EXEMPT_PREFIXES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._counters = counters
        self._tier_limits = dict(tier_limits)
        self._ip_limit = ip_limit
        self._window = window_seconds
        self._exempt = exempt_prefixes
        self._clock = clock

    def is_exempt(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._exempt)

    async def _hit(self, scope: str, identity: str, limit: int) -> RateLimitDecision:
        now = self._clock()
        window_start = math.floor(now / self._window) * self._window
        reset_at = int(window_start + self._window)
        count = await self._counters.incr(f"ratelimit:{scope}:{identity}:{int(window_start)}", self._window)
        allowed = count <= limit
        return RateLimitDecision(
            allowed=allowed,
            scope=scope,
            limit=limit,
            remaining=max(limit - count, 0),
            reset_at=reset_at,
            retry_after=0 if allowed else max(1, math.ceil(reset_at - now)),
        )

    async def check(
        self,
        path: str,
        ip: str | None,
        user_id: str | None = None,
        tier: UserTier | None = None,
    ) -> RateLimitDecision:
        now = self._clock()
        unlimited = RateLimitDecision(
            allowed=True, scope="exempt", limit=None, remaining=None, reset_at=int(now)
        )
        if self.is_exempt(path):
            return unlimited

        decision = unlimited
        if ip:
            decision = await self._hit("ip", ip, self._ip_limit)
            if not decision.allowed:
                return decision

        if user_id:
            limit = self._tier_limits.get(tier or UserTier.FREE, self._tier_limits[UserTier.FREE])
            if limit is None:
                return decision
            decision = await self._hit("user", user_id, limit)
        return decision

    async def enforce(
        self,
        path: str,
        ip: str | None,
        user_id: str | None = None,
        tier: UserTier | None = None,
    ) -> RateLimitDecision:
        decision = await self.check(path, ip, user_id, tier)
        if not decision.allowed:
            record_rate_limited(decision.scope)
            logger.info(
                "Request rate limited",
                extra={"scope": decision.scope, "user_id": user_id, "retry_after": decision.retry_after},
            )
            raise RateLimitError(
                "Rate limit exceeded", retry_after=decision.retry_after, limit=decision.limit
            )
        return decision
