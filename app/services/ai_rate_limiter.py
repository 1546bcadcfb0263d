"""
Fixed-window rate limits for AI actions.
- Key: {client_identity}:{action}; each action has its own ceiling (default for unlisted actions).
- First request of a window (or first after it expired) starts a fresh counter at 1.
- Once the ceiling is reached, requests are denied until the window resets; the counter stays at the ceiling.

Counters live behind RateLimitStore. InMemoryRateLimitStore is per process, so with N warm instances
a client effectively gets N times the configured ceiling. RedisRateLimitStore shares counters across
instances and is used when redis_url is set.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_in_seconds: int


class RateLimitStore(Protocol):
    name: str

    async def allow(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision: ...


@dataclass
class _Counter:
    count: int
    window_reset_at: float


class InMemoryRateLimitStore:
    """
    Process-local counters. Mutations happen between await points, so the event loop
    never interleaves two updates of the same counter.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_keys: int = 10000):
        self._clock = clock
        self._max_keys = max_keys
        self._counters: dict[str, _Counter] = {}

    def __len__(self) -> int:
        return len(self._counters)

    def _sweep(self, now: float) -> None:
        expired = [k for k, c in self._counters.items() if now > c.window_reset_at]
        for k in expired:
            del self._counters[k]
        if expired:
            logger.debug("Rate limit sweep removed %d expired counters", len(expired))

    async def allow(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = self._clock()
        counter = self._counters.get(key)

        if counter is None or now > counter.window_reset_at:
            if counter is None and len(self._counters) >= self._max_keys:
                self._sweep(now)
            self._counters[key] = _Counter(count=1, window_reset_at=now + window_seconds)
            return RateLimitDecision(allowed=True, remaining=max(0, limit - 1), reset_in_seconds=window_seconds)

        reset_in = max(0, math.ceil(counter.window_reset_at - now))
        if counter.count >= limit:
            counter.count = limit
            return RateLimitDecision(allowed=False, remaining=0, reset_in_seconds=reset_in)

        counter.count += 1
        return RateLimitDecision(allowed=True, remaining=limit - counter.count, reset_in_seconds=reset_in)


# KEYS[1] = counter key; ARGV[1] = limit; ARGV[2] = window seconds.
# Returns {allowed (0/1), count, ttl seconds}.
FIXED_WINDOW_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
    redis.call('SET', KEYS[1], 1, 'EX', ARGV[2])
    return {1, 1, tonumber(ARGV[2])}
end
local ttl = redis.call('TTL', KEYS[1])
local count = tonumber(current)
if count >= tonumber(ARGV[1]) then
    return {0, count, ttl}
end
count = redis.call('INCR', KEYS[1])
return {1, count, ttl}
"""


class RedisRateLimitStore:
    """Counters shared by every gateway instance. Redis errors fail open (request allowed, warning logged)."""

    name = "redis"
    KEY_PREFIX = "rate_limit:"

    def __init__(self, redis_client: Any):
        self._redis = redis_client

    async def allow(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        try:
            allowed, count, ttl = await self._redis.eval(
                FIXED_WINDOW_SCRIPT, 1, f"{self.KEY_PREFIX}{key}", limit, window_seconds
            )
        except (RedisError, OSError) as e:
            logger.warning("Redis rate limit check failed for %s (allowing request): %s", key, e)
            return RateLimitDecision(allowed=True, remaining=max(0, limit - 1), reset_in_seconds=window_seconds)

        ttl = int(ttl) if int(ttl) >= 0 else window_seconds
        if not int(allowed):
            return RateLimitDecision(allowed=False, remaining=0, reset_in_seconds=ttl)
        return RateLimitDecision(allowed=True, remaining=max(0, limit - int(count)), reset_in_seconds=ttl)


class ActionRateLimiter:
    """Per-action ceilings on top of a counter store."""

    def __init__(
        self,
        store: RateLimitStore,
        limits: dict[str, int],
        default_limit: int,
        window_seconds: int,
    ):
        self.store = store
        self.limits = dict(limits)
        self.default_limit = default_limit
        self.window_seconds = window_seconds

    def limit_for(self, action: str) -> int:
        return self.limits.get(action, self.default_limit)

    async def check(self, client_identity: str, action: str) -> RateLimitDecision:
        limit = self.limit_for(action)
        decision = await self.store.allow(f"{client_identity}:{action}", limit, self.window_seconds)
        if not decision.allowed:
            logger.info("Rate limit reached for %s on %s (%d per %ds)", client_identity, action, limit, self.window_seconds)
        return decision
