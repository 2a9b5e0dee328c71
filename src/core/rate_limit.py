"""Attempt limiting for guest access-code checks.

Access codes are the only secret protecting a guest booking, so every
mismatch is counted per key (booking id or hashed guest email). Once a key
reaches the configured number of consecutive failures it is locked, and the
lock doubles with every further failure up to a ceiling. A successful check
clears the key.

The in-memory backend is enough for a single worker; deployments running
several workers point ``REDIS_URL`` at a shared Redis.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

import redis.asyncio as redis

from .config import settings
from .exceptions import AccessLocked

logger = logging.getLogger(__name__)

MAX_BACKOFF_EXPONENT = 16
MEMORY_MAX_KEYS = 10_000


class AccessAttemptLimiter(ABC):
    def __init__(self, max_attempts: int, lockout_seconds: int, lockout_max_seconds: int):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.lockout_max_seconds = lockout_max_seconds

    def lockout_for(self, failures: int) -> int:
        """Seconds to lock a key that has accumulated ``failures`` mismatches."""
        if failures < self.max_attempts:
            return 0
        exponent = min(failures - self.max_attempts, MAX_BACKOFF_EXPONENT)
        return min(self.lockout_seconds * 2**exponent, self.lockout_max_seconds)

    @abstractmethod
    async def ensure_allowed(self, key: str) -> None:
        """Raise AccessLocked if ``key`` is currently locked."""

    @abstractmethod
    async def record_failure(self, key: str) -> None: ...

    @abstractmethod
    async def reset(self, key: str) -> None: ...


@dataclass
class _AttemptState:
    failures: int = 0
    last_failure_at: float = 0.0
    locked_until: float = 0.0


class MemoryAccessLimiter(AccessAttemptLimiter):
    def __init__(
        self,
        max_attempts: int,
        lockout_seconds: int,
        lockout_max_seconds: int,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = MEMORY_MAX_KEYS,
    ):
        super().__init__(max_attempts, lockout_seconds, lockout_max_seconds)
        self._clock = clock
        self._max_keys = max_keys
        self._states: dict[str, _AttemptState] = {}

    async def ensure_allowed(self, key: str) -> None:
        state = self._states.get(key)
        if state is None:
            return
        remaining = state.locked_until - self._clock()
        if remaining > 0:
            raise AccessLocked(retry_after=math.ceil(remaining))

    async def record_failure(self, key: str) -> None:
        now = self._clock()
        if key not in self._states and len(self._states) >= self._max_keys:
            self._prune(now)
        state = self._states.setdefault(key, _AttemptState())
        state.failures += 1
        state.last_failure_at = now
        lockout = self.lockout_for(state.failures)
        if lockout:
            state.locked_until = now + lockout
            logger.warning("Access key %s locked for %ss after %d failures", key, lockout, state.failures)

    async def reset(self, key: str) -> None:
        self._states.pop(key, None)

    def _prune(self, now: float) -> None:
        stale = [
            key
            for key, state in self._states.items()
            if state.locked_until <= now and now - state.last_failure_at > self.lockout_max_seconds
        ]
        for key in stale:
            del self._states[key]
        overflow = len(self._states) - self._max_keys + 1
        if overflow <= 0:
            return
        # Active lockouts are never evicted.
        unlocked = sorted(
            (key for key, state in self._states.items() if state.locked_until <= now),
            key=lambda key: self._states[key].last_failure_at,
        )
        for key in unlocked[:overflow]:
            del self._states[key]
        if len(self._states) >= self._max_keys:
            logger.warning("Access limiter holds %d locked keys, above the cap of %d", len(self._states), self._max_keys)


class RedisAccessLimiter(AccessAttemptLimiter):
    def __init__(
        self,
        client: redis.Redis,
        max_attempts: int,
        lockout_seconds: int,
        lockout_max_seconds: int,
        prefix: str = "clinicbook:access",
    ):
        super().__init__(max_attempts, lockout_seconds, lockout_max_seconds)
        self.client = client
        self.prefix = prefix

    def _failures_key(self, key: str) -> str:
        return f"{self.prefix}:{key}:failures"

    def _lock_key(self, key: str) -> str:
        return f"{self.prefix}:{key}:lock"

    async def ensure_allowed(self, key: str) -> None:
        ttl = await self.client.ttl(self._lock_key(key))
        if ttl and ttl > 0:
            raise AccessLocked(retry_after=int(ttl))

    async def record_failure(self, key: str) -> None:
        failures_key = self._failures_key(key)
        async with self.client.pipeline(transaction=True) as pipe:
            failures, _ = await pipe.incr(failures_key).expire(failures_key, self.lockout_max_seconds).execute()
        lockout = self.lockout_for(int(failures))
        if lockout:
            await self.client.set(self._lock_key(key), int(failures), ex=lockout)
            logger.warning("Access key %s locked for %ss after %s failures", key, lockout, failures)

    async def reset(self, key: str) -> None:
        await self.client.delete(self._failures_key(key), self._lock_key(key))


@lru_cache(1)
def get_access_limiter() -> AccessAttemptLimiter:
    """Return the process-wide limiter (Redis-backed when REDIS_URL is set)."""
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        return RedisAccessLimiter(
            client,
            settings.access_code_max_attempts,
            settings.access_code_lockout_seconds,
            settings.access_code_lockout_max_seconds,
        )
    return MemoryAccessLimiter(
        settings.access_code_max_attempts,
        settings.access_code_lockout_seconds,
        settings.access_code_lockout_max_seconds,
    )
