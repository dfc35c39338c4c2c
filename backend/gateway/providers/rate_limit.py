from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

import redis
from redis.exceptions import RedisError

from gateway.providers.errors import RateLimitExceededError
from gateway.providers.models import Provider, period_seconds


logger = logging.getLogger("gateway.provider.rate_limit")


@dataclass(frozen=True)
class Window:
    key: str
    period: str
    limit: int
    ttl_seconds: int
    resets_at: float


@dataclass(frozen=True)
class Admission:
    provider_name: str
    windows: tuple[Window, ...]


@dataclass(frozen=True)
class WindowUsage:
    period: str
    count: int
    limit: int
    resets_in_seconds: float


class CounterStore(Protocol):
    def reserve(self, windows: Sequence[Window], now: float) -> Window | None:
        """Increment every window, or none of them.

        Returns the first window already at its limit, or None when the
        slot was reserved.
        """
        ...

    def release(self, windows: Sequence[Window], now: float) -> None:
        ...

    def count(self, window: Window, now: float) -> int:
        ...


class InMemoryCounterStore:
    """Process-local counters. Expired buckets are swept on every reservation."""

    def __init__(self) -> None:
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._counters.items() if now >= expires_at]
        for key in expired:
            del self._counters[key]

    def _current(self, key: str, now: float) -> int:
        entry = self._counters.get(key)
        if entry is None:
            return 0
        count, expires_at = entry
        if now >= expires_at:
            del self._counters[key]
            return 0
        return count

    def reserve(self, windows: Sequence[Window], now: float) -> Window | None:
        with self._lock:
            self._sweep(now)
            for window in windows:
                if self._current(window.key, now) >= window.limit:
                    return window
            for window in windows:
                count = self._current(window.key, now)
                self._counters[window.key] = (count + 1, window.resets_at)
            return None

    def release(self, windows: Sequence[Window], now: float) -> None:
        with self._lock:
            for window in windows:
                count = self._current(window.key, now)
                if count > 0:
                    _, expires_at = self._counters[window.key]
                    self._counters[window.key] = (count - 1, expires_at)

    def count(self, window: Window, now: float) -> int:
        with self._lock:
            return self._current(window.key, now)


_RESERVE_SCRIPT = """
for i, key in ipairs(KEYS) do
  local current = tonumber(redis.call('GET', key) or '0')
  if current >= tonumber(ARGV[(i - 1) * 2 + 1]) then
    return i
  end
end
for i, key in ipairs(KEYS) do
  local value = redis.call('INCR', key)
  if value == 1 then
    redis.call('EXPIRE', key, tonumber(ARGV[(i - 1) * 2 + 2]))
  end
end
return 0
"""

_RELEASE_SCRIPT = """
for _, key in ipairs(KEYS) do
  local current = tonumber(redis.call('GET', key) or '0')
  if current > 0 then
    redis.call('DECR', key)
  end
end
return 0
"""


class RedisCounterStore:
    """Counters shared by every worker through Redis.

    Reservation runs as a Lua script so the check and the increments of all
    windows happen in one atomic step. When Redis is unreachable the store
    fails open, like the API rate-limit middleware.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._reserve = client.register_script(_RESERVE_SCRIPT)
        self._release = client.register_script(_RELEASE_SCRIPT)

    def reserve(self, windows: Sequence[Window], now: float) -> Window | None:  # noqa: ARG002
        if not windows:
            return None
        args: list[int] = []
        for window in windows:
            args.extend([window.limit, window.ttl_seconds])
        try:
            blocked_index = int(self._reserve(keys=[window.key for window in windows], args=args))
        except RedisError:
            logger.warning("provider_rate_limit_redis_unavailable_fail_open")
            return None
        if blocked_index <= 0:
            return None
        return windows[blocked_index - 1]

    def release(self, windows: Sequence[Window], now: float) -> None:  # noqa: ARG002
        if not windows:
            return
        try:
            self._release(keys=[window.key for window in windows], args=[])
        except RedisError:
            logger.warning("provider_rate_limit_redis_unavailable_release_skipped")

    def count(self, window: Window, now: float) -> int:  # noqa: ARG002
        try:
            value = self._client.get(window.key)
        except RedisError:
            return 0
        return int(value or 0)


class RateLimiter:
    """Fixed-window admission control per provider and period.

    Buckets are aligned on wall-clock period boundaries, so a burst at the
    end of one bucket and the start of the next can reach twice the limit
    over a short span.
    """

    def __init__(
        self,
        store: CounterStore | None = None,
        *,
        key_prefix: str = "api_rate_limit",
        count_failed_requests: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store if store is not None else InMemoryCounterStore()
        self._key_prefix = key_prefix
        self.count_failed_requests = count_failed_requests
        self._clock = clock

    def windows_for(self, provider: Provider, now: float | None = None) -> list[Window]:
        now_value = self._clock() if now is None else now
        windows: list[Window] = []
        for period, rule in provider.rate_limits.items():
            seconds = period_seconds(period)
            bucket = int(now_value // seconds)
            windows.append(
                Window(
                    key=f"{self._key_prefix}:{provider.name}:{period}:{bucket}",
                    period=period,
                    limit=rule.max_requests,
                    ttl_seconds=seconds,
                    resets_at=float((bucket + 1) * seconds),
                )
            )
        return windows

    def try_admit(self, provider: Provider) -> Admission:
        """Reserve one request slot in every configured window.

        Raises RateLimitExceededError when any window is already full; in
        that case no window is touched.
        """
        now = self._clock()
        windows = self.windows_for(provider, now)
        blocked = self._store.reserve(windows, now)
        if blocked is not None:
            retry_after = max(0.0, math.ceil(blocked.resets_at - now))
            raise RateLimitExceededError(retry_after, period=blocked.period)
        return Admission(provider_name=provider.name, windows=tuple(windows))

    def record_success(self, admission: Admission) -> None:
        logger.debug(
            "Provider quota consumed.",
            extra={"event": "provider.rate_limit.consumed", "provider": admission.provider_name},
        )

    def record_failure(self, admission: Admission) -> None:
        if self.count_failed_requests:
            return
        self._store.release(admission.windows, self._clock())

    def usage(self, provider: Provider) -> list[WindowUsage]:
        now = self._clock()
        return [
            WindowUsage(
                period=window.period,
                count=self._store.count(window, now),
                limit=window.limit,
                resets_in_seconds=max(0.0, window.resets_at - now),
            )
            for window in self.windows_for(provider, now)
        ]
