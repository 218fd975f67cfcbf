"""
RateLimiter 구현

- RedisRateLimiter: 여러 프로세스 공유 (libs.redis.rate_limit, fail-open)
- InMemoryRateLimiter: 단일 프로세스 sliding window (Clock 주입, 테스트/Redis 미설정 환경)
"""
from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Optional

from libs.redis import rate_limit

from assessment.application.ports.clock import Clock


class RedisRateLimiter:

    def __init__(self, sliding: bool = False) -> None:
        self._sliding = sliding

    def try_acquire(self, key: str, window: timedelta, max_requests: int = 1) -> bool:
        seconds = window.total_seconds()
        if self._sliding:
            return rate_limit.is_allowed_sliding(key, seconds, max_requests)
        return rate_limit.is_allowed(key, seconds, max_requests)

    def remaining(self, key: str, window: timedelta, max_requests: int) -> int:
        return rate_limit.remaining(key, max_requests)

    def reset(self, key: str) -> None:
        rate_limit.reset(key)


class InMemoryRateLimiter:
    """키별 hit 기록은 window가 지나면 제거 (idle 키는 주기적으로 일괄 정리)."""

    SWEEP_INTERVAL = timedelta(minutes=1)

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, deque[datetime]] = {}
        self._windows: dict[str, timedelta] = {}
        self._next_sweep: Optional[datetime] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def _prune(self, key: str, window: timedelta, now: datetime) -> deque[datetime]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        while hits and now - hits[0] >= window:
            hits.popleft()
        if not hits:
            del self._hits[key]
            self._windows.pop(key, None)
        return hits

    def _sweep_idle(self, now: datetime) -> None:
        if self._next_sweep is not None and now < self._next_sweep:
            return
        self._next_sweep = now + self.SWEEP_INTERVAL
        for key in list(self._hits):
            self._prune(key, self._windows[key], now)

    def try_acquire(self, key: str, window: timedelta, max_requests: int = 1) -> bool:
        now = self._clock.now()
        with self._lock:
            self._sweep_idle(now)
            hits = self._prune(key, window, now)
            if len(hits) >= max_requests:
                return False
            hits.append(now)
            self._hits[key] = hits
            self._windows[key] = max(window, self._windows.get(key, window))
            return True

    def remaining(self, key: str, window: timedelta, max_requests: int) -> int:
        now = self._clock.now()
        with self._lock:
            return max(0, max_requests - len(self._prune(key, window, now)))

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)
            self._windows.pop(key, None)
