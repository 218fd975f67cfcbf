"""
Rate Limiter 포트 — 키 단위 카운팅 윈도우 (자동 만료)

백엔드 장애 시 fail-open (허용 + 로그)은 어댑터 책임.
"""
from __future__ import annotations

from abc import abstractmethod
from datetime import timedelta
from typing import Protocol


class RateLimiter(Protocol):

    @abstractmethod
    def try_acquire(self, key: str, window: timedelta, max_requests: int = 1) -> bool:
        """허용되면 True. 거절은 즉시 (대기/큐잉 없음)."""
        ...

    @abstractmethod
    def remaining(self, key: str, window: timedelta, max_requests: int) -> int:
        ...

    @abstractmethod
    def reset(self, key: str) -> None:
        ...
