"""
Attempt 캐시 포트 — 조회용 캐시. 변경 후 엔진이 명시적으로 invalidate.
"""
from __future__ import annotations

from typing import Optional, Protocol

from assessment.domain.attempts.entities import Attempt


class AttemptCache(Protocol):

    def get(self, attempt_id: int) -> Optional[Attempt]:
        ...

    def put(self, attempt: Attempt) -> None:
        ...

    def invalidate(self, attempt_id: int, candidate_id: int) -> None:
        ...


class NullAttemptCache:
    """캐시 미사용."""

    def get(self, attempt_id: int) -> Optional[Attempt]:
        return None

    def put(self, attempt: Attempt) -> None:
        return None

    def invalidate(self, attempt_id: int, candidate_id: int) -> None:
        return None
