"""
Attempt 조회 Redis 캐싱 (attempt / candidate 네임스페이스)

- 정산된 상태(채점/종료)는 긴 TTL, 아직 전이 중인 상태는 짧은 TTL
  (읽기-후-put이 다른 요청의 invalidate보다 늦게 도착하면 stale 스냅샷이 남을 수 있음)
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from libs.redis.client import get_redis_client

from assessment.domain.attempts.entities import SCORED_STATUSES, TERMINAL_STATUSES, Attempt

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 1800
DEFAULT_ACTIVE_CACHE_TTL_SECONDS = 30

_SETTLED_STATUSES = frozenset(SCORED_STATUSES) | frozenset(TERMINAL_STATUSES)


def _attempt_key(attempt_id: int) -> str:
    return f"attempt:{attempt_id}"


def _candidate_attempts_key(candidate_id: int) -> str:
    return f"candidate:{candidate_id}:attempts"


class RedisAttemptCache:
    """AttemptCache 구현. Redis 미사용/장애 시 캐시 miss로 동작."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        active_ttl_seconds: int = DEFAULT_ACTIVE_CACHE_TTL_SECONDS,
    ) -> None:
        self._ttl = ttl_seconds
        self._active_ttl = min(active_ttl_seconds, ttl_seconds)

    def ttl_for(self, attempt: Attempt) -> int:
        return self._ttl if attempt.status in _SETTLED_STATUSES else self._active_ttl

    def get(self, attempt_id: int) -> Optional[Attempt]:
        try:
            client = get_redis_client()
            if not client:
                return None
            raw = client.get(_attempt_key(attempt_id))
            if not raw:
                return None
            return Attempt.from_dict(json.loads(raw))
        except Exception as e:
            logger.debug("Redis attempt lookup failed: %s", e)
            return None

    def put(self, attempt: Attempt) -> None:
        if attempt.id is None:
            return
        try:
            client = get_redis_client()
            if not client:
                return
            client.setex(
                _attempt_key(attempt.id),
                self.ttl_for(attempt),
                json.dumps(attempt.to_dict(), default=str),
            )
        except Exception as e:
            logger.warning("Failed to cache attempt in Redis: %s", e)

    def invalidate(self, attempt_id: int, candidate_id: int) -> None:
        try:
            client = get_redis_client()
            if not client:
                return
            client.delete(_attempt_key(attempt_id), _candidate_attempts_key(candidate_id))
        except Exception as e:
            logger.warning("Failed to invalidate attempt cache: %s", e)
