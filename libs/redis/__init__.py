"""
Redis 보호 레이어

DB 트랜잭션/제약이 정합성의 기준.
Redis는 "보호 및 가속" 목적으로만 사용.

- Rate Limit (응답 제출 빈도 제한)
- 키 락 (행이 없는 구간의 check-then-insert 직렬화)
- Attempt 조회 캐시

Redis 장애 시 fail-open (허용 + 로그).
"""

from libs.redis.client import get_redis_client, is_redis_available

__all__ = [
    "get_redis_client",
    "is_redis_available",
]
