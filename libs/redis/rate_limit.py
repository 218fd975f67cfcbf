"""
Redis 기반 Rate Limit

- fixed window: INCR + 최초 요청 시 EXPIRE (키: rate_limit:{key})
- sliding window: Sorted Set (timestamp score) + Lua로 원자적 정리/카운트
- Redis 미사용/장애 시 허용 (fail-open)
"""

from __future__ import annotations

import logging
import time
import uuid

from libs.redis.client import get_redis_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit:"

LOG_RATE_LIMITED = "RATE_LIMITED key=%s count=%s max=%s"

# Lua: 윈도우 밖 항목 제거 → 카운트 → 허용 시 추가 (원자적)
LUA_SLIDING_WINDOW = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local max_requests = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)
local count = redis.call('ZCARD', key)
if count >= max_requests then
    return 0
end
redis.call('ZADD', key, now_ms, member)
redis.call('PEXPIRE', key, window_ms)
return 1
"""


def rate_limit_key(key: str) -> str:
    return f"{KEY_PREFIX}{key}"


def _window_seconds(window_seconds: float) -> int:
    # EXPIRE는 정수 초. 최소 1초.
    return max(1, int(round(window_seconds)))


def is_allowed(key: str, window_seconds: float, max_requests: int = 1) -> bool:
    """fixed window. 허용되면 True."""
    client = get_redis_client()
    if not client:
        return True

    redis_key = rate_limit_key(key)
    try:
        count = client.incr(redis_key)
        if count == 1:
            client.expire(redis_key, _window_seconds(window_seconds))
        if count > max_requests:
            logger.info(LOG_RATE_LIMITED, key, count, max_requests)
            return False
        return True
    except Exception as e:
        logger.warning("Redis rate limit check failed, allowing request: %s", e)
        return True


def is_allowed_sliding(key: str, window_seconds: float, max_requests: int = 1) -> bool:
    """sliding window. 허용되면 True."""
    client = get_redis_client()
    if not client:
        return True

    now_ms = int(time.time() * 1000)
    try:
        allowed = client.eval(
            LUA_SLIDING_WINDOW,
            1,
            rate_limit_key(key),
            now_ms,
            int(window_seconds * 1000),
            max_requests,
            f"{now_ms}:{uuid.uuid4().hex[:8]}",
        )
        if not allowed:
            logger.info(LOG_RATE_LIMITED, key, "sliding", max_requests)
        return bool(allowed)
    except Exception as e:
        logger.warning("Redis sliding rate limit failed, allowing request: %s", e)
        return True


def remaining(key: str, max_requests: int) -> int:
    """fixed window 잔여 허용 횟수. Redis 미사용/장애 시 max_requests."""
    client = get_redis_client()
    if not client:
        return max_requests
    try:
        raw = client.get(rate_limit_key(key))
        used = int(raw) if raw is not None else 0
        return max(0, max_requests - used)
    except Exception as e:
        logger.warning("Redis rate limit read failed: %s", e)
        return max_requests


def reset(key: str) -> None:
    client = get_redis_client()
    if not client:
        return
    try:
        client.delete(rate_limit_key(key))
    except Exception as e:
        logger.warning("Redis rate limit reset failed: %s", e)
