"""
Redis 기반 키 락 (SET NX EX)

DB row lock이 걸릴 행이 아직 없는 구간(check-then-insert)을 보호한다.
- 키: lock:{name}
- 값: 소유자 토큰 (해제 시 본인 토큰일 때만 DEL)
- 획득 실패 시 poll 간격으로 재시도, timeout 초과 시 False
- Redis 미사용/장애 시 True (DB 제약이 최종 방어선)
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from libs.redis.client import get_redis_client

logger = logging.getLogger(__name__)

LOG_LOCK_ACQUIRED = "REDIS_LOCK name=%s acquired"
LOG_LOCK_RELEASED = "REDIS_LOCK name=%s released"
LOG_LOCK_TIMEOUT = "REDIS_LOCK name=%s timeout=%.1fs"

DEFAULT_LOCK_TTL_SECONDS = 30
DEFAULT_POLL_INTERVAL_SECONDS = 0.05

# 토큰 비교 후 삭제 (원자적)
LUA_RELEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


def _key(name: str) -> str:
    return f"lock:{name}"


def acquire_lock(
    name: str,
    timeout_seconds: float,
    ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
) -> tuple[bool, Optional[str]]:
    """
    Returns:
        (True, token): 락 획득. token은 release_lock에 전달.
        (True, None): Redis 미사용 또는 장애 → 락 없이 진행
        (False, None): timeout 내 획득 실패
    """
    client = get_redis_client()
    if not client:
        return True, None

    token = uuid.uuid4().hex
    key = _key(name)
    deadline = time.monotonic() + max(0.0, timeout_seconds)
    try:
        while True:
            if client.set(key, token, nx=True, ex=ttl_seconds):
                logger.debug(LOG_LOCK_ACQUIRED, name)
                return True, token
            if time.monotonic() >= deadline:
                logger.warning(LOG_LOCK_TIMEOUT, name, timeout_seconds)
                return False, None
            time.sleep(poll_interval)
    except Exception as e:
        logger.warning("Redis lock acquire failed, proceeding without lock: %s", e)
        return True, None


def release_lock(name: str, token: Optional[str]) -> None:
    if token is None:
        return
    client = get_redis_client()
    if not client:
        return
    try:
        client.eval(LUA_RELEASE, 1, _key(name), token)
        logger.debug(LOG_LOCK_RELEASED, name)
    except Exception as e:
        logger.warning("Redis lock release failed: %s", e)
        # TTL 만료 시 자동 해제되므로 치명적이지 않음
