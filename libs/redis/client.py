"""
Redis 클라이언트 (lock / rate limit / attempt 캐시 공용)

- REDIS_URL 우선, 없으면 REDIS_HOST/PORT/PASSWORD/DB
- 미설정 또는 연결 실패 시 None → 호출부는 fail-open (DB 제약/락만으로 진행)
- 연결 실패는 REDIS_RETRY_SECONDS 동안만 캐시: 그 사이 요청은 재연결 시도하지 않음
- 미설정은 영구 캐시 (reset_redis_state로 초기화)
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

import redis

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_TIMEOUT_SECONDS = 5.0
DEFAULT_RETRY_SECONDS = 30.0

_redis_client: Optional[redis.Redis] = None
_redis_available: Optional[bool] = None
_retry_at: Optional[float] = None


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


def _socket_timeout() -> float:
    return _env_float("REDIS_SOCKET_TIMEOUT_SECONDS", DEFAULT_SOCKET_TIMEOUT_SECONDS)


def _retry_seconds() -> float:
    return _env_float("REDIS_RETRY_SECONDS", DEFAULT_RETRY_SECONDS)


def _build_client() -> Optional[redis.Redis]:
    timeout = _socket_timeout()
    url = os.getenv("REDIS_URL")
    if url:
        return redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    host = os.getenv("REDIS_HOST")
    if not host:
        return None
    return redis.Redis(
        host=host,
        port=int(os.getenv("REDIS_PORT", "6379")),
        password=os.getenv("REDIS_PASSWORD") or None,
        db=int(os.getenv("REDIS_DB", "0")),
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


def get_redis_client() -> Optional[redis.Redis]:
    global _redis_client, _redis_available, _retry_at

    if _redis_client is not None:
        return _redis_client
    if _redis_available is False:
        if _retry_at is None or time.monotonic() < _retry_at:
            return None
        logger.info("REDIS_RETRY | reconnecting after failure")

    try:
        client = _build_client()
        if client is None:
            logger.debug("REDIS_URL/REDIS_HOST not set, Redis disabled")
            _redis_available = False
            _retry_at = None
            return None
        client.ping()
    except Exception as e:
        retry = _retry_seconds()
        logger.warning("REDIS_UNAVAILABLE | fail-open, retry in %.0fs: %s", retry, e)
        _redis_available = False
        _retry_at = time.monotonic() + retry
        return None

    _redis_client = client
    _redis_available = True
    _retry_at = None
    logger.info("REDIS_CONNECTED | %s", client.connection_pool.connection_kwargs.get("host"))
    return client


def is_redis_available() -> bool:
    return get_redis_client() is not None


def reset_redis_state():
    """테스트용: 연결/실패 캐시 초기화"""
    global _redis_client, _redis_available, _retry_at
    _redis_client = None
    _redis_available = None
    _retry_at = None
