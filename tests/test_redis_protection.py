"""libs.redis 보호 레이어 — Redis 미설정/장애 시 fail-open."""
from datetime import timedelta
from unittest import mock

import pytest

from assessment.adapters.cache.rate_limiters import InMemoryRateLimiter, RedisRateLimiter
from assessment.adapters.cache.redis_attempt_cache import RedisAttemptCache
from assessment.domain.attempts.entities import Attempt, AttemptStatus
from libs.redis import client as redis_client_module
from libs.redis import lock as redis_lock
from libs.redis import rate_limit

from conftest import T0, ManualClock


@pytest.fixture(autouse=True)
def _reset_redis_state():
    redis_client_module.reset_redis_state()
    yield
    redis_client_module.reset_redis_state()


class TestClient:
    def test_disabled_without_host(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.delenv("REDIS_HOST", raising=False)
        assert redis_client_module.get_redis_client() is None
        assert redis_client_module.is_redis_available() is False

    def test_connection_failure_returns_none(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.setenv("REDIS_HOST", "redis.invalid")
        fake = mock.Mock()
        fake.ping.side_effect = ConnectionError("refused")
        with mock.patch.object(redis_client_module.redis, "Redis", return_value=fake):
            assert redis_client_module.get_redis_client() is None

    def test_reconnects_after_retry_window(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.setenv("REDIS_HOST", "redis.internal")
        monkeypatch.setenv("REDIS_RETRY_SECONDS", "30")
        down = mock.Mock()
        down.ping.side_effect = ConnectionError("refused")
        up = mock.Mock()
        now = [1000.0]

        with mock.patch.object(redis_client_module.time, "monotonic", side_effect=lambda: now[0]), \
                mock.patch.object(redis_client_module.redis, "Redis", side_effect=[down, up]) as factory:
            assert redis_client_module.get_redis_client() is None
            now[0] += 10
            assert redis_client_module.get_redis_client() is None
            assert factory.call_count == 1

            now[0] += 25
            assert redis_client_module.get_redis_client() is up
            assert redis_client_module.get_redis_client() is up
            assert factory.call_count == 2


class TestFixedWindow:
    def test_allows_when_redis_disabled(self):
        with mock.patch.object(rate_limit, "get_redis_client", return_value=None):
            assert all(rate_limit.is_allowed("answer:1:2", 2, 1) for _ in range(5))

    def test_allows_when_redis_errors(self):
        broken = mock.Mock()
        broken.incr.side_effect = ConnectionError("down")
        with mock.patch.object(rate_limit, "get_redis_client", return_value=broken):
            assert rate_limit.is_allowed("answer:1:2", 2, 1) is True

    def test_counts_and_sets_expiry_once(self):
        client = mock.Mock()
        client.incr.side_effect = [1, 2, 3]
        with mock.patch.object(rate_limit, "get_redis_client", return_value=client):
            results = [rate_limit.is_allowed("answer:1:2", 2, 1) for _ in range(3)]

        assert results == [True, False, False]
        client.expire.assert_called_once_with("rate_limit:answer:1:2", 2)

    def test_sub_second_window_expires_in_at_least_one_second(self):
        client = mock.Mock()
        client.incr.return_value = 1
        with mock.patch.object(rate_limit, "get_redis_client", return_value=client):
            rate_limit.is_allowed("k", 0.2, 1)
        client.expire.assert_called_once_with("rate_limit:k", 1)

    def test_remaining_and_reset(self):
        client = mock.Mock()
        client.get.return_value = "1"
        with mock.patch.object(rate_limit, "get_redis_client", return_value=client):
            assert rate_limit.remaining("k", 3) == 2
            rate_limit.reset("k")
        client.delete.assert_called_once_with("rate_limit:k")

    def test_sliding_window_uses_lua(self):
        client = mock.Mock()
        client.eval.return_value = 0
        with mock.patch.object(rate_limit, "get_redis_client", return_value=client):
            assert rate_limit.is_allowed_sliding("k", 2, 1) is False
        args = client.eval.call_args[0]
        assert args[1:3] == (1, "rate_limit:k")
        assert args[4] == 2000


class TestRateLimiterAdapters:
    def test_redis_limiter_delegates_window_seconds(self):
        with mock.patch.object(rate_limit, "is_allowed", return_value=False) as allowed:
            assert RedisRateLimiter().try_acquire("k", timedelta(seconds=2), 1) is False
        allowed.assert_called_once_with("k", 2.0, 1)

    def test_in_memory_limiter_window(self):
        clock = ManualClock(T0)
        limiter = InMemoryRateLimiter(clock)
        window = timedelta(seconds=2)

        assert limiter.try_acquire("k", window) is True
        assert limiter.try_acquire("k", window) is False
        assert limiter.remaining("k", window, 1) == 0
        clock.advance(seconds=2)
        assert limiter.try_acquire("k", window) is True
        limiter.reset("k")
        assert limiter.remaining("k", window, 1) == 1

    def test_in_memory_limiter_keys_are_independent(self):
        limiter = InMemoryRateLimiter(ManualClock(T0))
        window = timedelta(seconds=2)
        assert limiter.try_acquire("answer:1:2", window) is True
        assert limiter.try_acquire("answer:1:3", window) is True

    def test_in_memory_limiter_drops_idle_keys(self):
        clock = ManualClock(T0)
        limiter = InMemoryRateLimiter(clock)
        window = timedelta(seconds=2)
        for question_id in range(50):
            limiter.try_acquire(f"answer:1:{question_id}", window)
        assert len(limiter) == 50

        clock.advance(minutes=2)
        assert limiter.try_acquire("answer:2:1", window) is True
        assert len(limiter) == 1

    def test_in_memory_limiter_expired_key_is_removed_on_access(self):
        clock = ManualClock(T0)
        limiter = InMemoryRateLimiter(clock)
        window = timedelta(seconds=2)
        limiter.try_acquire("k", window)
        clock.advance(seconds=3)
        assert limiter.remaining("k", window, 1) == 1
        assert len(limiter) == 0


class TestKeyLock:
    def test_proceeds_without_redis(self):
        with mock.patch.object(redis_lock, "get_redis_client", return_value=None):
            assert redis_lock.acquire_lock("attempt_pair:1:2", 0.1) == (True, None)

    def test_times_out_when_held(self):
        client = mock.Mock()
        client.set.return_value = False
        with mock.patch.object(redis_lock, "get_redis_client", return_value=client):
            ok, token = redis_lock.acquire_lock("attempt_pair:1:2", 0.05, poll_interval=0.01)
        assert (ok, token) == (False, None)

    def test_acquire_and_release_with_token(self):
        client = mock.Mock()
        client.set.return_value = True
        with mock.patch.object(redis_lock, "get_redis_client", return_value=client):
            ok, token = redis_lock.acquire_lock("attempt_pair:1:2", 1)
            redis_lock.release_lock("attempt_pair:1:2", token)

        assert ok is True and token
        client.set.assert_called_once_with("lock:attempt_pair:1:2", token, nx=True, ex=30)
        assert client.eval.call_args[0][2:] == ("lock:attempt_pair:1:2", token)

    def test_redis_error_fails_open(self):
        client = mock.Mock()
        client.set.side_effect = ConnectionError("down")
        with mock.patch.object(redis_lock, "get_redis_client", return_value=client):
            assert redis_lock.acquire_lock("x", 1) == (True, None)


class TestAttemptCache:
    def _attempt(self):
        return Attempt(id=3, test_id=1, candidate_id=42, status=AttemptStatus.IN_PROGRESS, started_at=T0)

    def test_round_trip_through_redis(self):
        store = {}
        client = mock.Mock()
        client.setex.side_effect = lambda k, ttl, v: store.__setitem__(k, v)
        client.get.side_effect = lambda k: store.get(k)
        with mock.patch("assessment.adapters.cache.redis_attempt_cache.get_redis_client", return_value=client):
            cache = RedisAttemptCache(ttl_seconds=1800)
            cache.put(self._attempt())
            assert cache.get(3) == self._attempt()
            cache.invalidate(3, 42)

        assert client.setex.call_args[0][:2] == ("attempt:3", 30)
        client.delete.assert_called_once_with("attempt:3", "candidate:42:attempts")

    def test_miss_without_redis(self):
        with mock.patch("assessment.adapters.cache.redis_attempt_cache.get_redis_client", return_value=None):
            cache = RedisAttemptCache()
            cache.put(self._attempt())
            assert cache.get(3) is None

    def test_ttl_depends_on_status(self):
        client = mock.Mock()
        with mock.patch("assessment.adapters.cache.redis_attempt_cache.get_redis_client", return_value=client):
            cache = RedisAttemptCache(ttl_seconds=1800, active_ttl_seconds=30)
            in_progress = self._attempt()
            cache.put(in_progress)
            graded = self._attempt()
            graded.status = AttemptStatus.GRADED
            cache.put(graded)

        ttls = [c[0][1] for c in client.setex.call_args_list]
        assert ttls == [30, 1800]
        assert cache.ttl_for(Attempt(id=4, test_id=1, candidate_id=42, status=AttemptStatus.REGISTERED)) == 30
