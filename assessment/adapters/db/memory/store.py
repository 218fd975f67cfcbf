"""
In-memory 저장소 — 단일 프로세스용 (테스트 / 로컬 실행)

DB의 row lock / partial unique 제약을 keyed threading.Lock과 commit 시 검사로 흉내낸다.
엔티티는 항상 deepcopy로 주고받는다.
"""
from __future__ import annotations

import copy
import itertools
import logging
import threading
from typing import Optional

from assessment.domain.attempts.entities import Answer, Attempt, TestDefinition
from assessment.domain.attempts.errors import LockTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class KeyedLocks:
    """키 단위 배타 락. 키는 최초 요청 시 생성, 대기/보유자가 없으면 제거."""

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        # key -> [lock, 대기+보유 수]
        self._locks: dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def acquire(self, key: str) -> None:
        if not self._checkout(key).acquire(timeout=self._timeout):
            self._checkin(key)
            logger.warning("LOCK_TIMEOUT | key=%s timeout=%.1fs", key, self._timeout)
            raise LockTimeoutError(key, self._timeout)

    def release(self, key: str) -> None:
        with self._guard:
            lock = self._locks[key][0]
        lock.release()
        self._checkin(key)


class InMemoryStore:

    def __init__(self, lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS) -> None:
        self.mutex = threading.RLock()
        self.locks = KeyedLocks(lock_timeout_seconds)
        self.attempts: dict[int, Attempt] = {}
        self.answers: dict[tuple[int, int], Answer] = {}
        self.tests: dict[int, TestDefinition] = {}
        self._attempt_ids = itertools.count(1)
        self._answer_ids = itertools.count(1)

    def next_attempt_id(self) -> int:
        with self.mutex:
            return next(self._attempt_ids)

    def next_answer_id(self) -> int:
        with self.mutex:
            return next(self._answer_ids)

    def add_test(self, test: TestDefinition) -> TestDefinition:
        with self.mutex:
            self.tests[test.id] = copy.deepcopy(test)
        return test

    def get_attempt(self, attempt_id: int) -> Optional[Attempt]:
        with self.mutex:
            return copy.deepcopy(self.attempts.get(attempt_id))

    def get_answer(self, attempt_id: int, question_id: int) -> Optional[Answer]:
        with self.mutex:
            return copy.deepcopy(self.answers.get((attempt_id, question_id)))

    def answer_count(self, attempt_id: int) -> int:
        with self.mutex:
            return sum(1 for (aid, _qid) in self.answers if aid == attempt_id)
