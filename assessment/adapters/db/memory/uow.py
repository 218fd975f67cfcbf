"""
In-memory Unit of Work — 쓰기는 버퍼링 후 정상 종료 시에만 반영, 락은 종료 시 해제
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from assessment.adapters.db.memory.repositories import (
    InMemoryAnswerRepository,
    InMemoryAttemptRepository,
    InMemoryTestDefinitionRepository,
)
from assessment.adapters.db.memory.store import InMemoryStore
from assessment.domain.attempts.entities import ACTIVE_STATUSES, Answer, Attempt, AttemptStatus
from assessment.domain.attempts.errors import (
    DuplicateActiveAttemptError,
    InvalidStateError,
    StaleAttemptError,
)

logger = logging.getLogger(__name__)


class InMemoryUnitOfWork:

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.pending_attempts: dict[int, Attempt] = {}
        self.pending_answers: dict[tuple[int, int], Answer] = {}
        self.pending_touches: dict[int, datetime] = {}
        self.expected_versions: dict[int, int] = {}
        self.new_attempt_ids: set[int] = set()
        self._held: list[str] = []
        self._attempts: Optional[InMemoryAttemptRepository] = None
        self._answers: Optional[InMemoryAnswerRepository] = None
        self._tests: Optional[InMemoryTestDefinitionRepository] = None
        self._rolled_back = False

    @property
    def attempts(self) -> InMemoryAttemptRepository:
        if self._attempts is None:
            self._attempts = InMemoryAttemptRepository(self)
        return self._attempts

    @property
    def answers(self) -> InMemoryAnswerRepository:
        if self._answers is None:
            self._answers = InMemoryAnswerRepository(self)
        return self._answers

    @property
    def tests(self) -> InMemoryTestDefinitionRepository:
        if self._tests is None:
            self._tests = InMemoryTestDefinitionRepository(self)
        return self._tests

    def lock(self, key: str) -> None:
        """같은 UoW 안에서는 재진입 가능."""
        if key in self._held:
            return
        self.store.locks.acquire(key)
        self._held.append(key)

    def __enter__(self) -> "InMemoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if exc_type is None and not self._rolled_back:
                self.commit()
            else:
                self._clear()
        finally:
            for key in reversed(self._held):
                self.store.locks.release(key)
            self._held = []

    def commit(self) -> None:
        """version / 활성 중복 / 답안 저장 시 IN_PROGRESS 재검사 후 일괄 반영."""
        store = self.store
        with store.mutex:
            for attempt_id, expected in self.expected_versions.items():
                committed = store.attempts.get(attempt_id)
                if attempt_id in self.new_attempt_ids:
                    continue
                if committed is None or committed.version != expected:
                    self._clear()
                    raise StaleAttemptError(attempt_id, expected)

            for attempt_id, attempt in self.pending_attempts.items():
                if attempt.status not in ACTIVE_STATUSES:
                    continue
                for other in store.attempts.values():
                    if (
                        other.id != attempt_id
                        and other.id not in self.pending_attempts
                        and other.test_id == attempt.test_id
                        and other.candidate_id == attempt.candidate_id
                        and other.status in ACTIVE_STATUSES
                    ):
                        self._clear()
                        raise DuplicateActiveAttemptError(attempt.test_id, attempt.candidate_id, other.id)

            for attempt_id in self.pending_touches:
                current = self.pending_attempts.get(attempt_id) or store.attempts.get(attempt_id)
                if current is None or current.status != AttemptStatus.IN_PROGRESS:
                    status = current.status if current is not None else None
                    test_id = current.test_id if current is not None else None
                    self._clear()
                    logger.info("ATTEMPT_TOUCH_REJECTED | attempt_id=%s status=%s", attempt_id, status)
                    raise InvalidStateError(attempt_id, status, "submit answer for", test_id=test_id)

            store.attempts.update(self.pending_attempts)
            store.answers.update(self.pending_answers)
            for attempt_id, now in self.pending_touches.items():
                current = store.attempts.get(attempt_id)
                if current is not None:
                    current.updated_at = now
        self._clear()

    def rollback(self) -> None:
        self._rolled_back = True
        self._clear()

    def _clear(self) -> None:
        self.pending_attempts = {}
        self.pending_answers = {}
        self.pending_touches = {}
        self.expected_versions = {}
        self.new_attempt_ids = set()


def in_memory_uow_factory(store: InMemoryStore) -> Callable[[], InMemoryUnitOfWork]:
    return lambda: InMemoryUnitOfWork(store)
