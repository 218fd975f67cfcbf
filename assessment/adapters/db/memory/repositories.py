"""
In-memory Repository — InMemoryUnitOfWork의 pending 버퍼 위에서 동작

읽기는 '커밋된 상태 + 현재 UoW의 미커밋 쓰기'를 본다.
"""
from __future__ import annotations

import copy
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from assessment.domain.attempts.entities import (
    ACTIVE_STATUSES,
    Answer,
    Attempt,
    AttemptStatus,
    TestDefinition,
)
from assessment.domain.attempts.errors import DuplicateActiveAttemptError, StaleAttemptError

if TYPE_CHECKING:
    from assessment.adapters.db.memory.uow import InMemoryUnitOfWork


def _ts(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else 0.0


def attempt_lock_key(attempt_id: int) -> str:
    return f"attempt:{attempt_id}"


def pair_lock_key(test_id: int, candidate_id: int) -> str:
    return f"attempt_pair:{test_id}:{candidate_id}"


def answer_lock_key(attempt_id: int, question_id: int) -> str:
    return f"answer:{attempt_id}:{question_id}"


class InMemoryAttemptRepository:

    def __init__(self, uow: "InMemoryUnitOfWork") -> None:
        self._uow = uow
        self._store = uow.store

    def _visible(self) -> dict[int, Attempt]:
        with self._store.mutex:
            merged = dict(self._store.attempts)
        merged.update(self._uow.pending_attempts)
        return merged

    def get(self, attempt_id: int) -> Optional[Attempt]:
        return copy.deepcopy(self._visible().get(attempt_id))

    def get_for_update(self, attempt_id: int) -> Optional[Attempt]:
        self._uow.lock(attempt_lock_key(attempt_id))
        return self.get(attempt_id)

    def find_active_for_update(self, test_id: int, candidate_id: int) -> Optional[Attempt]:
        self._uow.lock(pair_lock_key(test_id, candidate_id))
        for attempt in self._visible().values():
            if (
                attempt.test_id == test_id
                and attempt.candidate_id == candidate_id
                and attempt.status in ACTIVE_STATUSES
            ):
                return copy.deepcopy(attempt)
        return None

    def add(self, attempt: Attempt) -> Attempt:
        if attempt.status in ACTIVE_STATUSES:
            existing = self._find_active(attempt.test_id, attempt.candidate_id, exclude_id=None)
            if existing is not None:
                raise DuplicateActiveAttemptError(attempt.test_id, attempt.candidate_id, existing.id)
        stored = copy.deepcopy(attempt)
        stored.id = self._store.next_attempt_id()
        stored.version = 0
        stored.test = None
        self._uow.pending_attempts[stored.id] = stored
        self._uow.new_attempt_ids.add(stored.id)
        return copy.deepcopy(stored)

    def save(self, attempt: Attempt) -> Attempt:
        current = self._visible().get(attempt.id)
        if current is None or current.version != attempt.version:
            raise StaleAttemptError(attempt.id, attempt.version)
        if attempt.status in ACTIVE_STATUSES:
            existing = self._find_active(attempt.test_id, attempt.candidate_id, exclude_id=attempt.id)
            if existing is not None:
                raise DuplicateActiveAttemptError(attempt.test_id, attempt.candidate_id, existing.id)
        stored = copy.deepcopy(attempt)
        stored.version = attempt.version + 1
        stored.test = None
        self._uow.pending_attempts[stored.id] = stored
        self._uow.expected_versions.setdefault(stored.id, attempt.version)
        return copy.deepcopy(stored)

    def touch(self, attempt_id: int, now: datetime) -> None:
        self._uow.pending_touches[attempt_id] = now

    def list_by_status(self, status: AttemptStatus) -> list[Attempt]:
        rows = [a for a in self._visible().values() if a.status == status]
        return [copy.deepcopy(a) for a in sorted(rows, key=lambda a: a.id)]

    def list_by_candidate(self, candidate_id: int) -> list[Attempt]:
        rows = [a for a in self._visible().values() if a.candidate_id == candidate_id]
        rows.sort(key=lambda a: (_ts(a.created_at), a.id), reverse=True)
        return [copy.deepcopy(a) for a in rows]

    def _find_active(self, test_id: int, candidate_id: int, exclude_id: Optional[int]) -> Optional[Attempt]:
        for a in self._visible().values():
            if (
                a.id != exclude_id
                and a.test_id == test_id
                and a.candidate_id == candidate_id
                and a.status in ACTIVE_STATUSES
            ):
                return a
        return None


class InMemoryAnswerRepository:

    def __init__(self, uow: "InMemoryUnitOfWork") -> None:
        self._uow = uow
        self._store = uow.store

    def _visible(self) -> dict[tuple[int, int], Answer]:
        with self._store.mutex:
            merged = dict(self._store.answers)
        merged.update(self._uow.pending_answers)
        return merged

    def get_for_update(self, attempt_id: int, question_id: int) -> Optional[Answer]:
        self._uow.lock(answer_lock_key(attempt_id, question_id))
        return copy.deepcopy(self._visible().get((attempt_id, question_id)))

    def save(self, answer: Answer) -> Answer:
        key = (answer.attempt_id, answer.question_id)
        existing = self._visible().get(key)
        stored = copy.deepcopy(answer)
        if existing is not None:
            stored.id = existing.id
            stored.created_at = existing.created_at
        elif stored.id is None:
            stored.id = self._store.next_answer_id()
        if stored.created_at is None:
            stored.created_at = stored.answered_at
        stored.updated_at = stored.answered_at or stored.updated_at
        self._uow.pending_answers[key] = stored
        return copy.deepcopy(stored)

    def list_by_attempt(self, attempt_id: int) -> list[Answer]:
        rows = [a for (aid, _), a in self._visible().items() if aid == attempt_id]
        rows.sort(key=lambda a: (_ts(a.answered_at), a.question_id))
        return [copy.deepcopy(a) for a in rows]


class InMemoryTestDefinitionRepository:
    __test__ = False

    def __init__(self, uow: "InMemoryUnitOfWork") -> None:
        self._store = uow.store

    def get(self, test_id: int) -> Optional[TestDefinition]:
        with self._store.mutex:
            return copy.deepcopy(self._store.tests.get(test_id))
