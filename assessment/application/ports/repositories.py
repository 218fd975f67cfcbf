"""
Repository 포트 — 영속화 추상화 (Django/ORM 미사용)

락이 걸리는 *_for_update 메서드는 호출자가 UnitOfWork 안에 있어야 하며,
락은 UnitOfWork 종료(commit/rollback) 시 해제된다.
"""
from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import Optional, Protocol

from assessment.domain.attempts.entities import Answer, Attempt, AttemptStatus, TestDefinition


class AttemptRepository(Protocol):
    """Attempt 영속화. select_for_update/atomic은 어댑터에서 수행."""

    @abstractmethod
    def get(self, attempt_id: int) -> Optional[Attempt]:
        """id로 조회 (락 없음). 없으면 None."""
        ...

    @abstractmethod
    def get_for_update(self, attempt_id: int) -> Optional[Attempt]:
        """id로 조회 + row lock. 없으면 None."""
        ...

    @abstractmethod
    def find_active_for_update(self, test_id: int, candidate_id: int) -> Optional[Attempt]:
        """
        (test, candidate) 쌍 배타 락 획득 후 REGISTERED/IN_PROGRESS attempt 조회.
        행이 없어도 쌍 단위 락은 유지된다 (check-then-insert 용).
        """
        ...

    @abstractmethod
    def add(self, attempt: Attempt) -> Attempt:
        """
        신규 attempt insert (id, version 할당).
        활성 attempt 중복 시 DuplicateActiveAttemptError.
        """
        ...

    @abstractmethod
    def save(self, attempt: Attempt) -> Attempt:
        """version 일치 시 저장 후 version+1. 불일치 시 StaleAttemptError."""
        ...

    @abstractmethod
    def touch(self, attempt_id: int, now: datetime) -> None:
        """IN_PROGRESS일 때만 updated_at 갱신 (version/락 무관).

        이미 IN_PROGRESS가 아니면 InvalidStateError → 같은 UoW의 답안 저장도 롤백.
        """
        ...

    @abstractmethod
    def list_by_status(self, status: AttemptStatus) -> list[Attempt]:
        ...

    @abstractmethod
    def list_by_candidate(self, candidate_id: int) -> list[Attempt]:
        """최신순."""
        ...


class AnswerRepository(Protocol):

    @abstractmethod
    def get_for_update(self, attempt_id: int, question_id: int) -> Optional[Answer]:
        """(attempt, question) 쌍 배타 락 + 기존 응답 조회. 없으면 None (락은 유지)."""
        ...

    @abstractmethod
    def save(self, answer: Answer) -> Answer:
        """(attempt, question) 기준 upsert. 중복 행을 만들지 않는다."""
        ...

    @abstractmethod
    def list_by_attempt(self, attempt_id: int) -> list[Answer]:
        """answered_at 오름차순."""
        ...


class TestDefinitionRepository(Protocol):
    """시험 정의 조회 전용."""
    __test__ = False

    @abstractmethod
    def get(self, test_id: int) -> Optional[TestDefinition]:
        ...
