"""
Django Unit of Work — transaction.atomic 래퍼 (lazy import)
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class DjangoUnitOfWork:
    """
    Django transaction.atomic으로 트랜잭션 경계. 메서드 내부에서 Django import.
    select_for_update 락은 atomic 종료 시, Redis 키 락은 on_exit 콜백으로 해제.
    """

    def __init__(self, lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS) -> None:
        self.lock_timeout_seconds = lock_timeout_seconds
        self._atomic = None
        self._attempts = None
        self._answers = None
        self._tests = None
        self._exit_callbacks: list[Callable[[], None]] = []

    @property
    def attempts(self):
        from assessment.adapters.db.django.repositories_attempts import DjangoAttemptRepository
        if self._attempts is None:
            self._attempts = DjangoAttemptRepository(self)
        return self._attempts

    @property
    def answers(self):
        from assessment.adapters.db.django.repositories_attempts import DjangoAnswerRepository
        if self._answers is None:
            self._answers = DjangoAnswerRepository()
        return self._answers

    @property
    def tests(self):
        from assessment.adapters.db.django.repositories_attempts import DjangoTestDefinitionRepository
        if self._tests is None:
            self._tests = DjangoTestDefinitionRepository()
        return self._tests

    def on_exit(self, callback: Callable[[], None]) -> None:
        self._exit_callbacks.append(callback)

    def __enter__(self) -> DjangoUnitOfWork:
        from django.db import transaction
        self._atomic = transaction.atomic()
        self._atomic.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self._atomic is not None:
                self._atomic.__exit__(exc_type, exc_val, exc_tb)
                self._atomic = None
        finally:
            callbacks, self._exit_callbacks = self._exit_callbacks, []
            for cb in reversed(callbacks):
                try:
                    cb()
                except Exception:
                    logger.exception("UOW_EXIT_CALLBACK_FAILED")

    def commit(self) -> None:
        # atomic() 블록 내에서는 명시적 commit 없음; __exit__ 시 자동
        pass

    def rollback(self) -> None:
        from django.db import transaction
        transaction.set_rollback(True)


def django_uow_factory(lock_timeout_seconds: Optional[float] = None) -> Callable[[], DjangoUnitOfWork]:
    timeout = DEFAULT_LOCK_TIMEOUT_SECONDS if lock_timeout_seconds is None else lock_timeout_seconds
    return lambda: DjangoUnitOfWork(lock_timeout_seconds=timeout)
