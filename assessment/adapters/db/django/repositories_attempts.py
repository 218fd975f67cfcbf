"""
Attempt / Answer / TestDefinition Repository — Django ORM 구현
(메서드 내부에서만 apps.domains.attempts import)

- row lock: select_for_update (호출자가 UoW 트랜잭션 내에 있어야 함)
- (test, candidate) 쌍 락: Redis SET NX 락 (행이 없는 구간) + partial unique 제약 (최종 방어선)
- version: filter(id, version).update(version=F+1) → 0 rows면 StaleAttemptError
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from assessment.domain.attempts.entities import (
    ACTIVE_STATUSES,
    Answer,
    Attempt,
    AttemptStatus,
    TestDefinition,
)
from assessment.domain.attempts.errors import (
    DuplicateActiveAttemptError,
    InvalidStateError,
    LockTimeoutError,
    StaleAttemptError,
)

if TYPE_CHECKING:
    from assessment.adapters.db.django.uow import DjangoUnitOfWork

logger = logging.getLogger(__name__)

_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]

# save() 시 갱신 컬럼 (id/test/candidate/created_at 제외)
_ATTEMPT_MUTABLE_FIELDS = (
    "status",
    "score",
    "started_at",
    "completed_at",
    "time_spent_seconds",
    "tab_switch_count",
    "fullscreen_exit_count",
    "ip_address",
    "user_agent",
    "current_question_index",
    "payment_reference_id",
    "payment_verified",
    "payment_amount",
    "submission_reason",
    "review_notes",
)


def _test_to_entity(m) -> Optional[TestDefinition]:
    if m is None:
        return None
    return TestDefinition(
        id=m.id,
        title=m.title,
        duration_minutes=int(m.duration_minutes),
        fee=m.fee,
        category=m.category or "",
        passing_score=m.passing_score,
        start_time=m.start_time,
        end_time=m.end_time,
        registration_deadline=m.registration_deadline,
        is_active=bool(m.is_active),
    )


def _attempt_to_entity(m) -> Optional[Attempt]:
    if m is None:
        return None
    return Attempt(
        id=m.id,
        test_id=m.test_id,
        candidate_id=m.candidate_id,
        status=AttemptStatus(m.status) if m.status else AttemptStatus.REGISTERED,
        score=m.score,
        created_at=m.created_at,
        updated_at=m.updated_at,
        started_at=m.started_at,
        completed_at=m.completed_at,
        time_spent_seconds=m.time_spent_seconds,
        tab_switch_count=int(m.tab_switch_count or 0),
        fullscreen_exit_count=int(m.fullscreen_exit_count or 0),
        ip_address=m.ip_address,
        user_agent=m.user_agent or None,
        current_question_index=int(m.current_question_index or 0),
        payment_reference_id=m.payment_reference_id,
        payment_verified=bool(m.payment_verified),
        payment_amount=m.payment_amount,
        submission_reason=m.submission_reason or "",
        review_notes=m.review_notes or "",
        version=int(m.version or 0),
    )


def _attempt_values(attempt: Attempt) -> dict:
    values = {f: getattr(attempt, f) for f in _ATTEMPT_MUTABLE_FIELDS}
    values["status"] = attempt.status.value
    values["user_agent"] = attempt.user_agent or ""
    values["submission_reason"] = (attempt.submission_reason or "")[:50]
    values["review_notes"] = attempt.review_notes or ""
    return values


def _answer_to_entity(m) -> Optional[Answer]:
    if m is None:
        return None
    return Answer(
        id=m.id,
        attempt_id=m.attempt_id,
        question_id=m.question_id,
        answer=m.answer,
        time_spent_on_question=int(m.time_spent_on_question or 0),
        question_type=m.question_type,
        question_points=int(m.question_points or 0),
        is_correct=m.is_correct,
        answered_at=m.answered_at,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def pair_lock_name(test_id: int, candidate_id: int) -> str:
    return f"attempt_pair:{test_id}:{candidate_id}"


class DjangoAttemptRepository:
    """AttemptRepository 구현. ORM 접근은 모두 메서드 내부에서 lazy import."""

    def __init__(self, uow: "DjangoUnitOfWork") -> None:
        self._uow = uow

    def get(self, attempt_id: int) -> Optional[Attempt]:
        from apps.domains.attempts.models import Attempt as AttemptModel
        return _attempt_to_entity(AttemptModel.objects.filter(id=attempt_id).first())

    def get_for_update(self, attempt_id: int) -> Optional[Attempt]:
        from apps.domains.attempts.models import Attempt as AttemptModel
        m = AttemptModel.objects.select_for_update().filter(id=attempt_id).first()
        return _attempt_to_entity(m)

    def find_active_for_update(self, test_id: int, candidate_id: int) -> Optional[Attempt]:
        from libs.redis.lock import acquire_lock, release_lock
        from apps.domains.attempts.models import Attempt as AttemptModel

        name = pair_lock_name(test_id, candidate_id)
        timeout = self._uow.lock_timeout_seconds
        ok, token = acquire_lock(name, timeout)
        if not ok:
            raise LockTimeoutError(name, timeout)
        self._uow.on_exit(lambda: release_lock(name, token))

        m = (
            AttemptModel.objects.select_for_update()
            .filter(test_id=test_id, candidate_id=candidate_id, status__in=_ACTIVE_VALUES)
            .order_by("-id")
            .first()
        )
        return _attempt_to_entity(m)

    def add(self, attempt: Attempt) -> Attempt:
        from django.db import IntegrityError, transaction
        from apps.domains.attempts.models import Attempt as AttemptModel

        values = _attempt_values(attempt)
        try:
            # savepoint: 제약 위반 시 바깥 트랜잭션은 유지
            with transaction.atomic():
                m = AttemptModel.objects.create(
                    test_id=attempt.test_id,
                    candidate_id=attempt.candidate_id,
                    version=0,
                    **values,
                )
        except IntegrityError:
            existing = (
                AttemptModel.objects.filter(
                    test_id=attempt.test_id,
                    candidate_id=attempt.candidate_id,
                    status__in=_ACTIVE_VALUES,
                )
                .values_list("id", flat=True)
                .first()
            )
            logger.warning(
                "ATTEMPT_DUPLICATE_ACTIVE | test_id=%s candidate_id=%s existing=%s",
                attempt.test_id, attempt.candidate_id, existing,
            )
            raise DuplicateActiveAttemptError(attempt.test_id, attempt.candidate_id, existing)
        return _attempt_to_entity(m)

    def save(self, attempt: Attempt) -> Attempt:
        from django.db import IntegrityError, transaction
        from django.db.models import F
        from django.utils import timezone
        from apps.domains.attempts.models import Attempt as AttemptModel

        values = _attempt_values(attempt)
        values["updated_at"] = attempt.updated_at or timezone.now()
        try:
            with transaction.atomic():
                updated = AttemptModel.objects.filter(id=attempt.id, version=attempt.version).update(
                    version=F("version") + 1,
                    **values,
                )
        except IntegrityError:
            raise DuplicateActiveAttemptError(attempt.test_id, attempt.candidate_id)
        if updated == 0:
            logger.warning("ATTEMPT_STALE | attempt_id=%s version=%s", attempt.id, attempt.version)
            raise StaleAttemptError(attempt.id, attempt.version)
        return self.get(attempt.id)

    def touch(self, attempt_id: int, now: datetime) -> None:
        from apps.domains.attempts.models import Attempt as AttemptModel
        updated = AttemptModel.objects.filter(
            id=attempt_id, status=AttemptStatus.IN_PROGRESS.value
        ).update(updated_at=now)
        if updated == 0:
            row = AttemptModel.objects.filter(id=attempt_id).values_list("status", "test_id").first()
            status, test_id = row if row else (None, None)
            logger.info("ATTEMPT_TOUCH_REJECTED | attempt_id=%s status=%s", attempt_id, status)
            raise InvalidStateError(attempt_id, status, "submit answer for", test_id=test_id)

    def list_by_status(self, status: AttemptStatus) -> list[Attempt]:
        from apps.domains.attempts.models import Attempt as AttemptModel
        qs = AttemptModel.objects.filter(status=AttemptStatus(status).value).order_by("id")
        return [_attempt_to_entity(m) for m in qs]

    def list_by_candidate(self, candidate_id: int) -> list[Attempt]:
        from apps.domains.attempts.models import Attempt as AttemptModel
        qs = AttemptModel.objects.filter(candidate_id=candidate_id).order_by("-created_at", "-id")
        return [_attempt_to_entity(m) for m in qs]


class DjangoAnswerRepository:

    def get_for_update(self, attempt_id: int, question_id: int) -> Optional[Answer]:
        from apps.domains.attempts.models import Answer as AnswerModel
        m = (
            AnswerModel.objects.select_for_update()
            .filter(attempt_id=attempt_id, question_id=question_id)
            .first()
        )
        return _answer_to_entity(m)

    def save(self, answer: Answer) -> Answer:
        """
        (attempt, question) upsert.
        동시 insert로 unique 위반 시 기존 행을 잠그고 update로 재시도.
        """
        from django.db import IntegrityError, transaction
        from apps.domains.attempts.models import Answer as AnswerModel

        fields = {
            "answer": answer.answer,
            "question_type": answer.question_type,
            "question_points": answer.question_points,
            "time_spent_on_question": answer.time_spent_on_question,
            "is_correct": answer.is_correct,
            "answered_at": answer.answered_at,
        }

        m = (
            AnswerModel.objects.select_for_update()
            .filter(attempt_id=answer.attempt_id, question_id=answer.question_id)
            .first()
        )
        if m is None:
            try:
                with transaction.atomic():
                    m = AnswerModel.objects.create(
                        attempt_id=answer.attempt_id,
                        question_id=answer.question_id,
                        **fields,
                    )
                return _answer_to_entity(m)
            except IntegrityError:
                logger.info(
                    "ANSWER_INSERT_RACE | attempt_id=%s question_id=%s retry as update",
                    answer.attempt_id, answer.question_id,
                )
                m = AnswerModel.objects.select_for_update().get(
                    attempt_id=answer.attempt_id, question_id=answer.question_id,
                )

        for k, v in fields.items():
            setattr(m, k, v)
        m.save(update_fields=list(fields.keys()) + ["updated_at"])
        return _answer_to_entity(m)

    def list_by_attempt(self, attempt_id: int) -> list[Answer]:
        """채점 경로에서 호출 — savepoint로 감싸 실패해도 바깥 트랜잭션은 계속 사용 가능."""
        from django.db import transaction
        from apps.domains.attempts.models import Answer as AnswerModel
        with transaction.atomic():
            qs = AnswerModel.objects.filter(attempt_id=attempt_id).order_by("answered_at", "question_id")
            return [_answer_to_entity(m) for m in qs]


class DjangoTestDefinitionRepository:
    __test__ = False

    def get(self, test_id: int) -> Optional[TestDefinition]:
        from apps.domains.attempts.models import TestDefinition as TestDefinitionModel
        return _test_to_entity(TestDefinitionModel.objects.filter(id=test_id).first())
