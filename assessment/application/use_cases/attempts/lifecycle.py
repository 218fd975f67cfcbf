"""
Attempt Lifecycle Engine — 도메인/포트만 사용 (Django/redis 미사용)

Attempt 상태를 바꾸는 유일한 경로.
- 락은 UnitOfWork 안에서만 잡고, 협력자 호출(결제/알림/감사)은 커밋 이후 락 밖에서 한다.
- 변경 후 반환값은 항상 방금 저장된 엔티티. 캐시는 명시적으로 invalidate.
- Expiry Sweeper도 auto_submit()으로 같은 완료 경로를 탄다.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Mapping, Optional

from assessment.application.ports.cache import AttemptCache, NullAttemptCache
from assessment.application.ports.clock import Clock
from assessment.application.ports.collaborators import EligibilityChecker, PaymentGateway
from assessment.application.ports.rate_limiter import RateLimiter
from assessment.application.ports.unit_of_work import UnitOfWork
from assessment.application.use_cases.attempts.commands import (
    StartAttemptCommand,
    SubmitAnswerCommand,
    SubmitTestCommand,
    validate_id,
)
from assessment.application.use_cases.attempts.events import (
    AUDIT_ANSWER_SUBMISSION,
    AUDIT_MISALIGNMENT,
    AUDIT_PAYMENT_CONFIRMED,
    AUDIT_PAYMENT_FAILURE,
    AUDIT_REVIEW_DECISION,
    AUDIT_SCORING_ERROR,
    AUDIT_TEST_GRADED,
    AUDIT_TEST_START,
    AttemptEventEmitter,
)
from assessment.domain.attempts.entities import (
    REVIEW_STATUSES,
    Answer,
    Attempt,
    AttemptStatus,
    TestDefinition,
)
from assessment.domain.attempts.errors import (
    AnswerNotFoundError,
    AttemptNotFoundError,
    CandidateNotEligibleError,
    DuplicateActiveAttemptError,
    InvalidInputError,
    InvalidStateError,
    PaymentNotVerifiedError,
    PaymentProcessingError,
    RateLimitExceededError,
    RegistrationClosedError,
    TestNotFoundError,
    TestUnavailableError,
    TimeExpiredError,
    UnauthorizedAttemptAccessError,
)
from assessment.domain.attempts.scoring import ZERO_SCORE, compute_score
from assessment.framework.config import AttemptPolicy

logger = logging.getLogger(__name__)

MISALIGNMENT_KINDS = ("TAB_SWITCH", "FULLSCREEN_EXIT")

# record_grades 허용 상태 (채점 패스는 진행 중에도 돌 수 있다)
GRADABLE_STATUSES = (
    AttemptStatus.IN_PROGRESS,
    AttemptStatus.COMPLETED,
    AttemptStatus.AUTO_SUBMITTED,
    AttemptStatus.UNDER_REVIEW,
)


@dataclass(frozen=True)
class _ScoreResult:
    score: Decimal
    error: Optional[str] = None


class AttemptLifecycleEngine:

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        clock: Clock,
        rate_limiter: RateLimiter,
        payment_gateway: PaymentGateway,
        eligibility: EligibilityChecker,
        events: AttemptEventEmitter,
        cache: Optional[AttemptCache] = None,
        policy: Optional[AttemptPolicy] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock
        self._rate_limiter = rate_limiter
        self._payment = payment_gateway
        self._eligibility = eligibility
        self._events = events
        self._cache = cache or NullAttemptCache()
        self._policy = policy or AttemptPolicy()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def events(self) -> AttemptEventEmitter:
        return self._events

    # ------------------------------------------------------------------
    # register
    # ------------------------------------------------------------------

    def register(self, test_id: int, candidate_id: int) -> Attempt:
        test_id = validate_id(test_id, "test_id")
        candidate_id = validate_id(candidate_id, "candidate_id")
        logger.info("ATTEMPT_REGISTER | test_id=%s candidate_id=%s", test_id, candidate_id)

        now = self._clock.now()
        with self._uow_factory() as uow:
            test = self._load_test(uow, test_id)

        if not test.is_registration_open(now):
            raise RegistrationClosedError(test_id, test.registration_deadline)

        if not self._eligibility.is_eligible(candidate_id):
            raise CandidateNotEligibleError(candidate_id)

        # (test, candidate) 쌍 락: existence-check-then-insert 구간만
        with self._uow_factory() as uow:
            existing = uow.attempts.find_active_for_update(test_id, candidate_id)
            if existing is not None:
                raise DuplicateActiveAttemptError(test_id, candidate_id, existing.id)
            attempt = uow.attempts.add(
                Attempt(
                    test_id=test_id,
                    candidate_id=candidate_id,
                    status=AttemptStatus.REGISTERED,
                    created_at=now,
                    updated_at=now,
                    payment_amount=test.fee,
                    payment_verified=False,
                )
            )

        # 결제는 락 밖에서
        try:
            outcome = self._payment.request_payment(test.fee, test.title, candidate_id)
        except Exception as e:
            logger.exception(
                "ATTEMPT_PAYMENT_FAILED | attempt_id=%s test_id=%s candidate_id=%s",
                attempt.id, test_id, candidate_id,
            )
            self._events.audit(
                AUDIT_PAYMENT_FAILURE,
                candidate_id,
                str(e),
                {"attempt_id": attempt.id, "test_id": test_id},
            )
            self._cache.invalidate(attempt.id, candidate_id)
            if isinstance(e, PaymentProcessingError):
                raise
            raise PaymentProcessingError(
                f"Payment processing failed: {e}", attempt_id=attempt.id, test_id=test_id,
            ) from e

        with self._uow_factory() as uow:
            current = uow.attempts.get_for_update(attempt.id)
            if current is None:
                raise AttemptNotFoundError(attempt.id)
            current.payment_reference_id = outcome.reference_id
            current.payment_verified = bool(outcome.verified)
            current.updated_at = self._clock.now()
            attempt = uow.attempts.save(current)

        self._cache.invalidate(attempt.id, candidate_id)
        self._events.registered(attempt, test)
        logger.info(
            "ATTEMPT_REGISTERED | attempt_id=%s test_id=%s candidate_id=%s payment_verified=%s",
            attempt.id, test_id, candidate_id, attempt.payment_verified,
        )
        return attempt

    def confirm_payment(self, attempt_id: int, reference_id: str, verified: bool = True) -> Attempt:
        """결제 게이트웨이 사후 확인(webhook 등) 반영. REGISTERED 상태에서만."""
        attempt_id = validate_id(attempt_id, "attempt_id")
        if not isinstance(reference_id, str) or not reference_id.strip():
            raise InvalidInputError("reference_id", "must be a non-empty string")
        reference_id = reference_id.strip()[:255]

        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id, for_update=True)
            if attempt.status != AttemptStatus.REGISTERED:
                raise InvalidStateError(
                    attempt.id, attempt.status, "confirm payment for", test_id=attempt.test_id,
                )
            if attempt.payment_verified and attempt.payment_reference_id == reference_id:
                logger.info(
                    "ATTEMPT_PAYMENT_ALREADY_CONFIRMED | attempt_id=%s reference_id=%s", attempt.id, reference_id,
                )
                return attempt
            attempt.payment_reference_id = reference_id
            attempt.payment_verified = bool(verified)
            attempt.updated_at = self._clock.now()
            attempt = uow.attempts.save(attempt)

        self._cache.invalidate(attempt.id, attempt.candidate_id)
        self._events.audit(
            AUDIT_PAYMENT_CONFIRMED if attempt.payment_verified else AUDIT_PAYMENT_FAILURE,
            attempt.candidate_id,
            f"Payment {reference_id} {'verified' if attempt.payment_verified else 'rejected'}",
            {"attempt_id": attempt.id, "test_id": attempt.test_id, "reference_id": reference_id},
        )
        logger.info(
            "ATTEMPT_PAYMENT_CONFIRMED | attempt_id=%s reference_id=%s verified=%s",
            attempt.id, reference_id, attempt.payment_verified,
        )
        return attempt

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def start(
        self,
        attempt_id: int,
        candidate_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Attempt:
        cmd = StartAttemptCommand.build(attempt_id, candidate_id, ip_address, user_agent)
        now = self._clock.now()

        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, cmd.attempt_id)
            self._ensure_owner(attempt, cmd.candidate_id)

            if not attempt.can_start():
                if not attempt.payment_verified:
                    raise PaymentNotVerifiedError(attempt.id, attempt.payment_reference_id)
                if attempt.status != AttemptStatus.REGISTERED:
                    raise InvalidStateError(attempt.id, attempt.status, "start", test_id=attempt.test_id)
                # replay 방어
                raise InvalidStateError(attempt.id, "ALREADY_STARTED", "start", test_id=attempt.test_id)

            test = self._load_test(uow, attempt.test_id)
            if not test.is_available(now):
                raise TestUnavailableError(
                    test.id, test.start_time, test.end_time, now, test.unavailable_reason(now),
                )

            attempt.status = AttemptStatus.IN_PROGRESS
            attempt.started_at = now
            attempt.updated_at = now
            attempt.current_question_index = 0
            attempt.ip_address = cmd.ip_address
            attempt.user_agent = cmd.user_agent
            # 락 없이 read-then-write: version 검사로 중복 start 차단
            attempt = uow.attempts.save(attempt)

        self._cache.invalidate(attempt.id, attempt.candidate_id)
        self._events.audit(
            AUDIT_TEST_START,
            cmd.candidate_id,
            f"Started attempt {attempt.id}",
            {"attempt_id": attempt.id, "ip_address": cmd.ip_address, "user_agent": cmd.user_agent},
        )
        logger.info(
            "ATTEMPT_STARTED | attempt_id=%s candidate_id=%s ip=%s",
            attempt.id, cmd.candidate_id, cmd.ip_address,
        )
        return attempt

    # ------------------------------------------------------------------
    # submit_answer
    # ------------------------------------------------------------------

    def submit_answer(
        self,
        attempt_id: int,
        candidate_id: int,
        question_id: int,
        answer_text: str,
        time_spent_seconds: int,
        question_type: Optional[str] = None,
        question_points: Optional[int] = None,
    ) -> Answer:
        cmd = SubmitAnswerCommand.build(
            attempt_id,
            candidate_id,
            question_id,
            answer_text,
            time_spent_seconds,
            question_type,
            question_points,
        )
        logger.debug("ATTEMPT_ANSWER_SUBMIT | %s", cmd.sanitized_for_logging())

        window = self._policy.answer_rate_window
        max_requests = self._policy.ANSWER_RATE_MAX_REQUESTS
        if not self._rate_limiter.try_acquire(cmd.rate_limit_key, window, max_requests):
            raise RateLimitExceededError(cmd.rate_limit_key, window, max_requests)

        now = self._clock.now()
        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, cmd.attempt_id)
            self._ensure_owner(attempt, cmd.candidate_id)
            test = self._load_test(uow, attempt.test_id)
            self._ensure_accepting_answers(attempt, test, now)

            # (attempt, question) 쌍 락. 다른 문항끼리는 직렬화되지 않는다.
            existing = uow.answers.get_for_update(cmd.attempt_id, cmd.question_id)

            # 락 대기 중 제출/자동제출 되었을 수 있음
            fresh = self._load_attempt(uow, cmd.attempt_id)
            self._ensure_accepting_answers(fresh, test, self._clock.now())

            if existing is not None:
                existing.answer = cmd.answer
                existing.answered_at = now
                existing.time_spent_on_question = cmd.time_spent_seconds
                existing.question_type = cmd.question_type
                existing.question_points = cmd.question_points
                answer = existing
            else:
                answer = Answer(
                    attempt_id=cmd.attempt_id,
                    question_id=cmd.question_id,
                    answer=cmd.answer,
                    time_spent_on_question=cmd.time_spent_seconds,
                    question_type=cmd.question_type,
                    question_points=cmd.question_points,
                    is_correct=None,
                    answered_at=now,
                )
            saved = uow.answers.save(answer)
            uow.attempts.touch(cmd.attempt_id, now)

        self._events.audit(
            AUDIT_ANSWER_SUBMISSION,
            cmd.candidate_id,
            f"Answered question {cmd.question_id}",
            {
                "attempt_id": cmd.attempt_id,
                "question_id": cmd.question_id,
                "time_spent_seconds": cmd.time_spent_seconds,
            },
        )
        logger.debug(
            "ATTEMPT_ANSWER_SAVED | attempt_id=%s question_id=%s", cmd.attempt_id, cmd.question_id,
        )
        return saved

    # ------------------------------------------------------------------
    # submit_test / auto_submit
    # ------------------------------------------------------------------

    def submit_test(
        self,
        attempt_id: int,
        candidate_id: int,
        force_submit: bool = False,
        reason: Optional[str] = None,
    ) -> Attempt:
        cmd = SubmitTestCommand.build(attempt_id, candidate_id, force_submit, reason)
        logger.info(
            "ATTEMPT_SUBMIT | attempt_id=%s candidate_id=%s force=%s reason=%s",
            cmd.attempt_id, cmd.candidate_id, cmd.force_submit, cmd.reason,
        )

        now = self._clock.now()
        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, cmd.attempt_id, for_update=True)
            self._ensure_owner(attempt, cmd.candidate_id)
            if attempt.status != AttemptStatus.IN_PROGRESS:
                raise InvalidStateError(attempt.id, attempt.status, "submit", test_id=attempt.test_id)

            test = self._load_test(uow, attempt.test_id)
            if attempt.is_time_expired(test.duration, now) and not cmd.force_submit:
                raise TimeExpiredError(attempt.id, test.duration, attempt.elapsed(now), test_id=attempt.test_id)

            attempt.status = AttemptStatus.COMPLETED
            attempt.completed_at = now
            attempt.updated_at = now
            attempt.time_spent_seconds = int(attempt.elapsed(now).total_seconds())
            attempt.submission_reason = cmd.reason
            scored = self._score(uow, attempt)
            attempt.score = scored.score
            attempt = uow.attempts.save(attempt)

        self._after_scoring(attempt, scored)
        self._cache.invalidate(attempt.id, attempt.candidate_id)
        self._events.completed(attempt, test, self._policy.HIGH_PERFORMER_THRESHOLD)
        logger.info(
            "ATTEMPT_COMPLETED | attempt_id=%s candidate_id=%s score=%s",
            attempt.id, attempt.candidate_id, attempt.score,
        )
        return attempt

    def auto_submit(self, attempt: Attempt) -> Optional[Attempt]:
        """
        Sweeper 전용. rate limit / 시간 만료 검사 없음.
        락을 잡고 다시 읽었을 때 IN_PROGRESS가 아니면 '할 일 없음' → None.
        """
        now = self._clock.now()
        with self._uow_factory() as uow:
            current = uow.attempts.get_for_update(attempt.id)
            if current is None or current.status != AttemptStatus.IN_PROGRESS:
                logger.info(
                    "AUTO_SUBMIT_SKIP | attempt_id=%s status=%s",
                    attempt.id, getattr(current, "status", None),
                )
                return None

            test = self._load_test(uow, current.test_id)
            logger.info(
                "AUTO_SUBMIT | attempt_id=%s allowed=%s elapsed=%s",
                current.id, test.duration, current.elapsed(now),
            )
            current.status = AttemptStatus.AUTO_SUBMITTED
            current.completed_at = now
            current.updated_at = now
            current.time_spent_seconds = int(test.duration.total_seconds())
            current.submission_reason = "TIME_EXPIRED"
            scored = self._score(uow, current)
            current.score = scored.score
            saved = uow.attempts.save(current)

        self._after_scoring(saved, scored)
        self._cache.invalidate(saved.id, saved.candidate_id)
        self._events.auto_submitted(saved, test)
        logger.info("AUTO_SUBMITTED | attempt_id=%s score=%s", saved.id, saved.score)
        return saved

    # ------------------------------------------------------------------
    # 읽기
    # ------------------------------------------------------------------

    def get_attempt(self, attempt_id: int, candidate_id: Optional[int] = None) -> Attempt:
        attempt_id = validate_id(attempt_id, "attempt_id")
        attempt = self._cache.get(attempt_id)
        if attempt is None:
            with self._uow_factory() as uow:
                attempt = self._load_attempt(uow, attempt_id)
            self._cache.put(attempt)
        if candidate_id is not None:
            self._ensure_owner(attempt, validate_id(candidate_id, "candidate_id"))
        return attempt

    def list_candidate_attempts(self, candidate_id: int) -> list[Attempt]:
        candidate_id = validate_id(candidate_id, "candidate_id")
        with self._uow_factory() as uow:
            return uow.attempts.list_by_candidate(candidate_id)

    def remaining_time(self, attempt_id: int) -> timedelta:
        attempt_id = validate_id(attempt_id, "attempt_id")
        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id)
            test = self._load_test(uow, attempt.test_id)
        return attempt.remaining_time(test.duration, self._clock.now())

    def is_time_expired(self, attempt_id: int) -> bool:
        attempt_id = validate_id(attempt_id, "attempt_id")
        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id)
            test = self._load_test(uow, attempt.test_id)
        return attempt.is_in_progress() and attempt.is_time_expired(test.duration, self._clock.now())

    def has_suspicious_activity(self, attempt_id: int) -> bool:
        attempt = self.get_attempt(attempt_id)
        return attempt.has_suspicious_activity(self._policy.SUSPICIOUS_TAB_SWITCHES)

    # ------------------------------------------------------------------
    # proctoring / 검토 / 채점 (외부 구동)
    # ------------------------------------------------------------------

    def record_misalignment(self, attempt_id: int, candidate_id: int, kind: str) -> Attempt:
        """탭 전환 / 전체화면 이탈 카운트. 상태 전이를 유발하지 않는다."""
        attempt_id = validate_id(attempt_id, "attempt_id")
        candidate_id = validate_id(candidate_id, "candidate_id")
        kind = (kind or "").strip().upper()
        if kind not in MISALIGNMENT_KINDS:
            raise InvalidInputError("kind", f"must be one of {', '.join(MISALIGNMENT_KINDS)}")

        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id, for_update=True)
            self._ensure_owner(attempt, candidate_id)
            if attempt.status != AttemptStatus.IN_PROGRESS:
                raise InvalidStateError(
                    attempt.id, attempt.status, "record misalignment for", test_id=attempt.test_id,
                )
            if kind == "TAB_SWITCH":
                attempt.tab_switch_count = (attempt.tab_switch_count or 0) + 1
            else:
                attempt.fullscreen_exit_count = (attempt.fullscreen_exit_count or 0) + 1
            attempt.updated_at = self._clock.now()
            attempt = uow.attempts.save(attempt)

        self._cache.invalidate(attempt.id, attempt.candidate_id)
        suspicious = attempt.has_suspicious_activity(self._policy.SUSPICIOUS_TAB_SWITCHES)
        if suspicious:
            logger.warning(
                "ATTEMPT_SUSPICIOUS | attempt_id=%s tab_switches=%s fullscreen_exits=%s",
                attempt.id, attempt.tab_switch_count, attempt.fullscreen_exit_count,
            )
        self._events.audit(
            AUDIT_MISALIGNMENT,
            candidate_id,
            f"{kind} on attempt {attempt.id}",
            {"attempt_id": attempt.id, "kind": kind, "suspicious": suspicious},
        )
        return attempt

    def apply_review_decision(
        self,
        attempt_id: int,
        status: str,
        reviewer_id: Optional[int] = None,
        notes: str = "",
    ) -> Attempt:
        """
        외부 검토 결정 반영 (moderation override).
        현재 상태와 무관하게 허용한다.
        """
        attempt_id = validate_id(attempt_id, "attempt_id")
        try:
            target = AttemptStatus(str(status).strip().upper())
        except ValueError:
            raise InvalidInputError("status", f"unknown status {status!r}")
        if target not in REVIEW_STATUSES:
            raise InvalidInputError(
                "status", f"must be one of {', '.join(s.value for s in REVIEW_STATUSES)}",
            )

        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id, for_update=True)
            previous = attempt.status
            attempt.status = target
            attempt.review_notes = (notes or "")[:2000]
            attempt.updated_at = self._clock.now()
            attempt = uow.attempts.save(attempt)

        self._cache.invalidate(attempt.id, attempt.candidate_id)
        self._events.audit(
            AUDIT_REVIEW_DECISION,
            reviewer_id,
            f"Attempt {attempt.id}: {previous.value} -> {target.value}",
            {"attempt_id": attempt.id, "from": previous.value, "to": target.value, "notes": attempt.review_notes},
        )
        logger.info(
            "ATTEMPT_REVIEW_DECISION | attempt_id=%s from=%s to=%s reviewer_id=%s",
            attempt.id, previous.value, target.value, reviewer_id,
        )
        return attempt

    def record_grades(self, attempt_id: int, verdicts: Mapping[int, bool]) -> list[Answer]:
        """out-of-band 채점 패스: 저장된 응답의 is_correct 설정."""
        attempt_id = validate_id(attempt_id, "attempt_id")
        graded: list[Answer] = []
        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id)
            if attempt.status not in GRADABLE_STATUSES:
                raise InvalidStateError(attempt.id, attempt.status, "grade answers of", test_id=attempt.test_id)
            for question_id in sorted(verdicts):
                qid = validate_id(question_id, "question_id")
                answer = uow.answers.get_for_update(attempt_id, qid)
                if answer is None:
                    raise AnswerNotFoundError(attempt_id, qid)
                answer.is_correct = bool(verdicts[question_id])
                graded.append(uow.answers.save(answer))
        logger.info("ATTEMPT_ANSWERS_GRADED | attempt_id=%s count=%s", attempt_id, len(graded))
        return graded

    def finalize_grading(self, attempt_id: int, grader_id: Optional[int] = None) -> Attempt:
        attempt_id = validate_id(attempt_id, "attempt_id")
        with self._uow_factory() as uow:
            attempt = self._load_attempt(uow, attempt_id, for_update=True)
            if not attempt.is_completed():
                raise InvalidStateError(attempt.id, attempt.status, "finalize grading of", test_id=attempt.test_id)
            scored = self._score(uow, attempt)
            attempt.score = scored.score
            attempt.status = AttemptStatus.GRADED
            attempt.updated_at = self._clock.now()
            attempt = uow.attempts.save(attempt)

        self._after_scoring(attempt, scored)
        self._cache.invalidate(attempt.id, attempt.candidate_id)
        self._events.record_profile_result(attempt)
        self._events.audit(
            AUDIT_TEST_GRADED,
            grader_id,
            f"Graded attempt {attempt.id}",
            {"attempt_id": attempt.id, "score": str(attempt.score)},
        )
        return attempt

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _load_attempt(self, uow: UnitOfWork, attempt_id: int, for_update: bool = False) -> Attempt:
        if for_update:
            attempt = uow.attempts.get_for_update(attempt_id)
        else:
            attempt = uow.attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)
        return attempt

    def _load_test(self, uow: UnitOfWork, test_id: int) -> TestDefinition:
        test = uow.tests.get(test_id)
        if test is None:
            raise TestNotFoundError(test_id)
        return test

    def _ensure_owner(self, attempt: Attempt, candidate_id: int) -> None:
        if not attempt.is_owned_by(candidate_id):
            logger.warning(
                "ATTEMPT_UNAUTHORIZED | attempt_id=%s candidate_id=%s", attempt.id, candidate_id,
            )
            raise UnauthorizedAttemptAccessError(attempt.id, candidate_id)

    def _ensure_accepting_answers(self, attempt: Attempt, test: TestDefinition, now) -> None:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise InvalidStateError(attempt.id, attempt.status, "submit answer for", test_id=attempt.test_id)
        if attempt.is_time_expired(test.duration, now):
            raise TimeExpiredError(attempt.id, test.duration, attempt.elapsed(now), test_id=attempt.test_id)

    def _score(self, uow: UnitOfWork, attempt: Attempt) -> _ScoreResult:
        """채점 실패는 완료를 막지 않는다 → score 0."""
        try:
            answers: list[Answer] = list(uow.answers.list_by_attempt(attempt.id))
            score = compute_score(answers)
            ungraded = sum(1 for a in answers if not a.is_graded())
            logger.info(
                "ATTEMPT_SCORED | attempt_id=%s score=%s answers=%s ungraded=%s",
                attempt.id, score, len(answers), ungraded,
            )
            return _ScoreResult(score=score)
        except Exception as e:
            logger.exception("ATTEMPT_SCORING_FAILED | attempt_id=%s", attempt.id)
            return _ScoreResult(score=ZERO_SCORE, error=str(e) or type(e).__name__)

    def _after_scoring(self, attempt: Attempt, scored: _ScoreResult) -> None:
        if scored.error is None:
            return
        self._events.audit(
            AUDIT_SCORING_ERROR,
            None,
            scored.error,
            {"attempt_id": attempt.id, "test_id": attempt.test_id},
        )
