"""
Attempt 도메인 오류 — 순수 파이썬

모든 오류는 code + context(dict)를 가진다.
호출부는 추가 조회 없이 context만으로 메시지를 렌더링할 수 있어야 한다.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional


def format_duration(value: Optional[timedelta]) -> str:
    if value is None:
        return "N/A"
    total = int(value.total_seconds())
    minutes, seconds = divmod(total, 60)
    return f"{minutes} min {seconds} sec"


class AttemptDomainError(Exception):
    """Attempt 도메인 규칙 위반 등."""
    code = "ATTEMPT_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": dict(self.context)}


class InvalidInputError(AttemptDomainError):
    """입력 형식 오류. 재시도하지 않는다."""
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid {field}: {reason}", field=field, reason=reason)
        self.field = field


class NotFoundError(AttemptDomainError):
    code = "NOT_FOUND"


class AttemptNotFoundError(NotFoundError):
    def __init__(self, attempt_id: int) -> None:
        super().__init__(f"Test attempt {attempt_id} not found", attempt_id=attempt_id)
        self.attempt_id = attempt_id


class TestNotFoundError(NotFoundError):
    __test__ = False

    def __init__(self, test_id: int) -> None:
        super().__init__(f"Test {test_id} not found", test_id=test_id)
        self.test_id = test_id


class AnswerNotFoundError(NotFoundError):
    def __init__(self, attempt_id: int, question_id: int) -> None:
        super().__init__(
            f"No answer for question {question_id} in attempt {attempt_id}",
            attempt_id=attempt_id,
            question_id=question_id,
        )


class DuplicateActiveAttemptError(AttemptDomainError):
    code = "DUPLICATE_TEST_ATTEMPT"

    def __init__(self, test_id: int, candidate_id: int, existing_attempt_id: Optional[int] = None) -> None:
        super().__init__(
            f"Candidate {candidate_id} already has an active attempt for test {test_id}",
            test_id=test_id,
            candidate_id=candidate_id,
            existing_attempt_id=existing_attempt_id,
        )


class RegistrationClosedError(AttemptDomainError):
    code = "TEST_REGISTRATION_CLOSED"

    def __init__(self, test_id: int, deadline: Optional[datetime]) -> None:
        super().__init__(
            f"Registration for test {test_id} closed at {deadline.isoformat() if deadline else 'N/A'}",
            test_id=test_id,
            registration_deadline=deadline,
        )
        self.deadline = deadline


class CandidateNotEligibleError(AttemptDomainError):
    code = "CANDIDATE_NOT_ELIGIBLE"

    def __init__(self, candidate_id: int) -> None:
        super().__init__(
            f"Candidate {candidate_id} is not eligible to take tests",
            candidate_id=candidate_id,
        )


class TestUnavailableError(AttemptDomainError):
    """응시 가능 시간대(start/end) 밖이거나 비활성 시험."""
    __test__ = False
    code = "TEST_NOT_AVAILABLE"

    def __init__(
        self,
        test_id: int,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        current_time: datetime,
        reason: str,
    ) -> None:
        super().__init__(
            f"Test {test_id} is not available ({reason}). "
            f"Current time: {current_time.isoformat()}, window: "
            f"{start_time.isoformat() if start_time else '-'} to {end_time.isoformat() if end_time else '-'}",
            test_id=test_id,
            start_time=start_time,
            end_time=end_time,
            current_time=current_time,
            reason=reason,
        )
        self.reason = reason


class PaymentNotVerifiedError(AttemptDomainError):
    code = "PAYMENT_NOT_VERIFIED"

    def __init__(self, attempt_id: int, payment_reference_id: Optional[str]) -> None:
        super().__init__(
            f"Payment for attempt {attempt_id} is not verified (reference={payment_reference_id or '-'})",
            attempt_id=attempt_id,
            payment_reference_id=payment_reference_id,
        )


class PaymentProcessingError(AttemptDomainError):
    code = "PAYMENT_PROCESSING_ERROR"

    def __init__(self, message: str, attempt_id: Optional[int] = None, test_id: Optional[int] = None) -> None:
        super().__init__(message, attempt_id=attempt_id, test_id=test_id)


class InvalidStateError(AttemptDomainError):
    code = "INVALID_TEST_STATE"

    def __init__(
        self,
        attempt_id: Optional[int],
        status: Any,
        operation: str,
        test_id: Optional[int] = None,
    ) -> None:
        status_value = getattr(status, "value", status)
        super().__init__(
            f"Cannot {operation} attempt {attempt_id} in status {status_value}",
            attempt_id=attempt_id,
            test_id=test_id,
            status=status_value,
            operation=operation,
        )


class TimeExpiredError(AttemptDomainError):
    code = "TEST_TIME_EXPIRED"

    def __init__(
        self,
        attempt_id: int,
        allowed: timedelta,
        actual: timedelta,
        test_id: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"Test time expired for attempt {attempt_id}. "
            f"Allowed: {format_duration(allowed)}, Actual: {format_duration(actual)}",
            attempt_id=attempt_id,
            test_id=test_id,
            allowed_duration=allowed,
            actual_duration=actual,
        )
        self.allowed = allowed
        self.actual = actual


class RateLimitExceededError(AttemptDomainError):
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, key: str, window: timedelta, max_requests: int) -> None:
        super().__init__(
            f"Rate limit exceeded for {key}: max {max_requests} per {format_duration(window)}",
            key=key,
            window=window,
            max_requests=max_requests,
        )


class UnauthorizedAttemptAccessError(AttemptDomainError):
    code = "UNAUTHORIZED"

    def __init__(self, attempt_id: int, candidate_id: int) -> None:
        super().__init__(
            f"Candidate {candidate_id} is not authorized to access attempt {attempt_id}",
            attempt_id=attempt_id,
            candidate_id=candidate_id,
        )


class ScoringError(AttemptDomainError):
    """채점 실패. 엔진은 이를 잡아 score=0으로 완료 처리한다."""
    code = "SCORING_ERROR"


class StaleAttemptError(AttemptDomainError):
    """낙관적 version 불일치 (락 없이 read-then-write 한 경로)."""
    code = "STALE_ATTEMPT"

    def __init__(self, attempt_id: Optional[int], expected_version: int) -> None:
        super().__init__(
            f"Attempt {attempt_id} was modified concurrently (expected version {expected_version})",
            attempt_id=attempt_id,
            expected_version=expected_version,
        )


class LockTimeoutError(AttemptDomainError):
    code = "LOCK_TIMEOUT"

    def __init__(self, key: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Could not acquire lock {key} within {timeout_seconds:.1f}s",
            key=key,
            timeout_seconds=timeout_seconds,
        )
