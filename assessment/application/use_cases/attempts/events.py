"""
협력자로 나가는 이벤트 — 알림 요청 / 감사 이벤트 / 프로필 반영

모든 emit은 best-effort: 실패는 로그만 남기고 호출부(상태 전이)로 던지지 않는다.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from assessment.application.ports.collaborators import (
    AuditRecorder,
    InterestedPartyDirectory,
    NotificationSender,
    ProfileUpdater,
)
from assessment.domain.attempts.entities import Attempt, TestDefinition

logger = logging.getLogger(__name__)

# 감사 액션
AUDIT_TEST_REGISTRATION = "TEST_REGISTRATION"
AUDIT_PAYMENT_FAILURE = "PAYMENT_FAILURE"
AUDIT_PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
AUDIT_TEST_START = "TEST_START"
AUDIT_ANSWER_SUBMISSION = "ANSWER_SUBMISSION"
AUDIT_TEST_COMPLETION = "TEST_COMPLETION"
AUDIT_SCORING_ERROR = "SCORING_ERROR"
AUDIT_AUTO_SUBMIT_FAILURE = "AUTO_SUBMIT_FAILURE"
AUDIT_AUTO_SUBMIT_BATCH = "AUTO_SUBMIT_BATCH"
AUDIT_MISALIGNMENT = "PROCTORING_MISALIGNMENT"
AUDIT_REVIEW_DECISION = "REVIEW_DECISION"
AUDIT_TEST_GRADED = "TEST_GRADED"

# 알림 타입
NOTIFY_TEST_REGISTERED = "TEST_REGISTERED"
NOTIFY_TEST_COMPLETED = "TEST_COMPLETED"
NOTIFY_TEST_AUTO_SUBMITTED = "TEST_AUTO_SUBMITTED"
NOTIFY_HIGH_PERFORMER = "HIGH_PERFORMER"


def _format_score(score: Optional[Decimal]) -> str:
    return f"{score}%" if score is not None else "Pending"


class AttemptEventEmitter:
    """엔진/스윕 공용 emit 래퍼."""

    def __init__(
        self,
        notifier: NotificationSender,
        audit: AuditRecorder,
        profile_updater: Optional[ProfileUpdater] = None,
        interested_parties: Optional[InterestedPartyDirectory] = None,
    ) -> None:
        self._notifier = notifier
        self._audit = audit
        self._profile_updater = profile_updater
        self._interested_parties = interested_parties

    def audit(
        self,
        action: str,
        actor_id: Optional[int],
        description: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            self._audit.record(action, actor_id, description, metadata or {})
        except Exception:
            logger.exception("AUDIT_EMIT_FAILED | action=%s actor_id=%s", action, actor_id)

    def notify(
        self,
        recipient_id: int,
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> None:
        try:
            self._notifier.notify(recipient_id, type, title, message, action_url)
        except Exception:
            logger.exception("NOTIFY_EMIT_FAILED | type=%s recipient_id=%s", type, recipient_id)

    # ------------------------------------------------------------------
    # lifecycle events
    # ------------------------------------------------------------------

    def registered(self, attempt: Attempt, test: TestDefinition) -> None:
        self.audit(
            AUDIT_TEST_REGISTRATION,
            attempt.candidate_id,
            f"Registered for test {test.id}",
            {"attempt_id": attempt.id, "test_id": test.id, "payment_verified": attempt.payment_verified},
        )
        self.notify(
            attempt.candidate_id,
            NOTIFY_TEST_REGISTERED,
            "Test Registration Confirmed",
            f"You have successfully registered for '{test.title}'",
            f"/candidate/tests/{attempt.id}",
        )

    def completed(self, attempt: Attempt, test: TestDefinition, high_performer_threshold: Decimal) -> None:
        self.record_profile_result(attempt)
        self.notify(
            attempt.candidate_id,
            NOTIFY_TEST_COMPLETED,
            "Test Completed",
            f"Test '{test.title}' completed with score: {_format_score(attempt.score)}",
            f"/candidate/results/{attempt.id}",
        )
        if attempt.score is not None and attempt.score >= high_performer_threshold:
            self.high_performer(attempt, test)
        self.audit(
            AUDIT_TEST_COMPLETION,
            attempt.candidate_id,
            f"Completed test {test.id}",
            {
                "attempt_id": attempt.id,
                "test_id": test.id,
                "score": str(attempt.score),
                "reason": attempt.submission_reason,
            },
        )

    def auto_submitted(self, attempt: Attempt, test: TestDefinition) -> None:
        self.record_profile_result(attempt)
        self.notify(
            attempt.candidate_id,
            NOTIFY_TEST_AUTO_SUBMITTED,
            "Test Auto-Submitted",
            f"Your test '{test.title}' was automatically submitted due to time expiration",
            f"/candidate/tests/{attempt.id}",
        )

    def high_performer(self, attempt: Attempt, test: TestDefinition) -> None:
        if self._interested_parties is None:
            return
        try:
            recipients = list(self._interested_parties.recipient_ids())
        except Exception:
            logger.exception("HIGH_PERFORMER_RECIPIENTS_FAILED | attempt_id=%s", attempt.id)
            return
        for recipient_id in recipients:
            self.notify(
                recipient_id,
                NOTIFY_HIGH_PERFORMER,
                "High Performing Candidate",
                f"New high-performing candidate #{attempt.candidate_id} "
                f"(Score: {_format_score(attempt.score)}) in {test.category or test.title}",
                f"/talent/{attempt.candidate_id}",
            )
        logger.info(
            "HIGH_PERFORMER_NOTIFIED | attempt_id=%s candidate_id=%s recipients=%s",
            attempt.id, attempt.candidate_id, len(recipients),
        )

    def record_profile_result(self, attempt: Attempt) -> None:
        if self._profile_updater is None or attempt.score is None:
            return
        try:
            self._profile_updater.record_result(
                attempt.candidate_id, attempt.test_id, attempt.id, attempt.score,
            )
        except Exception as e:
            logger.exception("PROFILE_UPDATE_FAILED | candidate_id=%s attempt_id=%s", attempt.candidate_id, attempt.id)
            self.audit(
                "PROFILE_UPDATE_ERROR",
                attempt.candidate_id,
                str(e),
                {"attempt_id": attempt.id},
            )
