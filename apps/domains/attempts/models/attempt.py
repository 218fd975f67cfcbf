# apps/domains/attempts/models/attempt.py
from django.db import models
from django.db.models import Q

from .base import TimestampedModel


class Attempt(TimestampedModel):
    """
    후보자 1명의 시험 1회 응시.

    - (test, candidate_id)당 REGISTERED/IN_PROGRESS 행은 최대 1개 (partial unique)
    - version: 락 없이 read-then-write 하는 경로(start)의 낙관적 동시성 검사
    """

    class Status(models.TextChoices):
        REGISTERED = "REGISTERED", "등록"
        PAYMENT_PENDING = "PAYMENT_PENDING", "결제 대기"
        PAYMENT_VERIFIED = "PAYMENT_VERIFIED", "결제 확인"
        IN_PROGRESS = "IN_PROGRESS", "응시 중"
        PAUSED = "PAUSED", "일시 정지"
        COMPLETED = "COMPLETED", "제출 완료"
        AUTO_SUBMITTED = "AUTO_SUBMITTED", "자동 제출"
        GRADED = "GRADED", "채점 완료"
        UNDER_REVIEW = "UNDER_REVIEW", "검토 중"
        DISQUALIFIED = "DISQUALIFIED", "실격"
        CANCELLED = "CANCELLED", "취소"

    test = models.ForeignKey(
        "attempts_domain.TestDefinition",
        on_delete=models.PROTECT,
        related_name="attempts",
    )
    # 후보자 계정은 외부 소유. FK 없이 id만 보관.
    candidate_id = models.PositiveIntegerField(db_index=True)

    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.REGISTERED,
        db_index=True,
    )
    score = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    time_spent_seconds = models.PositiveIntegerField(null=True, blank=True)

    tab_switch_count = models.PositiveIntegerField(default=0)
    fullscreen_exit_count = models.PositiveIntegerField(default=0)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    current_question_index = models.PositiveIntegerField(default=0)

    payment_reference_id = models.CharField(max_length=128, null=True, blank=True)
    payment_verified = models.BooleanField(default=False)
    payment_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    submission_reason = models.CharField(max_length=50, blank=True)
    review_notes = models.TextField(blank=True)

    version = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "assessment_attempt"
        constraints = [
            models.UniqueConstraint(
                fields=["test", "candidate_id"],
                condition=Q(status__in=["REGISTERED", "IN_PROGRESS"]),
                name="unique_active_attempt_per_candidate_test",
            )
        ]
        indexes = [
            models.Index(fields=["status", "started_at"], name="attempt_status_started_idx"),
        ]

    def __str__(self):
        return f"Attempt#{self.id} test={self.test_id} candidate={self.candidate_id} [{self.status}]"
