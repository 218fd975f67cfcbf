"""
Attempt 도메인 엔티티 — 순수 파이썬 (Django/ORM/redis 미사용)

상태 판정 규칙(만료, 잔여 시간, 의심 활동)은 엔티티 메서드로 표현.
상태 전이 자체는 AttemptLifecycleEngine만 수행한다.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class AttemptStatus(str, Enum):
    """Attempt 상태 (apps.domains.attempts.models.Attempt choices와 동기화)."""
    REGISTERED = "REGISTERED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    AUTO_SUBMITTED = "AUTO_SUBMITTED"
    GRADED = "GRADED"
    UNDER_REVIEW = "UNDER_REVIEW"
    DISQUALIFIED = "DISQUALIFIED"
    CANCELLED = "CANCELLED"


# (test, candidate)당 최대 1건만 허용되는 상태
ACTIVE_STATUSES = (AttemptStatus.REGISTERED, AttemptStatus.IN_PROGRESS)

# score가 반드시 채워져 있어야 하는 상태
SCORED_STATUSES = (AttemptStatus.COMPLETED, AttemptStatus.AUTO_SUBMITTED, AttemptStatus.GRADED)

TERMINAL_STATUSES = (AttemptStatus.GRADED, AttemptStatus.DISQUALIFIED, AttemptStatus.CANCELLED)

# 외부 검토(moderation) 결정으로만 도달 가능
REVIEW_STATUSES = (AttemptStatus.UNDER_REVIEW, AttemptStatus.DISQUALIFIED, AttemptStatus.CANCELLED)

DEFAULT_SUSPICIOUS_TAB_SWITCHES = 3


@dataclass
class TestDefinition:
    """시험 정의 (외부 CRUD, 코어에서는 읽기 전용)."""
    __test__ = False

    id: int
    title: str
    duration_minutes: int
    fee: Decimal = Decimal("0.00")
    category: str = ""
    passing_score: Optional[Decimal] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    is_active: bool = True

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=int(self.duration_minutes))

    def is_registration_open(self, now: datetime) -> bool:
        return self.registration_deadline is None or now < self.registration_deadline

    def unavailable_reason(self, now: datetime) -> Optional[str]:
        """응시 가능하면 None, 아니면 NOT_STARTED / ENDED / INACTIVE."""
        if not self.is_active:
            return "INACTIVE"
        if self.start_time is not None and now < self.start_time:
            return "NOT_STARTED"
        if self.end_time is not None and now > self.end_time:
            return "ENDED"
        return None

    def is_available(self, now: datetime) -> bool:
        return self.unavailable_reason(now) is None


@dataclass
class Answer:
    """문항 1개에 대한 응답. (attempt_id, question_id) 유일."""
    attempt_id: int
    question_id: int
    answer: str
    time_spent_on_question: int = 0
    question_type: str = "MULTIPLE_CHOICE"
    question_points: int = 1
    is_correct: Optional[bool] = None
    answered_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_graded(self) -> bool:
        return self.is_correct is not None


@dataclass
class Attempt:
    """
    후보자 1명의 시험 1회 응시.
    DB/ORM 없이 규칙만 보유.
    """
    test_id: int
    candidate_id: int
    status: AttemptStatus = AttemptStatus.REGISTERED
    id: Optional[int] = None
    score: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_spent_seconds: Optional[int] = None
    tab_switch_count: int = 0
    fullscreen_exit_count: int = 0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    current_question_index: int = 0
    payment_reference_id: Optional[str] = None
    payment_verified: bool = False
    payment_amount: Optional[Decimal] = None
    submission_reason: str = ""
    review_notes: str = ""
    version: int = 0
    # 조회 편의용 (영속화 대상 아님)
    test: Optional[TestDefinition] = field(default=None, repr=False, compare=False)

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_in_progress(self) -> bool:
        return self.status == AttemptStatus.IN_PROGRESS

    def is_completed(self) -> bool:
        return self.status in (AttemptStatus.COMPLETED, AttemptStatus.AUTO_SUBMITTED)

    def is_owned_by(self, candidate_id: int) -> bool:
        return int(self.candidate_id) == int(candidate_id)

    def can_start(self) -> bool:
        return (
            self.status == AttemptStatus.REGISTERED
            and self.payment_verified
            and self.started_at is None
        )

    def elapsed(self, now: datetime) -> timedelta:
        """시작 전이면 0."""
        if self.started_at is None:
            return timedelta(0)
        return now - self.started_at

    def is_time_expired(self, duration: timedelta, now: datetime) -> bool:
        """시작하지 않은 attempt는 duration 기준으로 만료되지 않는다."""
        if self.started_at is None:
            return False
        return self.elapsed(now) > duration

    def remaining_time(self, duration: timedelta, now: datetime) -> timedelta:
        if self.started_at is None or not self.is_in_progress():
            return timedelta(0)
        remaining = duration - self.elapsed(now)
        return remaining if remaining > timedelta(0) else timedelta(0)

    def has_suspicious_activity(self, max_tab_switches: int = DEFAULT_SUSPICIOUS_TAB_SWITCHES) -> bool:
        return (self.tab_switch_count or 0) > max_tab_switches or (self.fullscreen_exit_count or 0) > 0

    def to_dict(self) -> dict[str, Any]:
        """캐시 직렬화용 (JSON 호환)."""
        def _dt(v: Optional[datetime]) -> Optional[str]:
            return v.isoformat() if v is not None else None

        return {
            "id": self.id,
            "test_id": self.test_id,
            "candidate_id": self.candidate_id,
            "status": self.status.value,
            "score": str(self.score) if self.score is not None else None,
            "created_at": _dt(self.created_at),
            "updated_at": _dt(self.updated_at),
            "started_at": _dt(self.started_at),
            "completed_at": _dt(self.completed_at),
            "time_spent_seconds": self.time_spent_seconds,
            "tab_switch_count": self.tab_switch_count,
            "fullscreen_exit_count": self.fullscreen_exit_count,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "current_question_index": self.current_question_index,
            "payment_reference_id": self.payment_reference_id,
            "payment_verified": self.payment_verified,
            "payment_amount": str(self.payment_amount) if self.payment_amount is not None else None,
            "submission_reason": self.submission_reason,
            "review_notes": self.review_notes,
            "version": self.version,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Attempt":
        def _dt(v: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(v) if v else None

        def _dec(v: Optional[str]) -> Optional[Decimal]:
            return Decimal(v) if v is not None else None

        return Attempt(
            id=data.get("id"),
            test_id=int(data["test_id"]),
            candidate_id=int(data["candidate_id"]),
            status=AttemptStatus(data.get("status") or AttemptStatus.REGISTERED.value),
            score=_dec(data.get("score")),
            created_at=_dt(data.get("created_at")),
            updated_at=_dt(data.get("updated_at")),
            started_at=_dt(data.get("started_at")),
            completed_at=_dt(data.get("completed_at")),
            time_spent_seconds=data.get("time_spent_seconds"),
            tab_switch_count=int(data.get("tab_switch_count") or 0),
            fullscreen_exit_count=int(data.get("fullscreen_exit_count") or 0),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            current_question_index=int(data.get("current_question_index") or 0),
            payment_reference_id=data.get("payment_reference_id"),
            payment_verified=bool(data.get("payment_verified")),
            payment_amount=_dec(data.get("payment_amount")),
            submission_reason=data.get("submission_reason") or "",
            review_notes=data.get("review_notes") or "",
            version=int(data.get("version") or 0),
        )
