"""
외부 협력자 포트 — 결제, 알림, 감사, 자격 확인, 프로필 반영

코어는 요청/이벤트만 내보낸다. 전달/저장은 어댑터(또는 외부 시스템) 책임.
"""
from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol


@dataclass(frozen=True)
class PaymentOutcome:
    reference_id: str
    verified: bool


class PaymentGateway(Protocol):

    @abstractmethod
    def request_payment(self, amount: Decimal, description: str, candidate_id: int) -> PaymentOutcome:
        """verified=False는 '결제 대기'. 실패는 예외."""
        ...


class NotificationSender(Protocol):

    @abstractmethod
    def notify(
        self,
        candidate_id: int,
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> None:
        """fire-and-forget."""
        ...


class AuditRecorder(Protocol):

    @abstractmethod
    def record(
        self,
        action: str,
        actor_id: Optional[int],
        description: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """best-effort."""
        ...


class EligibilityChecker(Protocol):

    @abstractmethod
    def is_eligible(self, candidate_id: int) -> bool:
        """enabled + verified."""
        ...


class ProfileUpdater(Protocol):

    @abstractmethod
    def record_result(self, candidate_id: int, test_id: int, attempt_id: int, score: Decimal) -> None:
        ...


class InterestedPartyDirectory(Protocol):

    @abstractmethod
    def recipient_ids(self) -> Iterable[int]:
        """high performer 알림 수신자."""
        ...
