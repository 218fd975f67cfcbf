"""
Outbox 기반 협력자 — OutboundEvent 행으로 기록 (Django ORM, lazy import)

실제 전달(메일/푸시/감사 저장소)은 dispatcher가 outbox를 읽어 수행.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

logger = logging.getLogger(__name__)


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    # JSONField: Decimal/datetime/timedelta는 문자열로
    out: dict[str, Any] = {}
    for k, v in data.items():
        if v is None or isinstance(v, (str, int, float, bool, list)):
            out[k] = v
        else:
            out[k] = str(v)
    return out


def _write(kind: str, payload: dict[str, Any]) -> None:
    from apps.domains.attempts.models import OutboundEvent
    OutboundEvent.objects.create(kind=kind, payload=payload)


class OutboxNotificationSender:

    def notify(
        self,
        candidate_id: int,
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> None:
        _write(
            "NOTIFICATION",
            {
                "recipient_id": candidate_id,
                "type": type,
                "title": title,
                "message": message,
                "action_url": action_url,
            },
        )


class OutboxAuditRecorder:

    def record(
        self,
        action: str,
        actor_id: Optional[int],
        description: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        _write(
            "AUDIT",
            {
                "action": action,
                "actor_id": actor_id,
                "description": description,
                "metadata": _jsonable(metadata or {}),
            },
        )


class OutboxProfileUpdater:

    def record_result(self, candidate_id: int, test_id: int, attempt_id: int, score: Decimal) -> None:
        _write(
            "PROFILE_RESULT",
            {
                "candidate_id": candidate_id,
                "test_id": test_id,
                "attempt_id": attempt_id,
                "score": str(score),
            },
        )
