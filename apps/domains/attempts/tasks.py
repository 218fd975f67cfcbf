# apps/domains/attempts/tasks.py
from __future__ import annotations

import logging

from celery import shared_task

from assessment.framework.wiring import build_expiry_sweep

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    queue="default",
    ignore_result=False,
)
def sweep_expired_attempts_task(self, dry_run: bool = False) -> dict:
    """
    Celery beat 진입점 (기본 60초 주기).

    - 만료된 IN_PROGRESS attempt 자동 제출
    - 개별 실패는 ExpirySweep 내부에서 기록, 배치는 계속
    - retry 없음: 다음 주기가 재시도
    """
    report = build_expiry_sweep().run_once(dry_run=bool(dry_run))
    return report.as_dict()
