"""
만료 attempt 자동 제출 — 주기 실행 (Celery beat / management command / worker thread)

IN_PROGRESS 중 elapsed > duration 인 attempt를 AttemptLifecycleEngine.auto_submit()으로 제출.
- 1건 실패가 배치를 중단시키지 않는다.
- 이미 제출된 attempt는 auto_submit이 None을 반환 → skipped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from assessment.application.ports.clock import Clock
from assessment.application.ports.unit_of_work import UnitOfWork
from assessment.application.use_cases.attempts.events import (
    AUDIT_AUTO_SUBMIT_BATCH,
    AUDIT_AUTO_SUBMIT_FAILURE,
)
from assessment.application.use_cases.attempts.lifecycle import AttemptLifecycleEngine
from assessment.domain.attempts.entities import Attempt, AttemptStatus, TestDefinition

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    expired_ids: list[int] = field(default_factory=list)
    submitted_ids: list[int] = field(default_factory=list)
    skipped_ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)
    dry_run: bool = False

    @property
    def submitted(self) -> int:
        return len(self.submitted_ids)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "expired": len(self.expired_ids),
            "submitted": len(self.submitted_ids),
            "skipped": len(self.skipped_ids),
            "failed": len(self.failed_ids),
            "dry_run": self.dry_run,
            "submitted_ids": list(self.submitted_ids),
            "failed_ids": list(self.failed_ids),
        }


class ExpirySweep:

    def __init__(
        self,
        engine: AttemptLifecycleEngine,
        uow_factory: Callable[[], UnitOfWork],
        clock: Optional[Clock] = None,
    ) -> None:
        self._engine = engine
        self._uow_factory = uow_factory
        self._clock = clock or engine.clock

    def find_expired(self) -> tuple[int, list[Attempt]]:
        """(스캔 수, 만료 attempt 목록). 시험 정의는 test_id 단위로 1회만 조회."""
        now = self._clock.now()
        tests: dict[int, Optional[TestDefinition]] = {}
        expired: list[Attempt] = []
        with self._uow_factory() as uow:
            in_progress = uow.attempts.list_by_status(AttemptStatus.IN_PROGRESS)
            for attempt in in_progress:
                if attempt.test_id not in tests:
                    tests[attempt.test_id] = uow.tests.get(attempt.test_id)
                test = tests[attempt.test_id]
                if test is None:
                    logger.warning(
                        "EXPIRY_SWEEP_TEST_MISSING | attempt_id=%s test_id=%s",
                        attempt.id, attempt.test_id,
                    )
                    continue
                if attempt.is_time_expired(test.duration, now):
                    expired.append(attempt)
        return len(in_progress), expired

    def run_once(self, dry_run: bool = False) -> SweepReport:
        scanned, expired = self.find_expired()
        report = SweepReport(scanned=scanned, expired_ids=[a.id for a in expired], dry_run=dry_run)

        if dry_run:
            logger.info("EXPIRY_SWEEP_DRY_RUN | %s", report.as_dict())
            return report

        for attempt in expired:
            try:
                result = self._engine.auto_submit(attempt)
            except Exception as e:
                logger.exception("AUTO_SUBMIT_FAILED | attempt_id=%s", attempt.id)
                report.failed_ids.append(attempt.id)
                self._engine.events.audit(
                    AUDIT_AUTO_SUBMIT_FAILURE,
                    None,
                    f"Failed to auto-submit attempt {attempt.id}: {e}",
                    {"attempt_id": attempt.id},
                )
                continue
            if result is None:
                report.skipped_ids.append(attempt.id)
            else:
                report.submitted_ids.append(attempt.id)

        if report.submitted > 0:
            self._engine.events.audit(
                AUDIT_AUTO_SUBMIT_BATCH,
                None,
                f"Auto-submitted {report.submitted} expired attempts",
                {"attempt_ids": list(report.submitted_ids)},
            )

        if expired:
            logger.info("EXPIRY_SWEEP_DONE | %s", report.as_dict())
        else:
            logger.debug("EXPIRY_SWEEP_DONE | %s", report.as_dict())
        return report
