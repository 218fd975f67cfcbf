"""
Expiry Sweeper Worker — Hexagonal 프레임워크 계층 (thin)

- ExpirySweep.run_once()를 고정 주기로 호출 (기본 60초).
- 1회 실패는 로그만 남기고 다음 주기로 (연속 실패 상한 초과 시 종료 코드 1).
- Celery beat 없이 단독 프로세스로 돌릴 때 사용.
"""
from __future__ import annotations

import logging
import os
import signal
import sys
import threading
from typing import Callable, Optional

from assessment.application.use_cases.attempts.expiry_sweep import ExpirySweep, SweepReport

logger = logging.getLogger("assessment.expiry_sweeper")

MAX_CONSECUTIVE_ERRORS = int(os.getenv("ATTEMPT_SWEEP_MAX_CONSECUTIVE_ERRORS", "10"))


class PeriodicSweeper:
    """stop()까지 interval마다 sweep. 종료 대기는 Event.wait (sleep 없음)."""

    def __init__(
        self,
        sweep: ExpirySweep,
        interval_seconds: float,
        max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS,
        on_report: Optional[Callable[[SweepReport], None]] = None,
    ) -> None:
        self._sweep = sweep
        self._interval = max(0.0, float(interval_seconds))
        self._max_errors = max_consecutive_errors
        self._on_report = on_report
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0
        self.consecutive_errors = 0

    def tick(self) -> Optional[SweepReport]:
        try:
            report = self._sweep.run_once()
        except Exception as e:
            self.consecutive_errors += 1
            logger.exception("EXPIRY_SWEEP_ERROR | consecutive=%s error=%s", self.consecutive_errors, e)
            return None
        self.runs += 1
        self.consecutive_errors = 0
        if self._on_report is not None:
            self._on_report(report)
        return report

    def run(self) -> int:
        """메인 루프. 0 정상 종료, 1 연속 오류 상한 초과."""
        logger.info("EXPIRY_SWEEPER_START | interval=%.1fs", self._interval)
        while not self._stop.is_set():
            self.tick()
            if self.consecutive_errors >= self._max_errors:
                logger.error("Too many consecutive errors (%s), exit", self.consecutive_errors)
                return 1
            self._stop.wait(self._interval)
        logger.info("EXPIRY_SWEEPER_STOP | runs=%s", self.runs)
        return 0

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="expiry-sweeper", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None


def run_expiry_sweeper() -> int:
    from assessment.framework.config import load_policy
    from assessment.framework.wiring import build_expiry_sweep

    policy = load_policy()
    sweeper = PeriodicSweeper(build_expiry_sweep(policy), policy.SWEEP_INTERVAL_SECONDS)

    def _handle_signal(sig, frame) -> None:
        logger.info("Received signal, graceful shutdown")
        sweeper.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    try:
        return sweeper.run()
    finally:
        from django.db import connection
        connection.close()


if __name__ == "__main__":
    if os.environ.get("DJANGO_SETTINGS_MODULE"):
        import django
        django.setup()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] [EXPIRY-SWEEPER] %(message)s",
    )
    sys.exit(run_expiry_sweeper())
