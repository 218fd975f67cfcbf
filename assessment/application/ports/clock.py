"""
Clock 포트 — 모든 시간 계산의 기준 (테스트에서 주입)
"""
from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):

    def now(self) -> datetime:
        """timezone-aware UTC datetime."""
        ...
