from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation


def _float(name: str, default: str) -> float:
    try:
        return float(os.environ.get(name, default))
    except Exception:
        return float(default)


def _int(name: str, default: str) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return int(default)


def _decimal(name: str, default: str) -> Decimal:
    try:
        return Decimal(os.environ.get(name, default))
    except (InvalidOperation, TypeError):
        return Decimal(default)


@dataclass(frozen=True)
class AttemptPolicy:
    # Scoring / notifications
    HIGH_PERFORMER_THRESHOLD: Decimal = Decimal("80")

    # Answer submission rate limit (per attempt+candidate)
    ANSWER_RATE_WINDOW_SECONDS: float = 2.0
    ANSWER_RATE_MAX_REQUESTS: int = 1

    # Proctoring (advisory only)
    SUSPICIOUS_TAB_SWITCHES: int = 3

    # Locking
    LOCK_TIMEOUT_SECONDS: float = 5.0

    # Expiry sweep
    SWEEP_INTERVAL_SECONDS: float = 60.0

    # Read cache
    CACHE_TTL_SECONDS: int = 1800
    # REGISTERED / IN_PROGRESS 등 아직 바뀔 수 있는 상태
    ACTIVE_CACHE_TTL_SECONDS: int = 30

    @property
    def answer_rate_window(self) -> timedelta:
        return timedelta(seconds=self.ANSWER_RATE_WINDOW_SECONDS)


def load_policy() -> AttemptPolicy:
    return AttemptPolicy(
        HIGH_PERFORMER_THRESHOLD=_decimal("ATTEMPT_HIGH_PERFORMER_THRESHOLD", "80"),

        ANSWER_RATE_WINDOW_SECONDS=_float("ATTEMPT_ANSWER_RATE_WINDOW_SECONDS", "2"),
        ANSWER_RATE_MAX_REQUESTS=_int("ATTEMPT_ANSWER_RATE_MAX_REQUESTS", "1"),

        SUSPICIOUS_TAB_SWITCHES=_int("ATTEMPT_SUSPICIOUS_TAB_SWITCHES", "3"),

        LOCK_TIMEOUT_SECONDS=_float("ATTEMPT_LOCK_TIMEOUT_SECONDS", "5"),

        SWEEP_INTERVAL_SECONDS=_float("ATTEMPT_SWEEP_INTERVAL_SECONDS", "60"),

        CACHE_TTL_SECONDS=_int("ATTEMPT_CACHE_TTL_SECONDS", "1800"),
        ACTIVE_CACHE_TTL_SECONDS=_int("ATTEMPT_ACTIVE_CACHE_TTL_SECONDS", "30"),
    )
