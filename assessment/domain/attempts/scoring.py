"""
채점 — 순수 함수 (영속화 없음)

score = 100 × (정답 수) / (응답 수), 소수 둘째 자리 HALF_UP.
문항 배점(question_points)은 반영하지 않는다.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from assessment.domain.attempts.entities import Answer
from assessment.domain.attempts.errors import ScoringError

ZERO_SCORE = Decimal("0.00")
_TWO_PLACES = Decimal("0.01")


def compute_score(answers: Iterable[Answer]) -> Decimal:
    """응답이 없거나 정답이 없으면 0.00."""
    try:
        items = list(answers)
    except TypeError as e:
        raise ScoringError(f"Answer set is not iterable: {e}") from e

    total = len(items)
    if total == 0:
        return ZERO_SCORE

    correct = sum(1 for a in items if getattr(a, "is_correct", None) is True)
    if correct == 0:
        return ZERO_SCORE

    try:
        percentage = Decimal(correct) * Decimal(100) / Decimal(total)
        return percentage.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ScoringError(f"Score computation failed ({correct}/{total}): {e}") from e
