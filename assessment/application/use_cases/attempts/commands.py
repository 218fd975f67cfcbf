"""
Attempt Use Case 입력 — 검증/정규화 (Django 미사용)

HTTP 파싱은 외부 책임. 여기서는 엔진이 받는 값의 형식만 강제한다.
"""
from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Any, Optional

from assessment.domain.attempts.errors import InvalidInputError

MAX_ANSWER_LENGTH = 10000
MAX_TIME_SPENT_SECONDS = 3600
MAX_QUESTION_POINTS = 100
MAX_USER_AGENT_LENGTH = 500

DEFAULT_QUESTION_TYPE = "MULTIPLE_CHOICE"
DEFAULT_QUESTION_POINTS = 1
DEFAULT_SUBMISSION_REASON = "NORMAL"

SUBMISSION_REASONS = ("NORMAL", "TIME_EXPIRED", "TECHNICAL_ISSUE", "EMERGENCY", "AUTO_SUBMIT")

_QUESTION_TYPE_RE = re.compile(r"^[A-Za-z0-9_-]{1,50}$")
_MULTIPLE_CHOICE_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")
_USER_AGENT_RE = re.compile(r"^[\x20-\x7E]*$")
_EXCESSIVE_WHITESPACE_RE = re.compile(r"\s{2,}")
_SUSPICIOUS_RE = re.compile(r"(?i)(<script|javascript:|onclick|onload|onerror|eval\(|expression\()")


def validate_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(field, "must be a positive integer")
    try:
        v = int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(field, "must be a positive integer")
    if v <= 0 or (isinstance(value, float) and not value.is_integer()):
        raise InvalidInputError(field, "must be a positive integer")
    return v


def validate_range(value: Any, field: str, low: int, high: int) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(field, "must be an integer")
    if v < low or v > high:
        raise InvalidInputError(field, f"must be between {low} and {high}")
    return v


def normalize_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return _EXCESSIVE_WHITESPACE_RE.sub(" ", str(value).strip())


def validate_ip_address(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    try:
        return str(ipaddress.ip_address(str(value).strip()))
    except ValueError:
        raise InvalidInputError("ip_address", f"{value!r} is not a valid IP address")


def validate_user_agent(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if len(value) > MAX_USER_AGENT_LENGTH:
        raise InvalidInputError("user_agent", f"must be at most {MAX_USER_AGENT_LENGTH} characters")
    if not _USER_AGENT_RE.match(value):
        raise InvalidInputError("user_agent", "must contain printable ASCII characters only")
    return value


def _validate_answer_content(answer: str, question_type: str) -> None:
    kind = question_type.upper()
    if kind == "MULTIPLE_CHOICE":
        if not _MULTIPLE_CHOICE_RE.match(answer):
            raise InvalidInputError("answer", "multiple choice answers must be 1-10 alphanumeric characters")
    elif kind == "TRUE_FALSE":
        if answer.lower() not in ("true", "false", "t", "f"):
            raise InvalidInputError("answer", "true/false answers must be 'true', 'false', 't', or 'f'")
    elif kind == "SHORT_ANSWER":
        if len(answer) > 500:
            raise InvalidInputError("answer", "short answers cannot exceed 500 characters")
    elif kind == "ESSAY":
        if len(answer) < 50:
            raise InvalidInputError("answer", "essay answers must be at least 50 characters")
    elif kind == "NUMERIC":
        try:
            float(answer)
        except ValueError:
            raise InvalidInputError("answer", "numeric answers must be valid numbers")
    elif _SUSPICIOUS_RE.search(answer):
        raise InvalidInputError("answer", "answer contains suspicious content")


@dataclass(frozen=True)
class StartAttemptCommand:
    attempt_id: int
    candidate_id: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @staticmethod
    def build(attempt_id, candidate_id, ip_address=None, user_agent=None) -> "StartAttemptCommand":
        return StartAttemptCommand(
            attempt_id=validate_id(attempt_id, "attempt_id"),
            candidate_id=validate_id(candidate_id, "candidate_id"),
            ip_address=validate_ip_address(ip_address),
            user_agent=validate_user_agent(user_agent),
        )


@dataclass(frozen=True)
class SubmitAnswerCommand:
    attempt_id: int
    candidate_id: int
    question_id: int
    answer: str
    time_spent_seconds: int
    question_type: str = DEFAULT_QUESTION_TYPE
    question_points: int = DEFAULT_QUESTION_POINTS

    @staticmethod
    def build(
        attempt_id,
        candidate_id,
        question_id,
        answer,
        time_spent_seconds,
        question_type=None,
        question_points=None,
    ) -> "SubmitAnswerCommand":
        if answer is None:
            raise InvalidInputError("answer", "is required")
        text = normalize_text(answer)
        if not text:
            raise InvalidInputError("answer", "cannot be blank")
        if len(text) > MAX_ANSWER_LENGTH:
            raise InvalidInputError("answer", f"must be at most {MAX_ANSWER_LENGTH} characters")

        qtype = question_type or DEFAULT_QUESTION_TYPE
        if not _QUESTION_TYPE_RE.match(qtype):
            raise InvalidInputError("question_type", "must be alphanumeric with underscores or hyphens")
        qtype = qtype.upper()
        _validate_answer_content(text, qtype)

        points = DEFAULT_QUESTION_POINTS if question_points is None else question_points

        return SubmitAnswerCommand(
            attempt_id=validate_id(attempt_id, "attempt_id"),
            candidate_id=validate_id(candidate_id, "candidate_id"),
            question_id=validate_id(question_id, "question_id"),
            answer=text,
            time_spent_seconds=validate_range(time_spent_seconds, "time_spent_seconds", 0, MAX_TIME_SPENT_SECONDS),
            question_type=qtype,
            question_points=validate_range(points, "question_points", 0, MAX_QUESTION_POINTS),
        )

    @property
    def rate_limit_key(self) -> str:
        return f"answer:{self.attempt_id}:{self.candidate_id}"

    def sanitized_for_logging(self) -> dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "candidate_id": self.candidate_id,
            "question_id": self.question_id,
            "answer": "[REDACTED]",
            "time_spent_seconds": self.time_spent_seconds,
            "question_type": self.question_type,
            "question_points": self.question_points,
        }


@dataclass(frozen=True)
class SubmitTestCommand:
    attempt_id: int
    candidate_id: int
    force_submit: bool = False
    reason: str = DEFAULT_SUBMISSION_REASON

    @staticmethod
    def build(attempt_id, candidate_id, force_submit=False, reason=None) -> "SubmitTestCommand":
        r = (reason or DEFAULT_SUBMISSION_REASON).strip().upper()
        if r not in SUBMISSION_REASONS:
            raise InvalidInputError("reason", f"must be one of {', '.join(SUBMISSION_REASONS)}")
        return SubmitTestCommand(
            attempt_id=validate_id(attempt_id, "attempt_id"),
            candidate_id=validate_id(candidate_id, "candidate_id"),
            force_submit=bool(force_submit),
            reason=r,
        )
