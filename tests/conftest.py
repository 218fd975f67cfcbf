from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from assessment.adapters.cache.rate_limiters import InMemoryRateLimiter
from assessment.adapters.db.memory.store import InMemoryStore
from assessment.adapters.db.memory.uow import in_memory_uow_factory
from assessment.application.ports.collaborators import PaymentOutcome
from assessment.application.use_cases.attempts.events import AttemptEventEmitter
from assessment.application.use_cases.attempts.expiry_sweep import ExpirySweep
from assessment.application.use_cases.attempts.lifecycle import AttemptLifecycleEngine
from assessment.domain.attempts.entities import TestDefinition
from assessment.framework.config import AttemptPolicy

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: datetime = T0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(**kwargs)
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value


class FakePaymentGateway:
    def __init__(self, verified: bool = True, error: Optional[Exception] = None) -> None:
        self.verified = verified
        self.error = error
        self.calls: list[tuple[Decimal, str, int]] = []

    def request_payment(self, amount, description, candidate_id):
        self.calls.append((amount, description, candidate_id))
        if self.error is not None:
            raise self.error
        return PaymentOutcome(reference_id=f"ref_{len(self.calls)}", verified=self.verified)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def notify(self, candidate_id, type, title, message, action_url=None):
        with self._lock:
            self.sent.append(
                {"recipient_id": candidate_id, "type": type, "title": title, "message": message, "action_url": action_url}
            )

    def of_type(self, type_: str) -> list[dict[str, Any]]:
        return [n for n in self.sent if n["type"] == type_]


class RecordingAudit:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def record(self, action, actor_id, description, metadata=None):
        with self._lock:
            self.events.append(
                {"action": action, "actor_id": actor_id, "description": description, "metadata": metadata or {}}
            )

    def actions(self) -> list[str]:
        return [e["action"] for e in self.events]


class RecordingProfileUpdater:
    def __init__(self) -> None:
        self.results: list[tuple[int, int, int, Decimal]] = []

    def record_result(self, candidate_id, test_id, attempt_id, score):
        self.results.append((candidate_id, test_id, attempt_id, score))


class StaticEligibility:
    def __init__(self, ineligible: tuple[int, ...] = ()) -> None:
        self.ineligible = set(ineligible)

    def is_eligible(self, candidate_id):
        return candidate_id not in self.ineligible


class StaticDirectory:
    def __init__(self, ids=(900, 901)) -> None:
        self.ids = list(ids)

    def recipient_ids(self):
        return list(self.ids)


class Harness:
    """엔진 + in-memory 어댑터 + 기록용 협력자 묶음."""

    def __init__(self, policy: Optional[AttemptPolicy] = None, lock_timeout: float = 5.0) -> None:
        self.policy = policy or AttemptPolicy()
        self.clock = ManualClock()
        self.store = InMemoryStore(lock_timeout_seconds=lock_timeout)
        self.uow_factory = in_memory_uow_factory(self.store)
        self.rate_limiter = InMemoryRateLimiter(self.clock)
        self.payment = FakePaymentGateway()
        self.eligibility = StaticEligibility()
        self.notifier = RecordingNotifier()
        self.audit = RecordingAudit()
        self.profiles = RecordingProfileUpdater()
        self.directory = StaticDirectory()
        self.events = AttemptEventEmitter(
            notifier=self.notifier,
            audit=self.audit,
            profile_updater=self.profiles,
            interested_parties=self.directory,
        )
        self.engine = AttemptLifecycleEngine(
            uow_factory=self.uow_factory,
            clock=self.clock,
            rate_limiter=self.rate_limiter,
            payment_gateway=self.payment,
            eligibility=self.eligibility,
            events=self.events,
            policy=self.policy,
        )
        self.sweep = ExpirySweep(self.engine, self.uow_factory, self.clock)

    def add_test(self, test_id: int = 1, **overrides) -> TestDefinition:
        values = {
            "id": test_id,
            "title": "Python Fundamentals",
            "duration_minutes": 60,
            "fee": Decimal("25.00"),
            "category": "Programming",
        }
        values.update(overrides)
        test = TestDefinition(**values)
        self.store.add_test(test)
        return test

    def started_attempt(self, test_id: int = 1, candidate_id: int = 42):
        attempt = self.engine.register(test_id, candidate_id)
        return self.engine.start(attempt.id, candidate_id, ip_address="10.0.0.1", user_agent="pytest-agent/1.0")

    def answer(self, attempt, question_id: int, text: str = "A", candidate_id: Optional[int] = None):
        # 응답 간격: rate limit 윈도우(2초) 밖
        self.clock.advance(seconds=3)
        return self.engine.submit_answer(
            attempt.id, candidate_id or attempt.candidate_id, question_id, text, 30,
        )


@pytest.fixture
def harness() -> Harness:
    h = Harness()
    h.add_test()
    return h


@pytest.fixture
def clock(harness) -> ManualClock:
    return harness.clock


@pytest.fixture
def engine(harness) -> AttemptLifecycleEngine:
    return harness.engine
