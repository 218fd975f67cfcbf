from datetime import timedelta
from decimal import Decimal

import pytest

from assessment.domain.attempts.entities import AttemptStatus
from assessment.domain.attempts.errors import (
    AttemptNotFoundError,
    InvalidStateError,
    RateLimitExceededError,
    TimeExpiredError,
    UnauthorizedAttemptAccessError,
)

from conftest import Harness


def _grade(harness, attempt_id, verdicts):
    harness.engine.record_grades(attempt_id, verdicts)


class TestSubmitAnswer:
    def test_creates_answer_and_touches_attempt(self, harness, engine, clock):
        attempt = harness.started_attempt()
        answer = harness.answer(attempt, 1, "B")

        assert answer.id is not None
        assert answer.answer == "B"
        assert answer.is_correct is None
        assert answer.answered_at == clock.now()
        assert harness.store.get_attempt(attempt.id).updated_at == clock.now()
        assert "ANSWER_SUBMISSION" in harness.audit.actions()

    def test_resubmission_updates_same_row(self, harness):
        attempt = harness.started_attempt()
        first = harness.answer(attempt, 1, "A")
        second = harness.answer(attempt, 1, "C")

        assert second.id == first.id
        assert harness.store.answer_count(attempt.id) == 1
        assert harness.store.get_answer(attempt.id, 1).answer == "C"

    def test_resubmission_keeps_grading_verdict(self, harness):
        attempt = harness.started_attempt()
        harness.answer(attempt, 1, "A")
        _grade(harness, attempt.id, {1: True})
        updated = harness.answer(attempt, 1, "D")
        assert updated.is_correct is True

    def test_rate_limited_within_window(self, harness, engine, clock):
        attempt = harness.started_attempt()
        outcomes = []
        for qid in range(1, 6):
            try:
                engine.submit_answer(attempt.id, 42, qid, "A", 5)
                outcomes.append("ok")
            except RateLimitExceededError:
                outcomes.append("limited")

        assert outcomes == ["ok", "limited", "limited", "limited", "limited"]
        assert harness.store.answer_count(attempt.id) == 1

    def test_rate_limit_releases_after_window(self, harness, engine, clock):
        attempt = harness.started_attempt()
        engine.submit_answer(attempt.id, 42, 1, "A", 5)
        clock.advance(seconds=2)
        engine.submit_answer(attempt.id, 42, 2, "B", 5)
        assert harness.store.answer_count(attempt.id) == 2

    def test_rate_limit_refusal_does_not_touch_persistence(self, harness, engine, clock):
        attempt = harness.started_attempt()
        engine.submit_answer(attempt.id, 42, 1, "A", 5)
        before = harness.store.get_attempt(attempt.id).updated_at
        clock.advance(seconds=1)
        with pytest.raises(RateLimitExceededError):
            engine.submit_answer(attempt.id, 42, 1, "B", 5)
        assert harness.store.get_answer(attempt.id, 1).answer == "A"
        assert harness.store.get_attempt(attempt.id).updated_at == before

    def test_wrong_candidate(self, harness):
        attempt = harness.started_attempt()
        with pytest.raises(UnauthorizedAttemptAccessError):
            harness.answer(attempt, 1, "A", candidate_id=43)

    def test_unknown_attempt(self, harness, engine):
        with pytest.raises(AttemptNotFoundError):
            engine.submit_answer(12345, 42, 1, "A", 5)

    def test_not_started(self, harness, engine):
        attempt = engine.register(1, 42)
        with pytest.raises(InvalidStateError):
            engine.submit_answer(attempt.id, 42, 1, "A", 5)

    def test_after_completion(self, harness, engine):
        attempt = harness.started_attempt()
        engine.submit_test(attempt.id, 42)
        with pytest.raises(InvalidStateError):
            harness.answer(attempt, 1, "A")

    def test_expiry_boundary(self, harness, engine, clock):
        attempt = harness.started_attempt()
        clock.set(attempt.started_at + timedelta(minutes=59, seconds=59))
        engine.submit_answer(attempt.id, 42, 1, "A", 5)

        clock.set(attempt.started_at + timedelta(minutes=60, seconds=1))
        with pytest.raises(TimeExpiredError) as exc:
            engine.submit_answer(attempt.id, 42, 2, "A", 5)
        assert exc.value.allowed == timedelta(minutes=60)
        assert exc.value.actual == timedelta(minutes=60, seconds=1)
        assert exc.value.context["test_id"] == 1


class TestSubmitTest:
    def test_completes_and_scores(self, harness, engine, clock):
        attempt = harness.started_attempt()
        for qid, text in enumerate("ABCDA", start=1):
            harness.answer(attempt, qid, text)
        _grade(harness, attempt.id, {1: True, 2: True, 3: True, 4: False, 5: False})
        clock.advance(minutes=10)

        done = engine.submit_test(attempt.id, 42)

        assert done.status == AttemptStatus.COMPLETED
        assert done.score == Decimal("60.00")
        assert done.completed_at == clock.now()
        assert done.time_spent_seconds == int((clock.now() - attempt.started_at).total_seconds())
        assert done.submission_reason == "NORMAL"

    def test_completion_side_effects(self, harness, engine):
        attempt = harness.started_attempt()
        harness.answer(attempt, 1, "A")
        _grade(harness, attempt.id, {1: True})
        done = engine.submit_test(attempt.id, 42)

        [note] = harness.notifier.of_type("TEST_COMPLETED")
        assert note["action_url"] == f"/candidate/results/{done.id}"
        assert "100.00%" in note["message"]
        assert harness.profiles.results == [(42, 1, done.id, Decimal("100.00"))]
        assert "TEST_COMPLETION" in harness.audit.actions()

    def test_high_performer_notifies_interested_parties(self, harness, engine):
        attempt = harness.started_attempt()
        harness.answer(attempt, 1, "A")
        _grade(harness, attempt.id, {1: True})
        engine.submit_test(attempt.id, 42)

        notes = harness.notifier.of_type("HIGH_PERFORMER")
        assert sorted(n["recipient_id"] for n in notes) == [900, 901]
        assert all(n["action_url"] == "/talent/42" for n in notes)

    def test_below_threshold_does_not_notify_interested_parties(self, harness, engine):
        attempt = harness.started_attempt()
        harness.answer(attempt, 1, "A")
        harness.answer(attempt, 2, "B")
        _grade(harness, attempt.id, {1: True, 2: False})
        engine.submit_test(attempt.id, 42)
        assert harness.notifier.of_type("HIGH_PERFORMER") == []

    def test_no_answers_scores_zero(self, harness, engine):
        attempt = harness.started_attempt()
        done = engine.submit_test(attempt.id, 42)
        assert done.score == Decimal("0.00")

    def test_expired_requires_force(self, harness, engine, clock):
        attempt = harness.started_attempt()
        clock.advance(minutes=61)
        with pytest.raises(TimeExpiredError):
            engine.submit_test(attempt.id, 42)
        assert harness.store.get_attempt(attempt.id).status == AttemptStatus.IN_PROGRESS

        done = engine.submit_test(attempt.id, 42, force_submit=True, reason="TECHNICAL_ISSUE")
        assert done.status == AttemptStatus.COMPLETED
        assert done.submission_reason == "TECHNICAL_ISSUE"

    def test_double_submit_rejected(self, harness, engine):
        attempt = harness.started_attempt()
        engine.submit_test(attempt.id, 42)
        with pytest.raises(InvalidStateError):
            engine.submit_test(attempt.id, 42)

    def test_wrong_candidate(self, harness, engine):
        attempt = harness.started_attempt()
        with pytest.raises(UnauthorizedAttemptAccessError):
            engine.submit_test(attempt.id, 7)

    def test_scoring_failure_completes_with_zero(self, harness, engine, monkeypatch):
        from assessment.application.use_cases.attempts import lifecycle
        from assessment.domain.attempts.errors import ScoringError

        def _boom(answers):
            raise ScoringError("corrupt answer set")

        monkeypatch.setattr(lifecycle, "compute_score", _boom)
        attempt = harness.started_attempt()
        done = engine.submit_test(attempt.id, 42)

        assert done.status == AttemptStatus.COMPLETED
        assert done.score == Decimal("0.00")
        assert "SCORING_ERROR" in harness.audit.actions()

    def test_failing_collaborators_do_not_fail_completion(self, harness, engine):
        def _raise(*args, **kwargs):
            raise RuntimeError("collaborator down")

        harness.notifier.notify = _raise
        harness.audit.record = _raise
        harness.profiles.record_result = _raise
        attempt = harness.started_attempt()
        done = engine.submit_test(attempt.id, 42)
        assert done.status == AttemptStatus.COMPLETED


class TestReads:
    def test_remaining_time(self, harness, engine, clock):
        attempt = harness.started_attempt()
        clock.advance(minutes=20)
        assert engine.remaining_time(attempt.id) == timedelta(minutes=40)
        clock.advance(hours=2)
        assert engine.remaining_time(attempt.id) == timedelta(0)
        assert engine.is_time_expired(attempt.id) is True

    def test_get_attempt_checks_owner(self, harness, engine):
        attempt = harness.started_attempt()
        assert engine.get_attempt(attempt.id, 42).id == attempt.id
        with pytest.raises(UnauthorizedAttemptAccessError):
            engine.get_attempt(attempt.id, 43)

    def test_list_candidate_attempts_newest_first(self, harness, engine, clock):
        harness.add_test(2)
        first = engine.register(1, 42)
        clock.advance(minutes=1)
        second = engine.register(2, 42)
        engine.register(1, 43)
        assert [a.id for a in engine.list_candidate_attempts(42)] == [second.id, first.id]


def test_policy_threshold_is_configurable():
    from assessment.framework.config import AttemptPolicy

    h = Harness(policy=AttemptPolicy(HIGH_PERFORMER_THRESHOLD=Decimal("101")))
    h.add_test()
    attempt = h.started_attempt()
    h.answer(attempt, 1, "A")
    h.engine.record_grades(attempt.id, {1: True})
    h.engine.submit_test(attempt.id, 42)
    assert h.notifier.of_type("HIGH_PERFORMER") == []
