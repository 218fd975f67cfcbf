"""Django ORM 어댑터 + 조립(wiring) — SQLite, Redis 없이 (fail-open)."""
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.utils import timezone

from apps.domains.attempts import models as m
from apps.domains.attempts.tasks import sweep_expired_attempts_task
from assessment.adapters.db.django.uow import DjangoUnitOfWork
from assessment.domain.attempts.entities import Answer, Attempt, AttemptStatus
from assessment.domain.attempts.errors import (
    CandidateNotEligibleError,
    DuplicateActiveAttemptError,
    InvalidStateError,
    StaleAttemptError,
)
from assessment.framework.wiring import build_engine
from libs.redis.client import reset_redis_state

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    monkeypatch.delenv("REDIS_HOST", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    reset_redis_state()
    yield
    reset_redis_state()


@pytest.fixture
def test_def():
    return m.TestDefinition.objects.create(title="Python Fundamentals", duration_minutes=60, fee=Decimal("25.00"))


@pytest.fixture
def candidate():
    return get_user_model().objects.create_user(username="candidate", password="x")


def _in_progress(test_def, candidate_id, started_at):
    return m.Attempt.objects.create(
        test=test_def,
        candidate_id=candidate_id,
        status=m.Attempt.Status.IN_PROGRESS,
        started_at=started_at,
        payment_verified=True,
    )


class TestRepositories:
    def test_add_and_read_back(self, test_def):
        with DjangoUnitOfWork() as uow:
            created = uow.attempts.add(Attempt(test_id=test_def.id, candidate_id=7, payment_amount=test_def.fee))

        with DjangoUnitOfWork() as uow:
            loaded = uow.attempts.get(created.id)
            definition = uow.tests.get(test_def.id)

        assert loaded.status == AttemptStatus.REGISTERED
        assert loaded.version == 0
        assert loaded.payment_amount == Decimal("25.00")
        assert definition.duration == timedelta(minutes=60)

    def test_partial_unique_constraint_rejects_second_active(self, test_def):
        with DjangoUnitOfWork() as uow:
            first = uow.attempts.add(Attempt(test_id=test_def.id, candidate_id=7))

        with pytest.raises(DuplicateActiveAttemptError) as exc:
            with DjangoUnitOfWork() as uow:
                uow.attempts.add(Attempt(test_id=test_def.id, candidate_id=7))
        assert exc.value.context["existing_attempt_id"] == first.id

    def test_terminal_attempts_do_not_block(self, test_def):
        m.Attempt.objects.create(test=test_def, candidate_id=7, status=m.Attempt.Status.COMPLETED)
        with DjangoUnitOfWork() as uow:
            uow.attempts.add(Attempt(test_id=test_def.id, candidate_id=7))
        assert m.Attempt.objects.filter(candidate_id=7).count() == 2

    def test_save_with_stale_version(self, test_def):
        with DjangoUnitOfWork() as uow:
            created = uow.attempts.add(Attempt(test_id=test_def.id, candidate_id=7))

        with DjangoUnitOfWork() as uow:
            fresh = uow.attempts.get(created.id)
            fresh.tab_switch_count = 1
            saved = uow.attempts.save(fresh)
        assert saved.version == 1

        with pytest.raises(StaleAttemptError):
            with DjangoUnitOfWork() as uow:
                created.tab_switch_count = 9
                uow.attempts.save(created)
        assert m.Attempt.objects.get(id=created.id).tab_switch_count == 1

    def test_answer_upsert_keeps_one_row(self, test_def):
        attempt = _in_progress(test_def, 7, timezone.now())
        with DjangoUnitOfWork() as uow:
            first = uow.answers.save(Answer(attempt_id=attempt.id, question_id=1, answer="A"))
            second = uow.answers.save(Answer(attempt_id=attempt.id, question_id=1, answer="C"))

        assert first.id == second.id
        assert m.Answer.objects.filter(attempt=attempt).count() == 1
        assert m.Answer.objects.get(attempt=attempt).answer == "C"

    def test_touch_rejects_finished_attempt_and_rolls_back_answer(self, test_def):
        attempt = m.Attempt.objects.create(
            test=test_def, candidate_id=7, status=m.Attempt.Status.COMPLETED, payment_verified=True,
        )
        with pytest.raises(InvalidStateError) as exc:
            with DjangoUnitOfWork() as uow:
                uow.answers.save(Answer(attempt_id=attempt.id, question_id=1, answer="A"))
                uow.attempts.touch(attempt.id, timezone.now())

        assert exc.value.context["status"] == "COMPLETED"
        assert exc.value.context["test_id"] == test_def.id
        assert not m.Answer.objects.filter(attempt=attempt).exists()

    def test_list_by_status_ordered_by_id(self, test_def):
        now = timezone.now()
        ids = [_in_progress(test_def, c, now).id for c in (3, 1, 2)]
        with DjangoUnitOfWork() as uow:
            listed = uow.attempts.list_by_status(AttemptStatus.IN_PROGRESS)
        assert [a.id for a in listed] == sorted(ids)


class TestWiredEngine:
    def test_full_lifecycle_writes_outbox(self, test_def, candidate):
        scout = get_user_model().objects.create_user(username="scout", password="x")
        scout.groups.add(Group.objects.create(name="talent_scouts"))
        engine = build_engine()

        attempt = engine.register(test_def.id, candidate.id)
        assert attempt.payment_verified is True
        assert attempt.payment_reference_id.startswith("mock_")

        engine.start(attempt.id, candidate.id, ip_address="10.0.0.1", user_agent="pytest")
        engine.submit_answer(attempt.id, candidate.id, 1, "A", 12)
        engine.record_grades(attempt.id, {1: True})
        done = engine.submit_test(attempt.id, candidate.id)

        assert done.status == AttemptStatus.COMPLETED
        assert done.score == Decimal("100.00")

        kinds = set(m.OutboundEvent.objects.values_list("kind", flat=True))
        assert kinds == {"NOTIFICATION", "AUDIT", "PROFILE_RESULT"}
        notes = [e.payload for e in m.OutboundEvent.objects.filter(kind="NOTIFICATION")]
        assert {"TEST_REGISTERED", "TEST_COMPLETED", "HIGH_PERFORMER"} <= {n["type"] for n in notes}
        [high] = [n for n in notes if n["type"] == "HIGH_PERFORMER"]
        assert high["recipient_id"] == scout.id
        profile = m.OutboundEvent.objects.get(kind="PROFILE_RESULT").payload
        assert profile["score"] == "100.00"

    def test_failed_answer_query_does_not_block_completion(self, test_def, candidate):
        engine = build_engine()
        attempt = engine.register(test_def.id, candidate.id)
        engine.start(attempt.id, candidate.id)
        engine.submit_answer(attempt.id, candidate.id, 1, "A", 12)
        table = m.Answer._meta.db_table

        def fail_answer_reads(execute, sql, params, many, context):
            if table in sql and sql.lstrip().upper().startswith("SELECT"):
                raise DatabaseError("canceling statement due to statement timeout")
            return execute(sql, params, many, context)

        with mock.patch.object(connection, "savepoint_rollback", wraps=connection.savepoint_rollback) as rollback:
            with connection.execute_wrapper(fail_answer_reads):
                done = engine.submit_test(attempt.id, candidate.id)

        assert rollback.called
        assert done.status == AttemptStatus.COMPLETED
        assert done.score == Decimal("0.00")
        assert m.Attempt.objects.get(id=attempt.id).status == m.Attempt.Status.COMPLETED
        assert m.OutboundEvent.objects.filter(kind="AUDIT", payload__action="SCORING_ERROR").exists()

    def test_confirm_payment_persists_verification(self, test_def, candidate):
        engine = build_engine()
        attempt = engine.register(test_def.id, candidate.id)
        m.Attempt.objects.filter(id=attempt.id).update(payment_verified=False)

        engine.confirm_payment(attempt.id, "pi_webhook_1")

        row = m.Attempt.objects.get(id=attempt.id)
        assert row.payment_verified is True
        assert row.payment_reference_id == "pi_webhook_1"
        assert engine.start(attempt.id, candidate.id).status == AttemptStatus.IN_PROGRESS

    def test_unknown_candidate_is_not_eligible(self, test_def):
        with pytest.raises(CandidateNotEligibleError):
            build_engine().register(test_def.id, 98765)
        assert not m.Attempt.objects.exists()

    def test_duplicate_registration(self, test_def, candidate):
        engine = build_engine()
        engine.register(test_def.id, candidate.id)
        with pytest.raises(DuplicateActiveAttemptError):
            engine.register(test_def.id, candidate.id)


class TestSweepEntryPoints:
    def test_management_command_dry_run(self, test_def):
        expired = _in_progress(test_def, 7, timezone.now() - timedelta(hours=2))
        out = StringIO()

        call_command("sweep_expired_attempts", "--dry-run", stdout=out)

        assert f"attempt_id={expired.id}" in out.getvalue()
        assert m.Attempt.objects.get(id=expired.id).status == m.Attempt.Status.IN_PROGRESS

    def test_management_command_submits(self, test_def):
        expired = _in_progress(test_def, 7, timezone.now() - timedelta(hours=2))
        fresh = _in_progress(test_def, 8, timezone.now())
        out = StringIO()

        call_command("sweep_expired_attempts", stdout=out)

        expired.refresh_from_db()
        assert expired.status == m.Attempt.Status.AUTO_SUBMITTED
        assert expired.submission_reason == "TIME_EXPIRED"
        assert expired.time_spent_seconds == 3600
        assert m.Attempt.objects.get(id=fresh.id).status == m.Attempt.Status.IN_PROGRESS
        assert "submitted 1" in out.getvalue()

    def test_celery_task(self, test_def):
        expired = _in_progress(test_def, 7, timezone.now() - timedelta(hours=2))

        result = sweep_expired_attempts_task.apply().get()

        assert result["submitted_ids"] == [expired.id]
        assert m.OutboundEvent.objects.filter(kind="AUDIT", payload__action="AUTO_SUBMIT_BATCH").exists()
