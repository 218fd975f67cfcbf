"""
Django 런타임 조립 — Engine / ExpirySweep 생성 (adapter 선택은 여기서만)
"""
from __future__ import annotations

import logging
from typing import Optional

from assessment.adapters.cache.rate_limiters import RedisRateLimiter
from assessment.adapters.cache.redis_attempt_cache import RedisAttemptCache
from assessment.adapters.clock import SystemClock
from assessment.adapters.collaborators.directory import (
    DEFAULT_INTERESTED_PARTY_GROUP,
    DjangoEligibilityChecker,
    DjangoInterestedPartyDirectory,
)
from assessment.adapters.collaborators.outbox import (
    OutboxAuditRecorder,
    OutboxNotificationSender,
    OutboxProfileUpdater,
)
from assessment.adapters.collaborators.payment import HttpPaymentGateway, MockPaymentGateway
from assessment.adapters.db.django.uow import django_uow_factory
from assessment.application.use_cases.attempts.events import AttemptEventEmitter
from assessment.application.use_cases.attempts.expiry_sweep import ExpirySweep
from assessment.application.use_cases.attempts.lifecycle import AttemptLifecycleEngine
from assessment.framework.config import AttemptPolicy, load_policy

logger = logging.getLogger(__name__)


def _payment_gateway():
    from django.conf import settings

    api_url = getattr(settings, "PAYMENT_API_URL", "") or ""
    if not api_url:
        logger.info("PAYMENT_API_URL not set, using MockPaymentGateway")
        return MockPaymentGateway()
    return HttpPaymentGateway(
        api_base_url=api_url,
        api_key=getattr(settings, "PAYMENT_API_KEY", "") or "",
        timeout_seconds=float(getattr(settings, "PAYMENT_API_TIMEOUT_SECONDS", 10)),
    )


def build_event_emitter() -> AttemptEventEmitter:
    from django.conf import settings

    group = getattr(settings, "ATTEMPT_INTERESTED_PARTY_GROUP", DEFAULT_INTERESTED_PARTY_GROUP)
    return AttemptEventEmitter(
        notifier=OutboxNotificationSender(),
        audit=OutboxAuditRecorder(),
        profile_updater=OutboxProfileUpdater(),
        interested_parties=DjangoInterestedPartyDirectory(group),
    )


def build_engine(policy: Optional[AttemptPolicy] = None) -> AttemptLifecycleEngine:
    policy = policy or load_policy()
    return AttemptLifecycleEngine(
        uow_factory=django_uow_factory(policy.LOCK_TIMEOUT_SECONDS),
        clock=SystemClock(),
        rate_limiter=RedisRateLimiter(),
        payment_gateway=_payment_gateway(),
        eligibility=DjangoEligibilityChecker(),
        events=build_event_emitter(),
        cache=RedisAttemptCache(policy.CACHE_TTL_SECONDS, policy.ACTIVE_CACHE_TTL_SECONDS),
        policy=policy,
    )


def build_expiry_sweep(policy: Optional[AttemptPolicy] = None) -> ExpirySweep:
    policy = policy or load_policy()
    engine = build_engine(policy)
    return ExpirySweep(engine, django_uow_factory(policy.LOCK_TIMEOUT_SECONDS))
