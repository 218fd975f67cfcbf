from assessment.application.ports.unit_of_work import UnitOfWork
from assessment.application.ports.repositories import (
    AnswerRepository,
    AttemptRepository,
    TestDefinitionRepository,
)
from assessment.application.ports.clock import Clock
from assessment.application.ports.rate_limiter import RateLimiter
from assessment.application.ports.cache import AttemptCache, NullAttemptCache
from assessment.application.ports.collaborators import (
    AuditRecorder,
    EligibilityChecker,
    InterestedPartyDirectory,
    NotificationSender,
    PaymentGateway,
    PaymentOutcome,
    ProfileUpdater,
)

__all__ = [
    "UnitOfWork",
    "AttemptRepository",
    "AnswerRepository",
    "TestDefinitionRepository",
    "Clock",
    "RateLimiter",
    "AttemptCache",
    "NullAttemptCache",
    "PaymentGateway",
    "PaymentOutcome",
    "NotificationSender",
    "AuditRecorder",
    "EligibilityChecker",
    "ProfileUpdater",
    "InterestedPartyDirectory",
]
