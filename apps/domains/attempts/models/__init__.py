from .test_definition import TestDefinition
from .attempt import Attempt
from .answer import Answer
from .outbound_event import OutboundEvent

__all__ = [
    "TestDefinition",
    "Attempt",
    "Answer",
    "OutboundEvent",
]
