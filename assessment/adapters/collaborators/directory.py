"""
사용자 디렉터리 기반 협력자 — Django auth (lazy import)
"""
from __future__ import annotations

import logging
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_INTERESTED_PARTY_GROUP = "talent_scouts"


class DjangoEligibilityChecker:
    """활성 계정 + (필드가 있으면) is_verified."""

    def is_eligible(self, candidate_id: int) -> bool:
        from django.contrib.auth import get_user_model

        user = get_user_model().objects.filter(id=candidate_id).first()
        if user is None:
            logger.info("CANDIDATE_NOT_FOUND | candidate_id=%s", candidate_id)
            return False
        if not user.is_active:
            return False
        return bool(getattr(user, "is_verified", True))


class DjangoInterestedPartyDirectory:
    """auth Group 소속 활성 사용자."""

    def __init__(self, group_name: str = DEFAULT_INTERESTED_PARTY_GROUP) -> None:
        self.group_name = group_name

    def recipient_ids(self) -> Iterable[int]:
        from django.contrib.auth import get_user_model

        return list(
            get_user_model()
            .objects.filter(groups__name=self.group_name, is_active=True)
            .values_list("id", flat=True)
        )
