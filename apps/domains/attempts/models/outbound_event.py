# apps/domains/attempts/models/outbound_event.py
from django.db import models


class OutboundEvent(models.Model):
    """
    알림 요청 / 감사 이벤트 / 프로필 반영 outbox.
    전달은 외부 dispatcher 책임 (dispatched_at 기록).
    """

    class Kind(models.TextChoices):
        NOTIFICATION = "NOTIFICATION", "알림"
        AUDIT = "AUDIT", "감사"
        PROFILE_RESULT = "PROFILE_RESULT", "프로필 반영"

    kind = models.CharField(max_length=32, choices=Kind.choices, db_index=True)
    payload = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)
    dispatched_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        db_table = "assessment_outbound_event"
        ordering = ["id"]

    def __str__(self):
        return f"OutboundEvent#{self.id} [{self.kind}]"
